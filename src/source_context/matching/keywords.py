"""Keyword extraction from documentation and keyword-to-path scoring."""

from __future__ import annotations

import posixpath
import re
from collections.abc import Sequence

from source_context.types import KeywordMatch

_IMPORT_PATTERN = re.compile(r"""import\s+.*?from\s+['"]([^'"]+)['"]""")
_HEADING_PATTERN = re.compile(r"^#{1,6}\s+(.+?)$", re.MULTILINE)
_INLINE_MARKERS = re.compile(r"[`*_]")
_RELATIVE_PREFIX = re.compile(r"^(?:\.{1,2}/)+")

MIN_WORD_LENGTH = 4


def extract_keywords(content: str, title: str) -> list[str]:
    """Collect lower-cased keywords from the title, relative imports and headings.

    Duplicates collapse to their first occurrence.
    """
    keywords: dict[str, None] = {}

    for word in _long_words(title):
        keywords.setdefault(word, None)

    for match in _IMPORT_PATTERN.finditer(content):
        import_path = match.group(1)
        if not import_path.startswith("."):
            continue
        reference = _RELATIVE_PREFIX.sub("", import_path).lower()
        if reference:
            keywords.setdefault(reference, None)

    for match in _HEADING_PATTERN.finditer(content):
        heading = _INLINE_MARKERS.sub("", match.group(1))
        for word in _long_words(heading):
            keywords.setdefault(word, None)

    return list(keywords)


def match_keywords_to_files(
    keywords: Sequence[str], files: Sequence[str]
) -> list[KeywordMatch]:
    """Score each file by the fraction of keywords found in its name or path.

    Ties keep the order of `files`.
    """
    if not keywords:
        return []

    lowered = [(keyword, keyword.lower()) for keyword in keywords]
    matches: list[KeywordMatch] = []
    for file in files:
        base = posixpath.splitext(posixpath.basename(file))[0].lower()
        full_path = file.lower()
        matched = [
            keyword
            for keyword, needle in lowered
            if needle in base or needle in full_path
        ]
        if matched:
            matches.append(
                KeywordMatch(
                    file=file,
                    confidence=len(matched) / len(keywords),
                    matched_keywords=matched,
                )
            )

    return sorted(matches, key=lambda item: item.confidence, reverse=True)


def _long_words(text: str) -> list[str]:
    return [word for word in text.lower().split() if len(word) >= MIN_WORD_LENGTH]
