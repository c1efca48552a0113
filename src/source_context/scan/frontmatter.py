"""Front matter parsing for documentation pages."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml

from source_context.obs.logging import get_logger
from source_context.types import DocumentPage

logger = get_logger("frontmatter")

_FRONTMATTER_PATTERN = re.compile(
    r"\A(?:\ufeff)?---[ \t]*\r?\n(?P<yaml>.*?)(?:\r?\n)?^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)
_H1_PATTERN = re.compile(r"^#\s+(.+?)\s*#*\s*$", re.MULTILINE)

UNTITLED = "Untitled"


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Return `(frontmatter, body)`; malformed YAML counts as no front matter."""
    match = _FRONTMATTER_PATTERN.match(text)
    if match is None:
        return {}, text

    try:
        data = yaml.safe_load(match.group("yaml"))
    except yaml.YAMLError as exc:
        logger.warning("Ignoring malformed front matter: %s", exc)
        return {}, text

    if not isinstance(data, dict):
        data = {}
    return data, text[match.end() :]


def derive_title(frontmatter: dict[str, Any], body: str) -> str:
    title = frontmatter.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()
    heading = _H1_PATTERN.search(body)
    if heading:
        return heading.group(1).strip()
    return UNTITLED


def parse_document(text: str, path: str = "") -> DocumentPage:
    frontmatter, body = split_frontmatter(text)
    return DocumentPage(
        path=path,
        title=derive_title(frontmatter, body),
        content=body,
        frontmatter=frontmatter,
    )


def read_documentation_page(path: str | Path) -> DocumentPage:
    """Read a page from disk and split its front matter from the body."""
    page_path = Path(path)
    text = page_path.read_text(encoding="utf-8")
    return parse_document(text, path=str(page_path))
