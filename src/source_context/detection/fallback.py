"""Deterministic rule and keyword detection used when the LLM is unavailable."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from source_context.matching.keywords import extract_keywords, match_keywords_to_files
from source_context.matching.rules import ContextMatcher
from source_context.obs.logging import get_logger
from source_context.types import (
    ContextDetectionResult,
    FileTreeNode,
    SourceContext,
    utc_now_iso,
)

logger = get_logger("source-detection")

RULE_BASED_HEADER = "Rule-based detection"
KEYWORD_FILE_LIMIT = 5
KEYWORD_REASONING_LIMIT = 3
SUGGESTION_LIMIT = 5


class RuleBasedDetector:
    """Combines convention rules with keyword scoring.

    This path keeps the same result contract as the LLM path and works
    offline. Keyword matches only see the files the matcher resolved its
    rules over, so excluded paths never resurface as keyword hits.
    """

    def __init__(
        self,
        *,
        matcher: ContextMatcher | None = None,
        exclude_patterns: Iterable[str] = (),
    ) -> None:
        self.matcher = matcher or ContextMatcher()
        self.exclude_patterns = list(exclude_patterns)

    def detect(
        self,
        *,
        doc_path: str,
        scan_root: str | Path,
        file_tree: FileTreeNode,
        body: str,
        title: str,
        notes: Iterable[str] = (),
    ) -> ContextDetectionResult:
        logger.info("Using rule-based detection for %s", doc_path)
        pattern_result = self.matcher.match(doc_path, scan_root, file_tree)

        keywords = extract_keywords(body, title)
        keyword_matches = match_keywords_to_files(keywords, pattern_result.candidate_files)
        logger.debug("Keywords for %s: %s", doc_path, ", ".join(keywords) or "none")

        files: dict[str, None] = dict.fromkeys(pattern_result.source_context.files)
        for match in keyword_matches[:KEYWORD_FILE_LIMIT]:
            files.setdefault(match.file, None)

        reasoning = [
            RULE_BASED_HEADER,
            *notes,
            *pattern_result.reasoning,
            *(
                f"Keyword match: {', '.join(match.matched_keywords)} → {match.file}"
                for match in keyword_matches[:KEYWORD_REASONING_LIMIT]
            ),
        ]
        suggestions = [
            match.file
            for match in keyword_matches[
                KEYWORD_FILE_LIMIT : KEYWORD_FILE_LIMIT + SUGGESTION_LIMIT
            ]
            if match.file not in files
        ]

        confidence = pattern_result.source_context.confidence
        logger.info(
            "Rule-based result for %s: %d files, %d folders, confidence %s",
            doc_path,
            len(files),
            len(pattern_result.source_context.folders),
            confidence,
        )
        return ContextDetectionResult(
            source_context=SourceContext(
                files=list(files),
                folders=pattern_result.source_context.folders,
                exclude=list(self.exclude_patterns),
                manual=False,
                confidence=confidence,
                last_updated=utc_now_iso(),
            ),
            confidence=confidence,
            reasoning=reasoning,
            suggestions=suggestions,
        )
