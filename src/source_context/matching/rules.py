"""Convention-based matching of documentation paths to source paths."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from source_context.obs.logging import get_logger
from source_context.scan.file_tree import (
    flatten_file_tree,
    get_files_matching,
    glob_to_regex,
    is_glob,
)
from source_context.types import ConfidenceLevel, FileTreeNode, MatchRule, SourceContext

logger = get_logger("pattern-matcher")

HIGH_THRESHOLD = 0.7
MEDIUM_THRESHOLD = 0.4
CONVENTION_CONFIDENCE = 0.7

_GROUP_REFERENCE = re.compile(r"\$(\d)")

DEFAULT_RULES: tuple[MatchRule, ...] = (
    MatchRule(
        doc_pattern=re.compile(r"getting[_-]?started|installation|quick[_-]?start", re.I),
        source_patterns=["README.md", "src/index.ts", "index.ts", "src/__init__.py"],
        confidence=0.8,
    ),
    MatchRule(
        doc_pattern=re.compile(r"configuration|config|setup", re.I),
        source_patterns=["*config*.ts", "*config*.js", "*config*.py", "src/types.ts", "types.ts"],
        confidence=0.8,
    ),
    MatchRule(
        doc_pattern=re.compile(r"\bapi\b", re.I),
        source_patterns=["src/index.ts", "index.ts", "src/**/index.ts"],
        confidence=0.7,
    ),
    MatchRule(
        doc_pattern=re.compile(r"storage|adapter", re.I),
        source_patterns=["src/storage/", "storage/", "src/storage/**/*", "storage/**/*"],
        confidence=0.9,
    ),
    MatchRule(
        doc_pattern=re.compile(r"development|contributing|dev", re.I),
        source_patterns=["package.json", "pyproject.toml", ".github/", "scripts/"],
        confidence=0.6,
    ),
    MatchRule(
        doc_pattern=re.compile(r"testing|test", re.I),
        source_patterns=[
            "**/*.test.ts",
            "**/*.spec.ts",
            "**/test_*.py",
            "vitest.config.ts",
            "playwright.config.ts",
        ],
        confidence=0.7,
    ),
    MatchRule(
        doc_pattern=re.compile(r"([^/]+)\.mdx?$"),
        source_patterns=["src/$1.ts", "src/$1/", "src/**/$1.ts", "src/**/$1.py"],
        confidence=0.5,
    ),
)


@dataclass(slots=True)
class PatternMatchResult:
    """Outcome of evaluating every rule against one documentation path."""

    source_context: SourceContext
    confidence: float
    reasoning: list[str] = field(default_factory=list)
    candidate_files: list[str] = field(default_factory=list)


def confidence_level(score: float) -> ConfidenceLevel:
    if score >= HIGH_THRESHOLD:
        return "high"
    if score >= MEDIUM_THRESHOLD:
        return "medium"
    return "low"


class ContextMatcher:
    """Evaluates ordered convention rules; custom rules follow the defaults."""

    def __init__(self, custom_rules: Iterable[MatchRule] = ()) -> None:
        self.rules: list[MatchRule] = [*DEFAULT_RULES, *custom_rules]

    @classmethod
    def from_conventions(cls, conventions: Mapping[str, list[str]]) -> ContextMatcher:
        return cls(
            MatchRule(
                doc_pattern=doc_pattern,
                source_patterns=list(source_patterns),
                confidence=CONVENTION_CONFIDENCE,
            )
            for doc_pattern, source_patterns in conventions.items()
        )

    def add_rule(self, rule: MatchRule) -> None:
        self.rules.append(rule)

    def match(
        self, doc_path: str, project_root: str | Path, file_tree: FileTreeNode
    ) -> PatternMatchResult:
        all_files = flatten_file_tree(file_tree)
        file_set = set(all_files)
        files: dict[str, None] = {}
        folders: dict[str, None] = {}
        reasoning: list[str] = []
        total_confidence = 0.0
        rule_matches = 0

        for rule in self.rules:
            groups = _match_doc_pattern(doc_path, rule.doc_pattern)
            if groups is None:
                continue
            rule_matches += 1
            total_confidence += rule.confidence
            label = _describe(rule.doc_pattern)

            for raw_pattern in rule.source_patterns:
                pattern = _substitute_groups(raw_pattern, groups)
                for matched in self._find_matches(pattern, all_files, file_set, project_root):
                    if matched.endswith("/"):
                        folders.setdefault(matched, None)
                        reasoning.append(f"Matched folder {matched} via rule: {label}")
                    else:
                        files.setdefault(matched, None)
                        reasoning.append(f"Matched file {matched} via rule: {label}")

        average = total_confidence / rule_matches if rule_matches else 0.0
        logger.debug(
            "%d rule(s) matched %s, average confidence %.2f", rule_matches, doc_path, average
        )
        return PatternMatchResult(
            source_context=SourceContext(
                files=list(files),
                folders=list(folders),
                confidence=confidence_level(average),
            ),
            confidence=average,
            reasoning=reasoning,
            candidate_files=all_files,
        )

    def _find_matches(
        self,
        pattern: str,
        all_files: list[str],
        file_set: set[str],
        project_root: str | Path,
    ) -> list[str]:
        if not is_glob(pattern):
            literal = pattern.rstrip("/")
            if not literal:
                return []
            if not pattern.endswith("/") and literal in file_set:
                return [literal]
            prefix = f"{literal}/"
            if any(path.startswith(prefix) for path in all_files):
                return [prefix]
            return []

        try:
            globbed = get_files_matching(pattern, project_root)
        except (ValueError, OSError, NotImplementedError) as exc:
            logger.debug("Glob %r failed (%s); using regex fallback", pattern, exc)
            regex = glob_to_regex(pattern.lstrip("/"), case_sensitive=False)
            return [path for path in all_files if regex.match(path)]
        return [path for path in globbed if path in file_set]


def _match_doc_pattern(
    doc_path: str, pattern: str | re.Pattern[str]
) -> tuple[str, ...] | None:
    if isinstance(pattern, re.Pattern):
        match = pattern.search(doc_path)
    else:
        translated = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
        match = re.search(translated, doc_path, re.IGNORECASE)
    if match is None:
        return None
    return tuple(group or "" for group in match.groups())


def _substitute_groups(pattern: str, groups: tuple[str, ...]) -> str:
    def _replace(ref: re.Match[str]) -> str:
        index = int(ref.group(1))
        if 1 <= index <= len(groups):
            return groups[index - 1]
        return ref.group(0)

    return _GROUP_REFERENCE.sub(_replace, pattern)


def _describe(pattern: str | re.Pattern[str]) -> str:
    if isinstance(pattern, re.Pattern):
        return f"/{pattern.pattern}/"
    return pattern
