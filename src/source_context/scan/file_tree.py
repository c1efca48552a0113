"""Project file tree snapshots for source context detection."""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Iterator
from fnmatch import fnmatchcase
from pathlib import Path

from source_context.obs.logging import get_logger
from source_context.types import FileTreeNode

logger = get_logger("file-tree")

# Build output and dependency folders never carry documented source.
ALWAYS_SKIPPED: frozenset[str] = frozenset(
    {
        "node_modules",
        ".git",
        "dist",
        "coverage",
        "__pycache__",
        ".venv",
        ".mypy_cache",
        ".pytest_cache",
    }
)

IGNORE_FILE_NAME = ".gitignore"


def glob_to_regex(pattern: str, *, case_sensitive: bool = True) -> re.Pattern[str]:
    """Translate a `**`-aware glob into a full-match regex.

    `*` and `?` never cross a `/`; `**/` matches zero or more directories.
    """
    parts: list[str] = []
    i = 0
    length = len(pattern)
    while i < length:
        char = pattern[i]
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif char == "*":
            parts.append("[^/]*")
            i += 1
        elif char == "?":
            parts.append("[^/]")
            i += 1
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                parts.append(re.escape(char))
                i += 1
            else:
                body = pattern[i + 1 : end].replace("\\", "\\\\")
                if body.startswith("!"):
                    body = "^" + body[1:]
                parts.append(f"[{body}]")
                i = end + 1
        else:
            parts.append(re.escape(char))
            i += 1
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile("".join(parts) + r"\Z", flags)


def is_glob(pattern: str) -> bool:
    return any(char in pattern for char in "*?[")


class _IgnoreRule:
    __slots__ = ("negated", "dir_only", "anchored", "pattern", "regex")

    def __init__(self, raw: str) -> None:
        text = raw
        self.negated = text.startswith("!")
        if self.negated:
            text = text[1:]
        self.dir_only = text.endswith("/")
        text = text.strip("/") if self.dir_only else text.lstrip("/")
        self.anchored = "/" in text or raw.lstrip("!").startswith("/")
        self.pattern = text
        self.regex = glob_to_regex(text) if self.anchored else None

    def matches(self, relative_path: str, is_dir: bool) -> bool:
        if self.dir_only and not is_dir:
            return False
        if self.regex is not None:
            return self.regex.match(relative_path) is not None
        return fnmatchcase(relative_path.rsplit("/", 1)[-1], self.pattern)


class IgnoreRules:
    """Gitignore-style exclusion rules; the last matching rule wins."""

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        self._rules = [
            _IgnoreRule(line)
            for line in (p.strip() for p in patterns)
            if line and not line.startswith("#")
        ]

    def __bool__(self) -> bool:
        return bool(self._rules)

    def ignores(self, relative_path: str, *, is_dir: bool = False) -> bool:
        if not self._rules:
            return False
        parts = relative_path.split("/")
        for depth in range(1, len(parts)):
            if self._match(("/".join(parts[:depth])), True):
                return True
        return self._match(relative_path, is_dir)

    def _match(self, relative_path: str, is_dir: bool) -> bool:
        ignored = False
        for rule in self._rules:
            if rule.matches(relative_path, is_dir):
                ignored = not rule.negated
        return ignored


def load_ignore_patterns(root: str | Path) -> list[str]:
    """Read `.gitignore` lines from `root`; a missing file yields no rules."""
    ignore_path = Path(root) / IGNORE_FILE_NAME
    try:
        content = ignore_path.read_text(encoding="utf-8")
    except OSError:
        return []
    return [
        line.strip()
        for line in content.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]


def build_file_tree(
    root: str | Path,
    exclude_patterns: Iterable[str] = (),
    ignore_file_root: str | Path | None = None,
) -> FileTreeNode:
    """Snapshot `root` into a tree of relative paths.

    Raises:
        FileNotFoundError: if `root` does not exist.
        PermissionError: if `root` itself cannot be read.
    """
    absolute_root = Path(root).resolve()
    ignore_root = Path(ignore_file_root).resolve() if ignore_file_root else absolute_root
    rules = IgnoreRules([*exclude_patterns, *load_ignore_patterns(ignore_root)])

    if absolute_root.is_file():
        return FileTreeNode(name=absolute_root.name, path=absolute_root.name, type="file")
    children = _scan_directory(absolute_root, absolute_root, rules)
    return FileTreeNode(
        name=absolute_root.name, path=".", type="directory", children=children
    )


def _scan_directory(
    directory: Path, root: Path, rules: IgnoreRules
) -> list[FileTreeNode]:
    children: list[FileTreeNode] = []
    with os.scandir(directory) as entries:
        for entry in entries:
            if entry.name in ALWAYS_SKIPPED:
                continue
            relative = Path(entry.path).relative_to(root).as_posix()
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
                if rules.ignores(relative, is_dir=is_dir):
                    continue
                if is_dir:
                    node = FileTreeNode(
                        name=entry.name,
                        path=relative,
                        type="directory",
                        children=_scan_directory(Path(entry.path), root, rules),
                    )
                elif entry.is_file():
                    node = FileTreeNode(name=entry.name, path=relative, type="file")
                else:
                    continue
            except OSError as exc:
                logger.warning("Skipping %s: %s", entry.path, exc)
                continue
            children.append(node)

    return sorted(
        children,
        key=lambda node: (node.type != "directory", node.name.lower(), node.name),
    )


def iter_files(tree: FileTreeNode) -> Iterator[str]:
    if tree.type == "file":
        yield tree.path
        return
    for child in tree.children or []:
        yield from iter_files(child)


def iter_folders(tree: FileTreeNode) -> Iterator[str]:
    if tree.type != "directory":
        return
    if tree.path != ".":
        yield tree.path
    for child in tree.children or []:
        yield from iter_folders(child)


def flatten_file_tree(tree: FileTreeNode) -> list[str]:
    """All file paths in depth-first order."""
    return list(iter_files(tree))


def extract_folders(tree: FileTreeNode) -> list[str]:
    """All directory paths below the root in depth-first order."""
    return list(iter_folders(tree))


def get_files_matching(
    pattern: str,
    root: str | Path,
    exclude_patterns: Iterable[str] = (),
) -> list[str]:
    """Glob files under `root`, skipping dependency folders and excludes.

    A leading `/` anchors the pattern at `root`.

    Raises:
        ValueError: if the glob engine rejects `pattern`.
    """
    base = Path(root)
    rules = IgnoreRules(exclude_patterns)
    matches: list[str] = []
    for candidate in base.glob(pattern.lstrip("/")):
        relative = candidate.relative_to(base)
        if any(part in ALWAYS_SKIPPED for part in relative.parts):
            continue
        if not candidate.is_file():
            continue
        posix = relative.as_posix()
        if rules.ignores(posix):
            continue
        matches.append(posix)
    return sorted(matches)


def path_exists(path: str | Path) -> bool:
    return Path(path).exists()


def get_directory_files(directory: str | Path) -> list[str]:
    """Names of the regular files directly inside `directory`."""
    try:
        with os.scandir(directory) as entries:
            return sorted(entry.name for entry in entries if entry.is_file())
    except OSError:
        return []


def find_documentation_files(
    docs_root: str | Path, patterns: Iterable[str]
) -> list[str]:
    """Documentation pages under `docs_root` matching any of `patterns`.

    Raises:
        FileNotFoundError: if `docs_root` is not a directory.
    """
    base = Path(docs_root)
    if not base.is_dir():
        raise FileNotFoundError(f"Documentation root not found: {base}")
    found: dict[str, None] = {}
    for pattern in patterns:
        for path in get_files_matching(pattern, base):
            found.setdefault(path, None)
    return sorted(found)
