"""Read-only filesystem tools exposed to the detection agent."""

from __future__ import annotations

import os
import posixpath
from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel, Field

from source_context.agent.registry import ToolRegistry, ToolResult, ToolSpec
from source_context.obs.logging import get_logger
from source_context.scan.file_tree import (
    build_file_tree,
    extract_folders,
    flatten_file_tree,
    glob_to_regex,
)
from source_context.types import FileTreeNode

SOURCE_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".ts",
        ".tsx",
        ".js",
        ".jsx",
        ".vue",
        ".svelte",
        ".astro",
        ".py",
        ".go",
        ".rs",
        ".java",
        ".cpp",
        ".c",
        ".h",
    }
)

FILESYSTEM_TOOL_NAMES: tuple[str, ...] = (
    "list_source_files",
    "list_folders",
    "read_file",
    "find_files",
    "list_folder_contents",
)


class ListSourceFilesInput(BaseModel):
    pattern: str | None = Field(
        default=None,
        description=(
            'Optional glob pattern to filter files (e.g. "src/**/*.ts"). '
            "If omitted, returns all source files."
        ),
    )


class ListFoldersInput(BaseModel):
    depth: int | None = Field(
        default=None,
        ge=1,
        description="Maximum depth to traverse (1 = top level only). Default is unlimited.",
    )


class ReadFileInput(BaseModel):
    file_path: str = Field(min_length=1, description="Path relative to the project root.")
    lines: int | None = Field(
        default=None,
        ge=1,
        description="Number of lines to read from the start of the file for a preview.",
    )


class FindFilesInput(BaseModel):
    name_pattern: str = Field(
        min_length=1,
        description='Pattern matched against file names, e.g. "*user*" or "*.test.ts".',
    )


class ListFolderContentsInput(BaseModel):
    folder_path: str = Field(
        min_length=1, description='Folder relative to the project root, e.g. "src/api".'
    )


def register_filesystem_tools(
    registry: ToolRegistry,
    project_root: str | Path,
    *,
    exclude_patterns: Iterable[str] = (),
    ignore_file_root: str | Path | None = None,
) -> None:
    """Register the browsing tools used by the agentic detector.

    Tools:
    - `list_source_files`: every source file, optionally filtered by glob.
    - `list_folders`: every folder, optionally capped by depth.
    - `read_file`: full content or a leading-lines preview.
    - `find_files`: case-insensitive name search.
    - `list_folder_contents`: immediate files and subfolders of one folder.

    `.gitignore` rules are read from `ignore_file_root` when given, so the
    agent sees the same snapshot as the detection request.
    """

    root = Path(project_root).resolve()
    excludes = list(exclude_patterns)
    snapshot: list[FileTreeNode] = []

    def _tree() -> FileTreeNode:
        if not snapshot:
            snapshot.append(build_file_tree(root, excludes, ignore_file_root))
        return snapshot[0]

    def _list_source_files(input_data: ListSourceFilesInput) -> ToolResult:
        log = get_logger("tool:list_source_files")
        log.debug(
            "%s (root: %s)",
            f"with pattern: {input_data.pattern}" if input_data.pattern else "listing all source files",
            root,
        )
        files = flatten_file_tree(_tree())
        if input_data.pattern:
            regex = glob_to_regex(input_data.pattern)
            files = [path for path in files if regex.match(path)]
        before = len(files)
        files = sorted(
            path for path in files if posixpath.splitext(path)[1] in SOURCE_EXTENSIONS
        )
        log.info("Found %d source files (filtered from %d)", len(files), before)
        return ToolResult.success(count=len(files), files=files)

    def _list_folders(input_data: ListFoldersInput) -> ToolResult:
        log = get_logger("tool:list_folders")
        folders = extract_folders(_tree())
        if input_data.depth is not None:
            folders = [path for path in folders if path.count("/") + 1 <= input_data.depth]
        folders.sort()
        log.info("Found %d folders", len(folders))
        return ToolResult.success(count=len(folders), folders=folders)

    def _read_file(input_data: ReadFileInput) -> ToolResult:
        log = get_logger("tool:read_file")
        target = _resolve_inside(root, input_data.file_path)
        if target is None:
            return ToolResult.failure(f"Path escapes project root: {input_data.file_path}")
        try:
            content = target.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            log.error("Error reading %s: %s", input_data.file_path, exc)
            return ToolResult.failure(f"Could not read file: {exc}")

        if input_data.lines is not None:
            excerpt = "\n".join(content.split("\n")[: input_data.lines])
            log.debug(
                "Returned %d line preview of %s (%d chars)",
                input_data.lines,
                input_data.file_path,
                len(excerpt),
            )
            return ToolResult.success(
                file=input_data.file_path,
                preview=True,
                lines_shown=input_data.lines,
                content=excerpt,
            )
        log.debug("Read full file %s (%d chars)", input_data.file_path, len(content))
        return ToolResult.success(file=input_data.file_path, preview=False, content=content)

    def _find_files(input_data: FindFilesInput) -> ToolResult:
        log = get_logger("tool:find_files")
        name_pattern = input_data.name_pattern
        pattern = name_pattern if "/" in name_pattern else f"**/{name_pattern}"
        regex = glob_to_regex(pattern, case_sensitive=False)
        matches = sorted(path for path in flatten_file_tree(_tree()) if regex.match(path))
        log.info('Found %d matches for "%s"', len(matches), name_pattern)
        return ToolResult.success(pattern=name_pattern, matches=matches, count=len(matches))

    def _list_folder_contents(input_data: ListFolderContentsInput) -> ToolResult:
        log = get_logger("tool:list_folder_contents")
        target = _resolve_inside(root, input_data.folder_path)
        if target is None:
            return ToolResult.failure(
                f"Path escapes project root: {input_data.folder_path}"
            )
        try:
            with os.scandir(target) as entries:
                listing = list(entries)
        except OSError as exc:
            log.error("Error listing %s: %s", input_data.folder_path, exc)
            return ToolResult.failure(f"Could not read folder: {exc}")

        files = sorted(entry.name for entry in listing if entry.is_file())
        folders = sorted(entry.name for entry in listing if entry.is_dir())
        log.debug(
            "Found %d files, %d folders in %s", len(files), len(folders), input_data.folder_path
        )
        return ToolResult.success(
            folder=input_data.folder_path,
            files=files,
            folders=folders,
            total=len(files) + len(folders),
        )

    registry.register(
        ToolSpec(
            name="list_source_files",
            description=(
                "Get a complete list of all source code files in the project, relative "
                "to the project root. Use this to see what files exist before deciding "
                "on a mapping."
            ),
            args_schema=ListSourceFilesInput,
            handler=_list_source_files,
            tags=["filesystem", "listing"],
        )
    )
    registry.register(
        ToolSpec(
            name="list_folders",
            description=(
                "Get a list of all folders in the project. Use this to understand the "
                "project structure and find folders for broader documentation topics."
            ),
            args_schema=ListFoldersInput,
            handler=_list_folders,
            tags=["filesystem", "listing"],
        )
    )
    registry.register(
        ToolSpec(
            name="read_file",
            description=(
                "Read the contents of a specific file, in full or as a preview of its "
                "first lines. Use this to check whether a file is relevant."
            ),
            args_schema=ReadFileInput,
            handler=_read_file,
            tags=["filesystem", "content"],
        )
    )
    registry.register(
        ToolSpec(
            name="find_files",
            description=(
                "Search for files whose names match a pattern. Use this when the "
                "documentation mentions specific file names."
            ),
            args_schema=FindFilesInput,
            handler=_find_files,
            tags=["filesystem", "search"],
        )
    )
    registry.register(
        ToolSpec(
            name="list_folder_contents",
            description=(
                "List the immediate files and subfolders of one folder (non-recursive)."
            ),
            args_schema=ListFolderContentsInput,
            handler=_list_folder_contents,
            tags=["filesystem", "listing"],
        )
    )


def _resolve_inside(root: Path, relative: str) -> Path | None:
    target = (root / relative).resolve()
    if target != root and root not in target.parents:
        return None
    return target
