"""Persistence boundary for stored source context mappings."""

from __future__ import annotations

from typing import Protocol

from source_context.types import ExistingMapping, SourceContext


class SourceContextStore(Protocol):
    """Reads and writes the mapping stored alongside a documentation page.

    Implementations choose the on-disk format per file type. Detection only
    reads through this interface; saving is left to the caller.
    """

    def read_source_context(self, doc_path: str) -> SourceContext | None: ...

    def save_source_context(self, doc_path: str, context: SourceContext) -> None: ...


def existing_mapping_from(context: SourceContext | None) -> ExistingMapping | None:
    if context is None or (not context.files and not context.folders):
        return None
    return ExistingMapping(files=list(context.files), folders=list(context.folders))
