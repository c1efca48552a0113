"""Shared domain models."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ConfidenceLevel = Literal["high", "medium", "low"]
NodeType = Literal["file", "directory"]

CONFIDENCE_LEVELS: tuple[str, ...] = ("high", "medium", "low")


class SourceContextError(Exception):
    """Base error for the detection engine."""


class ProviderNotImplementedError(SourceContextError):
    """Raised for LLM provider types that have no implementation yet."""


class ConfigError(SourceContextError):
    """Raised when a configuration file cannot be parsed."""


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class FileTreeNode:
    """A file or directory in a project snapshot.

    `children` is populated only for directories; paths are relative to the
    scanned root.
    """

    name: str
    path: str
    type: NodeType
    children: list[FileTreeNode] | None = None

    @property
    def is_directory(self) -> bool:
        return self.type == "directory"


@dataclass(slots=True)
class DocumentPage:
    """A documentation page with its front matter split off."""

    path: str
    title: str
    content: str
    frontmatter: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class MatchRule:
    """Convention rule mapping a documentation path to source patterns."""

    doc_pattern: str | re.Pattern[str]
    source_patterns: list[str]
    confidence: float


@dataclass(slots=True)
class KeywordMatch:
    """A file scored by the fraction of document keywords it contains."""

    file: str
    confidence: float
    matched_keywords: list[str]


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float


class WireModel(BaseModel):
    """Base for models that cross the engine boundary in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SourceContext(WireModel):
    """The mapping between one documentation page and the code it describes."""

    files: list[str] = Field(default_factory=list)
    folders: list[str] = Field(default_factory=list)
    globs: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    manual: bool = False
    confidence: ConfidenceLevel = "low"
    last_updated: str | None = None


class ContextDetectionResult(WireModel):
    source_context: SourceContext
    confidence: ConfidenceLevel
    reasoning: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class ExistingMapping(WireModel):
    """Previously stored mapping handed to the LLM as reference only."""

    files: list[str] = Field(default_factory=list)
    folders: list[str] = Field(default_factory=list)


class LLMDetectionRequest(WireModel):
    doc_path: str
    doc_content: str
    doc_title: str
    available_files: list[str] = Field(default_factory=list)
    available_folders: list[str] = Field(default_factory=list)
    existing_mapping: ExistingMapping | None = None


class LLMDetectionResponse(WireModel):
    files: list[str] = Field(default_factory=list)
    folders: list[str] = Field(default_factory=list)
    confidence: ConfidenceLevel = "low"
    reasoning: list[str] = Field(default_factory=list)
    model: str
    tokens_used: int | None = None
    cached: bool = False


class ValidationResult(WireModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
