"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from time import perf_counter
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field

from source_context.obs.logging import get_logger
from source_context.types import ToolTrace

logger = get_logger("tool-registry")


class ToolResult(BaseModel):
    """Envelope returned by every tool: `{ok: true, data}` or `{ok: false, error}`."""

    ok: bool
    data: dict[str, Any] | None = None
    error: str | None = None

    @classmethod
    def success(cls, **data: Any) -> ToolResult:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: str) -> ToolResult:
        return cls(ok=False, error=error)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(exclude_none=True), ensure_ascii=False)


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[BaseModel], ToolResult]
    tags: list[str] = Field(default_factory=list)

    def invoke(self, payload: dict[str, Any]) -> ToolResult:
        data = self.args_schema.model_validate(payload)
        try:
            return self.handler(data)
        except Exception as exc:
            logger.error("Tool %s failed: %s", self.name, exc, exc_info=True)
            return ToolResult.failure(f"{type(exc).__name__}: {exc}")


class ToolRegistry:
    """Stores tool specs and exports LangChain-compatible tool objects."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._observer: Callable[[ToolTrace], None] | None = None

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each tool execution."""
        self._observer = observer

    def names(self) -> list[str]:
        return list(self._tools)

    def restrict(self, allowed: Iterable[str]) -> ToolRegistry:
        """Return a registry exposing only the allowed tool names."""
        allowed_names = set(allowed)
        restricted = ToolRegistry()
        for spec in self._tools.values():
            if spec.name in allowed_names:
                restricted.register(spec)
        restricted.set_observer(self._observer)
        return restricted

    def execute(self, name: str, payload: dict[str, Any]) -> str:
        spec = self._tools.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")
        return self._execute_spec(spec, payload)

    def as_langchain_tools(self) -> list[StructuredTool]:
        tools: list[StructuredTool] = []
        for spec in self._tools.values():
            tools.append(
                StructuredTool.from_function(
                    name=spec.name,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    func=self._build_function(spec),
                )
            )
        return tools

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def _build_function(self, spec: ToolSpec) -> Callable[..., str]:
        def _callable(**kwargs: Any) -> str:
            return self._execute_spec(spec, kwargs)

        return _callable

    def _execute_spec(self, spec: ToolSpec, payload: dict[str, Any]) -> str:
        start = perf_counter()
        output = spec.invoke(payload).to_json()
        latency_ms = (perf_counter() - start) * 1000.0

        if self._observer is not None:
            self._observer(
                ToolTrace(
                    name=spec.name,
                    input_payload=payload,
                    output_preview=output[:320],
                    latency_ms=latency_ms,
                )
            )
        return output
