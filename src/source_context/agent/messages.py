"""Typed agent transcript turns and token accounting."""

from __future__ import annotations

import json
import math
from collections.abc import Iterable
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from source_context.obs.logging import get_logger

logger = get_logger("llm-agentic")


class ToolCall(BaseModel):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class SystemTurn(BaseModel):
    role: Literal["system"] = "system"
    content: str = ""


class HumanTurn(BaseModel):
    role: Literal["human"] = "human"
    content: str = ""


class AITurn(BaseModel):
    role: Literal["ai"] = "ai"
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    usage: Usage | None = None


class ToolTurn(BaseModel):
    role: Literal["tool"] = "tool"
    content: str = ""
    tool_name: str = "unknown"
    tool_call_id: str | None = None


Turn = Annotated[
    Union[SystemTurn, HumanTurn, AITurn, ToolTurn], Field(discriminator="role")
]

_TURN_ADAPTER: TypeAdapter[Turn] = TypeAdapter(Turn)

_ROLE_ALIASES = {
    "system": "system",
    "human": "human",
    "user": "human",
    "ai": "ai",
    "assistant": "ai",
    "tool": "tool",
}


def content_text(content: Any) -> str:
    """Flatten string or block-list message content into plain text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            elif isinstance(item, str):
                parts.append(item)
            else:
                parts.append(json.dumps(item, default=str))
        return "".join(parts)
    return json.dumps(content, default=str)


def to_turn(message: Any) -> Turn:
    """Convert a LangChain message or role dict into a typed turn."""
    if isinstance(message, (SystemTurn, HumanTurn, AITurn, ToolTurn)):
        return message
    if isinstance(message, dict):
        raw = dict(message)
        role = str(raw.get("role") or raw.get("type") or "")
    else:
        raw = {
            "content": getattr(message, "content", ""),
            "tool_calls": getattr(message, "tool_calls", None),
            "usage_metadata": getattr(message, "usage_metadata", None),
            "name": getattr(message, "name", None),
            "tool_call_id": getattr(message, "tool_call_id", None),
        }
        role = str(getattr(message, "type", ""))

    normalized = _ROLE_ALIASES.get(role.lower())
    if normalized is None:
        raise ValueError(f"Unsupported message role: {role!r}")

    payload: dict[str, Any] = {
        "role": normalized,
        "content": content_text(raw.get("content")),
    }
    if normalized == "ai":
        payload["tool_calls"] = [
            {"name": call.get("name", "unknown"), "args": call.get("args") or {}, "id": call.get("id")}
            for call in raw.get("tool_calls") or []
            if isinstance(call, dict)
        ]
        usage = raw.get("usage_metadata") or raw.get("usage")
        if isinstance(usage, dict):
            payload["usage"] = usage
    elif normalized == "tool":
        payload["tool_name"] = raw.get("name") or raw.get("tool_name") or "unknown"
        payload["tool_call_id"] = raw.get("tool_call_id")
    return _TURN_ADAPTER.validate_python(payload)


def to_turns(messages: Iterable[Any]) -> list[Turn]:
    """Convert a transcript, skipping messages whose role has no turn type."""
    turns: list[Turn] = []
    for message in messages:
        try:
            turns.append(to_turn(message))
        except ValueError as exc:
            logger.debug("Skipping transcript message: %s", exc)
    return turns


def reported_tokens(turns: Iterable[Turn]) -> int:
    return sum(
        turn.usage.total_tokens
        for turn in turns
        if isinstance(turn, AITurn) and turn.usage is not None
    )


def estimate_tokens(turns: Iterable[Turn]) -> int:
    """Rough token estimate: total content characters divided by four."""
    return math.ceil(sum(len(turn.content) for turn in turns) / 4)


def count_tokens(turns: list[Turn]) -> tuple[int, bool]:
    """Return `(tokens, estimated)`, preferring usage reported by the model."""
    reported = reported_tokens(turns)
    if reported > 0:
        return reported, False
    return estimate_tokens(turns), True


def final_answer(turns: list[Turn]) -> str:
    if not turns:
        return ""
    return turns[-1].content
