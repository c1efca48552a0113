"""Agentic LLM detector: a tool-calling agent that browses the project."""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable
from importlib import import_module
from pathlib import Path
from typing import Any

from langchain_core.messages import HumanMessage
from langchain_core.tools import StructuredTool

_agents_module = import_module("langchain.agents")
create_agent = getattr(_agents_module, "create_agent", None)

from source_context.agent.messages import AITurn, ToolTurn, Turn, count_tokens, final_answer, to_turns
from source_context.agent.prompts import DEFAULT_PROMPT, PromptConfig
from source_context.agent.registry import ToolRegistry
from source_context.agent.tools import register_filesystem_tools
from source_context.config import AgentConfig
from source_context.obs.logging import get_logger, preview
from source_context.obs.tracing import Timer, TraceStore
from source_context.types import (
    CONFIDENCE_LEVELS,
    ExistingMapping,
    LLMDetectionRequest,
    LLMDetectionResponse,
    ToolTrace,
)

logger = get_logger("llm-agentic")

TRUNCATION_MARKER = "\n\n[... content truncated ...]"
PARSE_FAILURE_REASON = "Failed to parse LLM response"

_FENCED_JSON = re.compile(r"```json[ \t]*\r?\n(.*?)\r?\n[ \t]*```", re.DOTALL)
_FENCED_PLAIN = re.compile(r"```[ \t]*\r?\n(.*?)\r?\n[ \t]*```", re.DOTALL)

ExecutorFactory = Callable[[Any, list[StructuredTool], str], Any]


class AgenticDetector:
    """Runs one bounded tool-calling session per documentation page.

    Detection never raises: setup, invocation and parsing failures all
    degrade to an empty low-confidence response with an explanatory reason.
    """

    def __init__(
        self,
        *,
        project_root: str | Path,
        model_name: str,
        prompt: PromptConfig | None = None,
        config: AgentConfig | None = None,
        exclude_patterns: Iterable[str] = (),
        ignore_file_root: str | Path | None = None,
        trace_store: TraceStore | None = None,
        executor_factory: ExecutorFactory | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.ignore_file_root = Path(ignore_file_root) if ignore_file_root else None
        self.model_name = model_name
        self.prompt = prompt or DEFAULT_PROMPT
        self.config = config or AgentConfig()
        self.exclude_patterns = list(exclude_patterns)
        self.trace_store = trace_store
        self._executor_factory = executor_factory or _create_graph_executor

    async def detect(self, llm: Any, request: LLMDetectionRequest) -> LLMDetectionResponse:
        logger.info("Starting detection for: %s", request.doc_path)
        logger.debug("Content length: %d chars", len(request.doc_content))

        observed_tools: list[ToolTrace] = []
        tokens_estimated = False
        turns: list[Turn] = []
        with Timer() as timer:
            try:
                registry = self.prepare_tools()
                registry.set_observer(observed_tools.append)
                executor = self._executor_factory(
                    llm, registry.as_langchain_tools(), self.prompt.system_template
                )
                turns = await self._invoke(executor, request)
                self._log_transcript(turns)

                parsed = parse_llm_response(final_answer(turns))
                tokens, tokens_estimated = count_tokens(turns)
                if tokens_estimated:
                    logger.debug("No usage metadata found, using estimated tokens")
                response = LLMDetectionResponse(
                    **parsed, model=self.model_name, tokens_used=tokens
                )
            except Exception as exc:
                logger.error(
                    "Error processing %s: %s", request.doc_path, exc, exc_info=True
                )
                response = LLMDetectionResponse(
                    confidence="low",
                    reasoning=[f"Error calling LLM agent: {exc}"],
                    model=self.model_name,
                )

        logger.info(
            "Detection complete - Files: %d, Folders: %d, Confidence: %s, Tokens: %s",
            len(response.files),
            len(response.folders),
            response.confidence,
            response.tokens_used,
        )
        if self.trace_store is not None:
            self.trace_store.create_record(
                doc_path=request.doc_path,
                model=self.model_name,
                confidence=response.confidence,
                tool_traces=observed_tools,
                tokens_used=response.tokens_used or 0,
                tokens_estimated=tokens_estimated,
                latency_ms=timer.elapsed_ms,
                transcript=turns,
            )
        return response

    def prepare_tools(self) -> ToolRegistry:
        """Build a fresh toolset limited to the prompt's allowed tool names."""
        registry = ToolRegistry()
        register_filesystem_tools(
            registry,
            self.project_root,
            exclude_patterns=self.exclude_patterns,
            ignore_file_root=self.ignore_file_root,
        )
        allowed = registry.restrict(self.prompt.tools)
        logger.info(
            "Using %d allowed tools: %s", len(allowed.names()), ", ".join(allowed.names())
        )
        return allowed

    def build_user_message(self, request: LLMDetectionRequest) -> str:
        budget = self.config.content_char_budget
        content = request.doc_content
        if len(content) > budget:
            content = content[:budget] + TRUNCATION_MARKER

        return (
            "Analyze this documentation and identify the relevant source files:\n\n"
            f"Document Path: {request.doc_path}\n"
            f"Document Title: {request.doc_title}\n\n"
            f"{content}\n\n"
            f"{format_existing_mapping(request.existing_mapping)}"
        )

    async def _invoke(self, executor: Any, request: LLMDetectionRequest) -> list[Turn]:
        logger.debug("Invoking agent with model: %s", self.model_name)
        result = await executor.ainvoke(
            {"messages": [HumanMessage(content=self.build_user_message(request))]},
            config={"recursion_limit": self.config.recursion_limit},
        )
        messages = result.get("messages", []) if isinstance(result, dict) else []
        return to_turns(messages)

    def _log_transcript(self, turns: list[Turn]) -> None:
        limit = self.config.log_preview_chars
        tool_turns = 0
        ai_turns = 0
        for turn in turns:
            if isinstance(turn, AITurn):
                ai_turns += 1
                for call in turn.tool_calls:
                    logger.debug(
                        "Tool call: %s(%s)",
                        call.name,
                        preview(json.dumps(call.args, default=str), 80),
                    )
                if not turn.tool_calls and turn.content.strip():
                    logger.info("AI: %s", preview(turn.content, 150))
            elif isinstance(turn, ToolTurn):
                tool_turns += 1
                logger.debug(
                    "Tool response (%s): %s", turn.tool_name, preview(turn.content, limit)
                )
        logger.debug(
            "Agent returned %d messages (tool responses: %d, AI responses: %d)",
            len(turns),
            tool_turns,
            ai_turns,
        )


def format_existing_mapping(existing: ExistingMapping | None) -> str:
    if existing is None or (not existing.files and not existing.folders):
        return ""
    return (
        "**Existing Mapping (for reference):**\n"
        f"Files: {', '.join(existing.files) or 'none'}\n"
        f"Folders: {', '.join(existing.folders) or 'none'}\n\n"
        "Note: You may confirm, refine, or completely revise this mapping based on "
        "your analysis.\n\n"
    )


def parse_llm_response(text: str) -> dict[str, Any]:
    """Extract the verdict JSON, bare or fenced, and coerce its fields."""
    match = _FENCED_JSON.search(text) or _FENCED_PLAIN.search(text)
    candidate = match.group(1) if match else text
    try:
        data = json.loads(candidate.strip())
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    except ValueError as exc:
        logger.error("%s: %s", PARSE_FAILURE_REASON, exc)
        return {
            "files": [],
            "folders": [],
            "confidence": "low",
            "reasoning": [PARSE_FAILURE_REASON],
        }

    confidence = data.get("confidence")
    return {
        "files": _string_list(data.get("files")),
        "folders": _string_list(data.get("folders")),
        "confidence": confidence if confidence in CONFIDENCE_LEVELS else "low",
        "reasoning": _string_list(data.get("reasoning")),
    }


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, str) else str(item) for item in value]


def _create_graph_executor(llm: Any, tools: list[StructuredTool], system_prompt: str) -> Any:
    if not callable(create_agent):
        raise RuntimeError("LangChain create_agent is unavailable.")
    return create_agent(model=llm, tools=tools, system_prompt=system_prompt)
