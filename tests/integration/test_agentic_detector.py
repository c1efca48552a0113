import json
from pathlib import Path
from typing import Any

import pytest
from langchain_core.messages import AIMessage, RemoveMessage, ToolMessage

from source_context.agent.detector import (
    PARSE_FAILURE_REASON,
    TRUNCATION_MARKER,
    AgenticDetector,
)
from source_context.agent.prompts import PromptConfig
from source_context.config import AgentConfig
from source_context.obs.tracing import TraceStore
from source_context.types import ExistingMapping, LLMDetectionRequest


class MockLLM:
    pass


class _MockExecutor:
    """Plays one scripted agent turn: a `find_files` call, then a final answer."""

    def __init__(self, tools: list[Any], final_text: str, usage: dict[str, int] | None) -> None:
        self.tools = {tool.name: tool for tool in tools}
        self.final_text = final_text
        self.usage = usage
        self.payload: dict[str, Any] | None = None
        self.config: dict[str, Any] | None = None

    async def ainvoke(self, payload: dict[str, Any], config: dict[str, Any] | None = None) -> dict[str, Any]:
        self.payload = payload
        self.config = config
        messages = list(payload["messages"])
        if "find_files" in self.tools:
            args = {"name_pattern": "*Storage*"}
            output = self.tools["find_files"].invoke(args)
            messages.append(
                AIMessage(content="", tool_calls=[{"name": "find_files", "args": args, "id": "call-1"}])
            )
            messages.append(ToolMessage(content=output, name="find_files", tool_call_id="call-1"))
        final_kwargs: dict[str, Any] = {"content": self.final_text}
        if self.usage is not None:
            final_kwargs["usage_metadata"] = self.usage
        messages.append(AIMessage(**final_kwargs))
        return {"messages": messages}


class _ExecutorFactory:
    def __init__(self, final_text: str, usage: dict[str, int] | None = None) -> None:
        self.final_text = final_text
        self.usage = usage
        self.tool_names: list[str] = []
        self.system_prompt = ""
        self.executor: _MockExecutor | None = None

    def __call__(self, llm: Any, tools: list[Any], system_prompt: str) -> _MockExecutor:
        self.tool_names = [tool.name for tool in tools]
        self.system_prompt = system_prompt
        self.executor = _MockExecutor(tools, self.final_text, self.usage)
        return self.executor


class _FailingFactory:
    def __call__(self, llm: Any, tools: list[Any], system_prompt: str) -> Any:
        raise RuntimeError("model endpoint unreachable")


def _project(root: Path) -> Path:
    target = root / "src" / "storage" / "FileStorageAdapter.ts"
    target.parent.mkdir(parents=True)
    target.write_text("export class FileStorageAdapter {}\n", encoding="utf-8")
    return root


def _request(content: str = "# Storage Adapters\nUse FileStorageAdapter.", existing: ExistingMapping | None = None) -> LLMDetectionRequest:
    return LLMDetectionRequest(
        doc_path="guides/storage.md",
        doc_content=content,
        doc_title="Storage Adapters",
        available_files=["src/storage/FileStorageAdapter.ts"],
        available_folders=["src", "src/storage"],
        existing_mapping=existing,
    )


_VERDICT = {
    "files": ["src/storage/FileStorageAdapter.ts"],
    "folders": ["src/storage/"],
    "confidence": "high",
    "reasoning": ["FileStorageAdapter is named in the page"],
}


@pytest.mark.asyncio()
async def test_agent_browses_and_returns_fenced_verdict(tmp_path: Path) -> None:
    factory = _ExecutorFactory(
        f"Here is my answer:\n```json\n{json.dumps(_VERDICT)}\n```",
        usage={"input_tokens": 30, "output_tokens": 12, "total_tokens": 42},
    )
    trace_store = TraceStore()
    detector = AgenticDetector(
        project_root=_project(tmp_path),
        model_name="gpt-4o-mini",
        config=AgentConfig(recursion_limit=12),
        trace_store=trace_store,
        executor_factory=factory,
    )

    response = await detector.detect(MockLLM(), _request())

    assert response.files == _VERDICT["files"]
    assert response.folders == _VERDICT["folders"]
    assert response.confidence == "high"
    assert response.reasoning == _VERDICT["reasoning"]
    assert response.model == "gpt-4o-mini"
    assert response.tokens_used == 42
    assert response.cached is False
    assert factory.executor.config == {"recursion_limit": 12}

    (trace,) = trace_store.list_recent()
    assert trace.doc_path == "guides/storage.md"
    assert [tool.name for tool in trace.tool_traces] == ["find_files"]
    assert "FileStorageAdapter.ts" in trace.tool_traces[0].output_preview
    assert trace.tokens_estimated is False
    assert [turn.role for turn in trace.transcript] == ["human", "ai", "tool", "ai"]


@pytest.mark.asyncio()
async def test_malformed_output_yields_parse_failure(tmp_path: Path) -> None:
    detector = AgenticDetector(
        project_root=_project(tmp_path),
        model_name="gpt-4o-mini",
        executor_factory=_ExecutorFactory("I think the storage folder is relevant."),
    )

    response = await detector.detect(MockLLM(), _request())

    assert response.files == []
    assert response.folders == []
    assert response.confidence == "low"
    assert response.reasoning == [PARSE_FAILURE_REASON]


@pytest.mark.asyncio()
async def test_tokens_are_estimated_without_usage(tmp_path: Path) -> None:
    factory = _ExecutorFactory(json.dumps(_VERDICT))
    detector = AgenticDetector(
        project_root=_project(tmp_path),
        model_name="gpt-4o-mini",
        prompt=PromptConfig(system_template="Map docs to code.", tools=[]),
        executor_factory=factory,
    )

    response = await detector.detect(MockLLM(), _request())

    user_message = factory.executor.payload["messages"][0].content
    expected = -(-(len(user_message) + len(json.dumps(_VERDICT))) // 4)
    assert response.tokens_used == expected
    assert response.confidence == "high"


@pytest.mark.asyncio()
async def test_executor_failure_degrades_to_low_confidence(tmp_path: Path) -> None:
    detector = AgenticDetector(
        project_root=_project(tmp_path),
        model_name="gpt-4o-mini",
        executor_factory=_FailingFactory(),
    )

    response = await detector.detect(MockLLM(), _request())

    assert response.files == []
    assert response.confidence == "low"
    assert response.reasoning == ["Error calling LLM agent: model endpoint unreachable"]


@pytest.mark.asyncio()
async def test_only_allowed_tools_are_exposed(tmp_path: Path) -> None:
    factory = _ExecutorFactory(json.dumps(_VERDICT))
    detector = AgenticDetector(
        project_root=_project(tmp_path),
        model_name="gpt-4o-mini",
        prompt=PromptConfig(
            system_template="Map docs to code.",
            tools=["read_file", "list_folders", "delete_everything"],
        ),
        executor_factory=factory,
    )

    await detector.detect(MockLLM(), _request())

    assert factory.tool_names == ["list_folders", "read_file"]
    assert factory.system_prompt == "Map docs to code."


def test_user_message_truncates_and_marks_existing_mapping(tmp_path: Path) -> None:
    detector = AgenticDetector(
        project_root=tmp_path,
        model_name="gpt-4o-mini",
        config=AgentConfig(content_char_budget=100),
    )
    request = _request(
        content="x" * 250,
        existing=ExistingMapping(files=["src/old.ts"], folders=[]),
    )

    message = detector.build_user_message(request)

    assert "Document Path: guides/storage.md" in message
    assert "Document Title: Storage Adapters" in message
    assert "x" * 100 + TRUNCATION_MARKER in message
    assert "x" * 101 not in message
    assert "**Existing Mapping (for reference):**" in message
    assert "Files: src/old.ts" in message
    assert "Folders: none" in message
    assert "may confirm, refine, or completely revise" in message


def test_short_content_is_not_truncated(tmp_path: Path) -> None:
    detector = AgenticDetector(project_root=tmp_path, model_name="gpt-4o-mini")

    message = detector.build_user_message(_request(content="short body"))

    assert "short body" in message
    assert TRUNCATION_MARKER not in message
    assert "Existing Mapping" not in message


def test_agent_tools_share_the_detection_snapshot(tmp_path: Path) -> None:
    project = tmp_path / "project"
    for relative, content in (
        (".gitignore", "generated/\n"),
        ("src/app.ts", "export {};\n"),
        ("src/generated/out.ts", "export {};\n"),
    ):
        target = project / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    detector = AgenticDetector(
        project_root=project / "src",
        model_name="gpt-4o-mini",
        ignore_file_root=project,
    )

    listing = json.loads(detector.prepare_tools().execute("list_source_files", {}))

    assert listing["data"]["files"] == ["app.ts"]


class _StateEditingExecutor:
    """Returns a transcript carrying a graph state edit next to the answer."""

    def __init__(self, final_text: str) -> None:
        self.final_text = final_text

    async def ainvoke(self, payload: dict[str, Any], config: dict[str, Any] | None = None) -> dict[str, Any]:
        messages = list(payload["messages"])
        messages.append(RemoveMessage(id="stale-1"))
        messages.append(AIMessage(content=self.final_text))
        return {"messages": messages}


@pytest.mark.asyncio()
async def test_messages_without_turn_type_do_not_discard_verdict(tmp_path: Path) -> None:
    trace_store = TraceStore()
    detector = AgenticDetector(
        project_root=_project(tmp_path),
        model_name="gpt-4o-mini",
        trace_store=trace_store,
        executor_factory=lambda llm, tools, prompt: _StateEditingExecutor(json.dumps(_VERDICT)),
    )

    response = await detector.detect(MockLLM(), _request())

    assert response.confidence == "high"
    assert response.files == _VERDICT["files"]
    (trace,) = trace_store.list_recent()
    assert [turn.role for turn in trace.transcript] == ["human", "ai"]
