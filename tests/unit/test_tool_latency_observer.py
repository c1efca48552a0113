import json

from pydantic import BaseModel

from source_context.agent.registry import ToolRegistry, ToolResult, ToolSpec


class EchoInput(BaseModel):
    text: str


def test_tool_observer_captures_latency_and_payload() -> None:
    registry = ToolRegistry()

    def _handler(data: EchoInput) -> ToolResult:
        return ToolResult.success(text=data.text.upper())

    registry.register(
        ToolSpec(
            name="echo",
            description="uppercase",
            args_schema=EchoInput,
            handler=_handler,
        )
    )

    observed = []
    registry.set_observer(observed.append)
    result = registry.execute("echo", {"text": "hello"})
    registry.set_observer(None)

    assert json.loads(result)["data"] == {"text": "HELLO"}
    assert len(observed) == 1
    assert observed[0].name == "echo"
    assert observed[0].input_payload == {"text": "hello"}
    assert observed[0].output_preview == result
    assert observed[0].latency_ms >= 0.0


def test_langchain_tool_calls_reach_observer() -> None:
    registry = ToolRegistry()

    def _handler(data: EchoInput) -> ToolResult:
        return ToolResult.success(length=len(data.text))

    registry.register(
        ToolSpec(name="measure", description="length", args_schema=EchoInput, handler=_handler)
    )
    observed = []
    registry.set_observer(observed.append)

    (tool,) = registry.as_langchain_tools()
    output = tool.invoke({"text": "abcd"})

    assert json.loads(output) == {"ok": True, "data": {"length": 4}}
    assert [trace.name for trace in observed] == ["measure"]
