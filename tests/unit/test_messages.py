import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from source_context.agent.messages import (
    AITurn,
    HumanTurn,
    SystemTurn,
    ToolTurn,
    content_text,
    count_tokens,
    final_answer,
    to_turn,
    to_turns,
)


def _transcript() -> list:
    return [
        SystemMessage(content="You map docs to code."),
        HumanMessage(content="Analyze storage.md"),
        AIMessage(
            content="",
            tool_calls=[{"name": "find_files", "args": {"name_pattern": "*storage*"}, "id": "call-1"}],
            usage_metadata={"input_tokens": 10, "output_tokens": 5, "total_tokens": 15},
        ),
        ToolMessage(content='{"ok": true}', name="find_files", tool_call_id="call-1"),
        AIMessage(
            content='{"files": [], "confidence": "low"}',
            usage_metadata={"input_tokens": 20, "output_tokens": 7, "total_tokens": 27},
        ),
    ]


def test_langchain_messages_become_typed_turns() -> None:
    turns = to_turns(_transcript())

    assert [type(turn) for turn in turns] == [SystemTurn, HumanTurn, AITurn, ToolTurn, AITurn]
    assert turns[2].tool_calls[0].name == "find_files"
    assert turns[2].tool_calls[0].args == {"name_pattern": "*storage*"}
    assert turns[3].tool_name == "find_files"
    assert turns[3].tool_call_id == "call-1"
    assert final_answer(turns) == '{"files": [], "confidence": "low"}'


def test_count_tokens_prefers_reported_usage() -> None:
    assert count_tokens(to_turns(_transcript())) == (42, False)


def test_count_tokens_estimates_from_characters() -> None:
    turns = to_turns(
        [
            {"role": "user", "content": "a" * 10},
            {"role": "assistant", "content": "b" * 11},
        ]
    )

    assert count_tokens(turns) == (6, True)


def test_block_content_is_flattened() -> None:
    assert content_text([{"type": "text", "text": "Hello "}, "world"]) == "Hello world"
    assert to_turn({"role": "assistant", "content": [{"type": "text", "text": "ok"}]}).content == "ok"


def test_unknown_role_is_rejected() -> None:
    with pytest.raises(ValueError):
        to_turn({"role": "narrator", "content": "..."})


def test_final_answer_of_empty_transcript() -> None:
    assert final_answer([]) == ""


def test_transcript_skips_unknown_roles() -> None:
    turns = to_turns(
        [
            {"role": "user", "content": "Analyze storage.md"},
            {"role": "remove", "content": ""},
            {"role": "assistant", "content": '{"confidence": "high"}'},
        ]
    )

    assert [turn.role for turn in turns] == ["human", "ai"]
    assert final_answer(turns) == '{"confidence": "high"}'
