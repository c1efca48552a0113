from pathlib import Path

import pytest

from source_context.agent.detector import PARSE_FAILURE_REASON, parse_llm_response
from source_context.agent.prompts import DEFAULT_PROMPT, PromptConfig
from source_context.agent.tools import FILESYSTEM_TOOL_NAMES
from source_context.types import ConfigError


def test_default_prompt_exposes_every_filesystem_tool() -> None:
    assert DEFAULT_PROMPT.name == "code-analysis"
    assert DEFAULT_PROMPT.tools == list(FILESYSTEM_TOOL_NAMES)


def test_default_prompt_describes_the_verdict_shape() -> None:
    for key in ('"files"', '"folders"', '"confidence"', '"reasoning"'):
        assert key in DEFAULT_PROMPT.system_template
    assert '"high" | "medium" | "low"' in DEFAULT_PROMPT.system_template


@pytest.mark.parametrize(
    "text",
    [
        '{"files": ["src/a.ts"], "folders": [], "confidence": "medium", "reasoning": ["r"]}',
        'Answer:\n```json\n{"files": ["src/a.ts"], "confidence": "medium", "reasoning": ["r"]}\n```',
        'Answer:\n```\n{"files": ["src/a.ts"], "confidence": "medium", "reasoning": ["r"]}\n```\nDone.',
    ],
)
def test_verdict_is_extracted_bare_or_fenced(text: str) -> None:
    assert parse_llm_response(text) == {
        "files": ["src/a.ts"],
        "folders": [],
        "confidence": "medium",
        "reasoning": ["r"],
    }


def test_unknown_confidence_and_bad_field_types_are_coerced() -> None:
    parsed = parse_llm_response('{"files": "src/a.ts", "folders": ["lib/"], "confidence": "certain"}')

    assert parsed == {"files": [], "folders": ["lib/"], "confidence": "low", "reasoning": []}


@pytest.mark.parametrize("text", ["[1, 2, 3]", "not json at all", "```json\n{broken\n```"])
def test_unparseable_output_is_a_low_confidence_failure(text: str) -> None:
    assert parse_llm_response(text) == {
        "files": [],
        "folders": [],
        "confidence": "low",
        "reasoning": [PARSE_FAILURE_REASON],
    }


def test_prompt_pack_loads_named_prompt(tmp_path: Path) -> None:
    pack = tmp_path / "prompts.yml"
    pack.write_text(
        "prompts:\n"
        "  terse:\n"
        "    system_template: Map the page to code and answer in JSON.\n"
        "    tools: [find_files, read_file]\n",
        encoding="utf-8",
    )

    prompt = PromptConfig.from_file(pack, "terse")

    assert prompt.name == "terse"
    assert prompt.tools == ["find_files", "read_file"]

    with pytest.raises(ConfigError):
        PromptConfig.from_file(pack, "code-analysis")


def test_prompt_pack_rejects_empty_template(tmp_path: Path) -> None:
    pack = tmp_path / "prompts.yml"
    pack.write_text("prompts:\n  code-analysis:\n    system_template: ''\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        PromptConfig.from_file(pack)
