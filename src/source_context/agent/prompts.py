"""Prompt configuration for the agentic detector."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from source_context.agent.tools import FILESYSTEM_TOOL_NAMES
from source_context.types import ConfigError

DEFAULT_PROMPT_NAME = "code-analysis"

_SYSTEM_TEMPLATE = """
You are a code analysis assistant that maps documentation pages to the source
files and folders they describe.

Process:
1) Explore the project with the filesystem tools before deciding.
2) Prefer specific files over whole folders; use folders for broad topics.
3) Only report paths that exist, relative to the project root.
4) Treat any existing mapping as a hint that may be wrong.

Respond with a single JSON object and nothing else:
{
  "files": ["relative/path/to/file.ts"],
  "folders": ["relative/path/to/folder/"],
  "confidence": "high" | "medium" | "low",
  "reasoning": ["short explanation per decision"]
}
""".strip()


class PromptConfig(BaseModel):
    """System prompt plus the tool names the model may call."""

    name: str = DEFAULT_PROMPT_NAME
    system_template: str = Field(min_length=1)
    tools: list[str] = Field(default_factory=list)

    @classmethod
    def from_file(cls, path: str | Path, name: str = DEFAULT_PROMPT_NAME) -> PromptConfig:
        """Load one prompt from a YAML pack shaped as `{prompts: {<name>: {...}}}`."""
        pack_path = Path(path)
        try:
            data = yaml.safe_load(pack_path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Cannot load prompt pack {pack_path}: {exc}") from exc

        prompts = data.get("prompts") if isinstance(data, dict) else None
        if not isinstance(prompts, dict) or name not in prompts:
            raise ConfigError(f'Prompt "{name}" not found in pack {pack_path}')
        try:
            return cls.model_validate({"name": name, **prompts[name]})
        except ValidationError as exc:
            raise ConfigError(f'Invalid prompt "{name}" in {pack_path}: {exc}') from exc


DEFAULT_PROMPT = PromptConfig(
    name=DEFAULT_PROMPT_NAME,
    system_template=_SYSTEM_TEMPLATE,
    tools=list(FILESYSTEM_TOOL_NAMES),
)
