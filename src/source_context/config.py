"""Configuration models for source context detection."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from source_context.types import ConfigError

DEFAULT_EXCLUDE_PATTERNS: list[str] = [
    "**/*.test.ts",
    "**/*.spec.ts",
    "**/*.test.js",
    "**/*.spec.js",
]

DEFAULT_DOCS_GLOBS: list[str] = ["**/*.md", "**/*.mdx", "**/*.astro"]


class LLMProviderConfig(BaseModel):
    """Connection and caching settings for the LLM provider."""

    type: Literal["openai", "anthropic", "local"] = "openai"
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4000, ge=1)
    cache_results: bool = True
    cache_ttl: int = Field(default=3600, ge=1)
    organization: str | None = None
    base_url: str | None = None
    endpoint: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)


class AgentConfig(BaseModel):
    """Configures the agentic detector's prompt budget and step bound."""

    content_char_budget: int = Field(default=6000, ge=100)
    recursion_limit: int = Field(default=25, ge=2)
    log_preview_chars: int = Field(default=200, ge=20)


class JobQueueConfig(BaseModel):
    """Capacity and retention of the in-memory job store."""

    max_jobs: int = Field(default=100, ge=1)
    job_ttl_seconds: float = Field(default=3600.0, gt=0.0)


class DetectionConfig(BaseModel):
    """Configures a single detection run or a batch of them."""

    enabled: bool = True
    auto_detect: bool = True
    source_root: str | None = None
    exclude_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS)
    )
    confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    conventions: dict[str, list[str]] = Field(default_factory=dict)
    frontmatter_namespace: str = "aiCoauthor"
    llm_provider: LLMProviderConfig | None = None
    fallback_to_rules: bool = True
    docs_globs: list[str] = Field(default_factory=lambda: list(DEFAULT_DOCS_GLOBS))
    agent: AgentConfig = Field(default_factory=AgentConfig)

    def scan_root(self, project_root: str | Path) -> Path:
        """Directory whose snapshot feeds detection."""
        root = Path(project_root)
        if self.source_root is None:
            return root.resolve()
        return (root / self.source_root).resolve()


def llm_provider_from_env(
    environ: Mapping[str, str] | None = None,
) -> LLMProviderConfig | None:
    env = os.environ if environ is None else environ
    api_key = env.get("OPENAI_API_KEY")
    if not api_key:
        return None
    return LLMProviderConfig(
        type="openai",
        api_key=api_key,
        model=env.get("OPENAI_MODEL", "gpt-4o-mini"),
        base_url=env.get("OPENAI_BASE_URL") or None,
    )


def load_config(path: str | Path) -> DetectionConfig:
    """Load a `.source-context.yml` file; a missing file yields defaults."""
    config_path = Path(path)
    if not config_path.exists():
        return DetectionConfig()

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc

    if data is None:
        return DetectionConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {config_path}")

    try:
        return DetectionConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {config_path}: {exc}") from exc
