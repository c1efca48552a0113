"""LLM provider factory and the OpenAI-backed agentic provider."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol

from source_context.agent.cache import LLMCache
from source_context.agent.detector import AgenticDetector, ExecutorFactory
from source_context.agent.prompts import PromptConfig
from source_context.config import AgentConfig, LLMProviderConfig
from source_context.obs.logging import get_logger
from source_context.obs.tracing import TraceStore
from source_context.types import (
    LLMDetectionRequest,
    LLMDetectionResponse,
    ProviderNotImplementedError,
)

logger = get_logger("llm-agentic")


class LLMProvider(Protocol):
    name: str
    model_name: str

    def is_available(self) -> bool: ...

    async def detect_source_context(
        self, request: LLMDetectionRequest
    ) -> LLMDetectionResponse: ...


class OpenAIAgenticProvider:
    """Agentic detection through `ChatOpenAI`, fronted by an optional cache."""

    name = "openai-agentic"

    def __init__(
        self,
        config: LLMProviderConfig,
        project_root: str | Path,
        *,
        cache: LLMCache | None = None,
        trace_store: TraceStore | None = None,
        agent_config: AgentConfig | None = None,
        prompt: PromptConfig | None = None,
        exclude_patterns: Iterable[str] = (),
        ignore_file_root: str | Path | None = None,
        llm: Any | None = None,
        executor_factory: ExecutorFactory | None = None,
    ) -> None:
        self.config = config
        self.model_name = config.model
        self.trace_store = trace_store
        self._llm = llm
        if cache is None and config.cache_results:
            cache = LLMCache(config.cache_ttl)
        self.cache = cache if config.cache_results else None
        self.detector = AgenticDetector(
            project_root=project_root,
            model_name=config.model,
            prompt=prompt,
            config=agent_config,
            exclude_patterns=exclude_patterns,
            ignore_file_root=ignore_file_root,
            trace_store=trace_store,
            executor_factory=executor_factory,
        )

    def is_available(self) -> bool:
        return bool(self.config.api_key)

    @property
    def llm(self) -> Any:
        if self._llm is None:
            from langchain_openai import ChatOpenAI

            self._llm = ChatOpenAI(
                model=self.config.model,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                api_key=self.config.api_key,
                organization=self.config.organization,
                base_url=self.config.base_url,
            )
        return self._llm

    async def detect_source_context(
        self, request: LLMDetectionRequest
    ) -> LLMDetectionResponse:
        if self.cache is not None:
            cached = self.cache.get(request)
            if cached is not None:
                logger.info("Cache hit for %s", request.doc_path)
                if self.trace_store is not None:
                    self.trace_store.create_record(
                        doc_path=request.doc_path,
                        model=self.model_name,
                        confidence=cached.confidence,
                        tokens_used=cached.tokens_used or 0,
                        cached=True,
                    )
                return cached

        result = await self.detector.detect(self.llm, request)

        if self.cache is not None and result.confidence != "low":
            self.cache.set(request, result, self.config.cache_ttl)
            logger.debug("Result cached")
        return result

    def get_cache_stats(self) -> dict[str, int] | None:
        return self.cache.get_stats() if self.cache is not None else None

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()


def create_llm_provider(
    config: LLMProviderConfig, project_root: str | Path, **kwargs: Any
) -> LLMProvider:
    """Build the provider for `config.type`.

    Raises:
        ProviderNotImplementedError: for provider types without an implementation.
    """
    if config.type == "openai":
        return OpenAIAgenticProvider(config, project_root, **kwargs)
    if config.type == "anthropic":
        raise ProviderNotImplementedError("Anthropic provider not yet implemented")
    if config.type == "local":
        raise ProviderNotImplementedError("Local model provider not yet implemented")
    raise ProviderNotImplementedError(f"Unknown LLM provider type: {config.type}")


def is_llm_available(
    config: LLMProviderConfig | None, project_root: str | Path = "."
) -> bool:
    if config is None:
        return False
    try:
        provider = create_llm_provider(config, project_root)
    except ProviderNotImplementedError:
        return False
    return provider.is_available()
