"""Detection orchestrator: LLM first, rule and keyword matching as fallback."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

from source_context.agent.cache import LLMCache
from source_context.agent.provider import LLMProvider, create_llm_provider
from source_context.config import DetectionConfig, LLMProviderConfig
from source_context.detection.fallback import RuleBasedDetector
from source_context.matching.rules import ContextMatcher
from source_context.obs.logging import get_logger
from source_context.obs.tracing import TraceStore
from source_context.scan.file_tree import (
    build_file_tree,
    extract_folders,
    find_documentation_files,
    flatten_file_tree,
    path_exists,
)
from source_context.scan.frontmatter import parse_document, read_documentation_page
from source_context.types import (
    ContextDetectionResult,
    DocumentPage,
    ExistingMapping,
    LLMDetectionRequest,
    LLMDetectionResponse,
    ProviderNotImplementedError,
    SourceContext,
    ValidationResult,
    utc_now_iso,
)

logger = get_logger("source-detection")

# Called as `factory(provider_config, scan_root, project_root)`.
ProviderFactory = Callable[[LLMProviderConfig, Path, Path], LLMProvider]


class SourceContextDetector:
    """Maps one documentation page to the source it describes."""

    def __init__(
        self,
        config: DetectionConfig | None = None,
        *,
        cache: LLMCache | None = None,
        trace_store: TraceStore | None = None,
        provider_factory: ProviderFactory | None = None,
    ) -> None:
        self.config = config or DetectionConfig()
        if cache is None and self.config.llm_provider is not None:
            cache = LLMCache(self.config.llm_provider.cache_ttl)
        self.cache = cache
        self.trace_store = trace_store
        self._provider_factory = provider_factory or self._default_provider
        self.rule_detector = RuleBasedDetector(
            matcher=ContextMatcher.from_conventions(self.config.conventions),
            exclude_patterns=self.config.exclude_patterns,
        )

    async def detect(
        self,
        doc_path: str,
        doc_content: str,
        project_root: str | Path,
        *,
        existing_mapping: ExistingMapping | None = None,
    ) -> ContextDetectionResult:
        """Detect from raw page text; front matter is stripped before analysis.

        Raises:
            OSError: only when the scanned root itself cannot be read.
        """
        page = parse_document(doc_content, path=doc_path)
        return await self.detect_page(page, project_root, existing_mapping=existing_mapping)

    async def detect_page(
        self,
        page: DocumentPage,
        project_root: str | Path,
        *,
        existing_mapping: ExistingMapping | None = None,
    ) -> ContextDetectionResult:
        logger.debug("Starting detection for %s", page.path)
        scan_root = self.config.scan_root(project_root)
        file_tree = await asyncio.to_thread(
            build_file_tree,
            scan_root,
            self.config.exclude_patterns,
            ignore_file_root=project_root,
        )
        available_files = flatten_file_tree(file_tree)
        available_folders = extract_folders(file_tree)
        logger.debug(
            "Found %d files, %d folders under %s",
            len(available_files),
            len(available_folders),
            scan_root,
        )

        notes: list[str] = []
        if self.config.llm_provider is not None:
            request = LLMDetectionRequest(
                doc_path=page.path,
                doc_content=page.content,
                doc_title=page.title,
                available_files=available_files,
                available_folders=available_folders,
                existing_mapping=existing_mapping,
            )
            llm_result, note = await self._try_llm(
                self.config.llm_provider, scan_root, Path(project_root), request
            )
            if llm_result is not None:
                return llm_result
            if note:
                notes.append(note)
        else:
            logger.debug("No LLM provider configured, using rule-based detection")

        return await asyncio.to_thread(
            self.rule_detector.detect,
            doc_path=page.path,
            scan_root=scan_root,
            file_tree=file_tree,
            body=page.content,
            title=page.title,
            notes=notes,
        )

    async def _try_llm(
        self,
        provider_config: LLMProviderConfig,
        scan_root: Path,
        project_root: Path,
        request: LLMDetectionRequest,
    ) -> tuple[ContextDetectionResult | None, str | None]:
        try:
            provider = self._provider_factory(provider_config, scan_root, project_root)
        except ProviderNotImplementedError as exc:
            logger.info("LLM provider %s unavailable (%s), using fallback", provider_config.type, exc)
            return None, None

        if not provider.is_available():
            logger.info(
                "LLM provider %s not available (missing API key), using fallback",
                provider_config.type,
            )
            return None, None

        logger.info("Attempting LLM-powered detection with %s", provider_config.type)
        try:
            response = await provider.detect_source_context(request)
        except Exception as exc:
            logger.error("LLM detection failed: %s", exc, exc_info=True)
            if not self.config.fallback_to_rules:
                return _llm_failure_result(provider.model_name, exc, self.config), None
            return None, f"LLM detection failed: {exc}"

        logger.info(
            "LLM responded with confidence: %s, files: %d, folders: %d%s",
            response.confidence,
            len(response.files),
            len(response.folders),
            " (cached)" if response.cached else "",
        )
        if response.confidence != "low" or not self.config.fallback_to_rules:
            return build_llm_result(response, self.config), None

        logger.warning(
            "LLM confidence too low (%s), falling back to rule-based detection",
            response.confidence,
        )
        return None, f"LLM confidence too low ({response.confidence}), used fallback"

    def _default_provider(
        self, config: LLMProviderConfig, scan_root: Path, project_root: Path
    ) -> LLMProvider:
        return create_llm_provider(
            config,
            scan_root,
            ignore_file_root=project_root,
            cache=self.cache,
            trace_store=self.trace_store,
            agent_config=self.config.agent,
            exclude_patterns=self.config.exclude_patterns,
        )


def build_llm_result(
    response: LLMDetectionResponse, config: DetectionConfig
) -> ContextDetectionResult:
    header = f"LLM-powered detection ({response.model})"
    if response.cached:
        header += " [cached]"
    return ContextDetectionResult(
        source_context=SourceContext(
            files=list(response.files),
            folders=list(response.folders),
            exclude=list(config.exclude_patterns),
            manual=False,
            confidence=response.confidence,
            last_updated=utc_now_iso(),
        ),
        confidence=response.confidence,
        reasoning=[header, *response.reasoning],
    )


def _llm_failure_result(
    model: str, exc: Exception, config: DetectionConfig
) -> ContextDetectionResult:
    return build_llm_result(
        LLMDetectionResponse(
            confidence="low",
            reasoning=[f"Error calling LLM agent: {exc}"],
            model=model,
        ),
        config,
    )


async def detect_source_context(
    doc_path: str,
    doc_content: str,
    project_root: str | Path,
    config: DetectionConfig | None = None,
    **kwargs: Any,
) -> ContextDetectionResult:
    """Detect the source context of one page with a throwaway detector."""
    detector = SourceContextDetector(config, **kwargs)
    return await detector.detect(doc_path, doc_content, project_root)


async def detect_all_source_contexts(
    docs_root: str | Path,
    project_root: str | Path,
    config: DetectionConfig | None = None,
    *,
    detector: SourceContextDetector | None = None,
) -> dict[str, ContextDetectionResult]:
    """Detect every page under `docs_root` in order, without a job."""
    detector = detector or SourceContextDetector(config)
    docs_base = Path(docs_root)
    results: dict[str, ContextDetectionResult] = {}
    for doc_file in find_documentation_files(docs_base, detector.config.docs_globs):
        page = await asyncio.to_thread(read_documentation_page, docs_base / doc_file)
        page.path = doc_file
        results[doc_file] = await detector.detect_page(page, project_root)
    return results


def validate_source_context(
    context: SourceContext, project_root: str | Path
) -> ValidationResult:
    """Report mapped files and folders that no longer exist on disk."""
    root = Path(project_root)
    errors = [
        f"File does not exist: {file}"
        for file in context.files
        if not path_exists(root / file)
    ]
    errors.extend(
        f"Folder does not exist: {folder}"
        for folder in context.folders
        if not path_exists(root / folder)
    )
    return ValidationResult(valid=not errors, errors=errors)
