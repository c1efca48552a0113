"""Process-wide service object wiring the detection engine together."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path

from source_context.agent.cache import LLMCache
from source_context.config import (
    DetectionConfig,
    JobQueueConfig,
    llm_provider_from_env,
    load_config,
)
from source_context.detection.orchestrator import (
    ProviderFactory,
    SourceContextDetector,
    validate_source_context,
)
from source_context.jobs.queue import DetectionJob, JobQueue
from source_context.jobs.runner import BatchRunner
from source_context.obs.logging import get_logger
from source_context.obs.tracing import DetectionTrace, TraceStore
from source_context.storage import SourceContextStore
from source_context.types import (
    ContextDetectionResult,
    ExistingMapping,
    SourceContext,
    ValidationResult,
)

logger = get_logger("service")


class SourceContextService:
    """Owns the job queue, response cache and traces for the process lifetime.

    Create one at startup and call `aclose()` on shutdown.
    """

    def __init__(
        self,
        project_root: str | Path,
        config: DetectionConfig | None = None,
        *,
        queue_config: JobQueueConfig | None = None,
        store: SourceContextStore | None = None,
        provider_factory: ProviderFactory | None = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.config = config or DetectionConfig()
        ttl = self.config.llm_provider.cache_ttl if self.config.llm_provider else 3600
        self.cache = LLMCache(ttl)
        self.trace_store = TraceStore()
        self.queue = JobQueue(queue_config)
        self.detector = SourceContextDetector(
            self.config,
            cache=self.cache,
            trace_store=self.trace_store,
            provider_factory=provider_factory,
        )
        self.runner = BatchRunner(self.queue, self.detector, store=store)

    async def detect(
        self,
        doc_path: str,
        doc_content: str,
        *,
        existing_mapping: ExistingMapping | None = None,
    ) -> ContextDetectionResult:
        return await self.detector.detect(
            doc_path, doc_content, self.project_root, existing_mapping=existing_mapping
        )

    def start_batch(self, docs_root: str | Path) -> str:
        return self.runner.submit_directory(docs_root, self.project_root)

    def start_batch_for(self, doc_files: Sequence[str], docs_root: str | Path) -> str:
        return self.runner.submit(doc_files, docs_root, self.project_root)

    def get_job(self, job_id: str) -> DetectionJob | None:
        return self.queue.get_job(job_id)

    def get_all_jobs(self) -> list[DetectionJob]:
        return self.queue.get_all_jobs()

    def validate(self, context: SourceContext) -> ValidationResult:
        return validate_source_context(context, self.config.scan_root(self.project_root))

    def llm_stats(self) -> dict[str, object]:
        return {**self.trace_store.summary(), "cache": self.cache.get_stats()}

    def recent_traces(self, limit: int = 20) -> list[DetectionTrace]:
        return self.trace_store.list_recent(limit)

    def get_trace(self, trace_id: str) -> DetectionTrace:
        """Look up one detection trace; raises KeyError for an unknown id."""
        return self.trace_store.get(trace_id)

    async def aclose(self) -> None:
        """Wait for running batch jobs, then drop cached responses."""
        if self.runner.in_flight:
            logger.info("Waiting for %d running job(s)", self.runner.in_flight)
        await self.runner.join()
        self.cache.clear()


def create_service(
    project_root: str | Path,
    *,
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    store: SourceContextStore | None = None,
) -> SourceContextService:
    """Build a service from an optional YAML config plus OpenAI environment settings."""
    root = Path(project_root)
    config = load_config(config_path or root / ".source-context.yml")
    if config.llm_provider is None:
        provider = llm_provider_from_env(environ)
        if provider is not None:
            config = config.model_copy(update={"llm_provider": provider})
    logger.info(
        "LLM provider: %s",
        config.llm_provider.type if config.llm_provider else "none (using fallback)",
    )
    return SourceContextService(root, config, store=store)
