"""Background batch detection over a documentation tree."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path

from source_context.detection.orchestrator import SourceContextDetector
from source_context.jobs.queue import DetectionJob, JobQueue, JobResult
from source_context.obs.logging import get_logger
from source_context.obs.tracing import Timer
from source_context.scan.file_tree import find_documentation_files
from source_context.scan.frontmatter import read_documentation_page
from source_context.storage import SourceContextStore, existing_mapping_from
from source_context.types import ExistingMapping

logger = get_logger("detect-all")


class BatchRunner:
    """Runs one detached task per job; documents are processed sequentially.

    `submit*` must be called from a running event loop. The job id is returned
    immediately and progress is observed by polling the queue.
    """

    def __init__(
        self,
        queue: JobQueue,
        detector: SourceContextDetector,
        *,
        store: SourceContextStore | None = None,
    ) -> None:
        self.queue = queue
        self.detector = detector
        self.store = store
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def submit(
        self,
        doc_files: Sequence[str],
        docs_root: str | Path,
        project_root: str | Path,
    ) -> str:
        job = self.queue.create_job(len(doc_files))
        task = asyncio.get_running_loop().create_task(
            self._run(job.id, list(doc_files), Path(docs_root), Path(project_root)),
            name=f"detect-all:{job.id}",
        )
        self._tasks[job.id] = task
        task.add_done_callback(lambda done: self._finished(job.id, done))
        logger.info("Started background processing for job %s", job.id)
        return job.id

    def submit_directory(self, docs_root: str | Path, project_root: str | Path) -> str:
        """Enumerate pages under `docs_root` and submit them as one job.

        An enumeration failure still yields a job id, for a job that is
        already failed.
        """
        try:
            doc_files = find_documentation_files(docs_root, self.detector.config.docs_globs)
        except (OSError, ValueError) as exc:
            logger.error("Failed to enumerate documentation under %s: %s", docs_root, exc)
            job = self.queue.create_job(0)
            self.queue.fail_job(job.id, str(exc))
            return job.id
        logger.info("Found %d documentation files under %s", len(doc_files), docs_root)
        return self.submit(doc_files, docs_root, project_root)

    async def wait(self, job_id: str) -> DetectionJob | None:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self.queue.get_job(job_id)

    async def join(self) -> None:
        """Wait for every in-flight job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def _finished(self, job_id: str, task: asyncio.Task[None]) -> None:
        self._tasks.pop(job_id, None)
        if not task.cancelled():
            return
        job = self.queue.get_job(job_id)
        if job is not None and job.status in ("pending", "running"):
            logger.warning("Background job %s cancelled", job_id)
            self.queue.fail_job(job_id, "Job cancelled")

    async def _run(
        self, job_id: str, doc_files: list[str], docs_root: Path, project_root: Path
    ) -> None:
        try:
            await self._process(job_id, doc_files, docs_root, project_root)
        except Exception as exc:
            logger.error("Background job %s error: %s", job_id, exc, exc_info=True)
            self.queue.fail_job(job_id, str(exc) or type(exc).__name__)

    async def _process(
        self, job_id: str, doc_files: list[str], docs_root: Path, project_root: Path
    ) -> None:
        log = get_logger(f"detect-all:{job_id}")
        log.info("Background processing started for %d files", len(doc_files))
        self.queue.update_job(job_id, status="running")

        completed = 0
        with Timer() as timer:
            for doc_file in doc_files:
                log.info("Processing (%d/%d): %s", completed + 1, len(doc_files), doc_file)
                self.queue.update_progress(job_id, completed, doc_file)
                try:
                    page = await asyncio.to_thread(read_documentation_page, docs_root / doc_file)
                    page.path = doc_file
                    result = await self.detector.detect_page(
                        page,
                        project_root,
                        existing_mapping=self._existing_mapping(docs_root / doc_file),
                    )
                    self.queue.add_result(
                        job_id,
                        JobResult(
                            doc_path=doc_file,
                            files=result.source_context.files,
                            folders=result.source_context.folders,
                            confidence=result.confidence,
                            reasoning=result.reasoning,
                        ),
                    )
                    log.info(
                        "%s complete - %d files, %d folders, confidence: %s",
                        doc_file,
                        len(result.source_context.files),
                        len(result.source_context.folders),
                        result.confidence,
                    )
                except Exception as exc:
                    log.error("Error processing %s: %s", doc_file, exc, exc_info=True)
                completed += 1
                self.queue.update_progress(job_id, completed)

        if doc_files:
            log.info(
                "Completed all %d files in %.1fs (avg: %dms/file)",
                len(doc_files),
                timer.elapsed_ms / 1000.0,
                round(timer.elapsed_ms / len(doc_files)),
            )
        self.queue.complete_job(job_id)

    def _existing_mapping(self, doc_path: Path) -> ExistingMapping | None:
        if self.store is None:
            return None
        try:
            return existing_mapping_from(self.store.read_source_context(str(doc_path)))
        except Exception as exc:
            logger.warning("Could not read stored mapping for %s: %s", doc_path, exc)
            return None
