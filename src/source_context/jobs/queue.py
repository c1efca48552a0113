"""In-memory store of batch detection jobs."""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import ConfigDict, Field

from source_context.config import JobQueueConfig
from source_context.obs.logging import get_logger
from source_context.types import WireModel

logger = get_logger("job-queue")

JobStatus = Literal["pending", "running", "completed", "failed"]


class JobProgress(WireModel):
    total: int
    completed: int = 0
    current: str | None = None


class JobResult(WireModel):
    doc_path: str
    files: list[str] = Field(default_factory=list)
    folders: list[str] = Field(default_factory=list)
    confidence: str
    reasoning: list[str] = Field(default_factory=list)


class DetectionJob(WireModel):
    model_config = ConfigDict(validate_assignment=True)

    id: str
    status: JobStatus = "pending"
    progress: JobProgress
    results: list[JobResult] = Field(default_factory=list)
    error: str | None = None
    started_at: str
    completed_at: str | None = None


@dataclass(slots=True)
class _Slot:
    job: DetectionJob
    created: float
    sequence: int


class JobQueue:
    """Capacity- and TTL-bounded job store.

    Every mutator on an unknown id is a silent no-op that returns False, so
    batch workers can report progress without checking for eviction first.
    Readers receive copies; only the queue mutates stored jobs.
    """

    def __init__(
        self,
        config: JobQueueConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or JobQueueConfig()
        self._clock = clock
        self._slots: dict[str, _Slot] = {}
        self._sequence = 0

    def create_job(self, total: int) -> DetectionJob:
        now = self._clock()
        job_id = f"job_{int(now * 1000)}_{uuid.uuid4().hex[:9]}"
        job = DetectionJob(
            id=job_id,
            progress=JobProgress(total=total),
            started_at=_iso(now),
        )
        self._sequence += 1
        self._slots[job_id] = _Slot(job=job, created=now, sequence=self._sequence)
        logger.info("Created job %s for %d pages", job_id, total)
        self._cleanup(now)
        return job.model_copy(deep=True)

    def get_job(self, job_id: str) -> DetectionJob | None:
        slot = self._slots.get(job_id)
        if slot is None:
            logger.warning("Job %s not found", job_id)
            return None
        return slot.job.model_copy(deep=True)

    def update_job(self, job_id: str, **changes: Any) -> bool:
        slot = self._slots.get(job_id)
        if slot is None:
            logger.warning("Cannot update job %s - not found", job_id)
            return False
        job = slot.job
        status = changes.get("status")
        if status is not None and status != job.status:
            logger.debug("Job %s status: %s -> %s", job_id, job.status, status)
        for name, value in changes.items():
            if name not in DetectionJob.model_fields:
                raise ValueError(f"Unknown job field: {name}")
            setattr(job, name, value)
        return True

    def update_progress(self, job_id: str, completed: int, current: str | None = None) -> bool:
        slot = self._slots.get(job_id)
        if slot is None:
            return False
        progress = slot.job.progress
        progress.completed = completed
        if current:
            progress.current = current
        percent = round(completed / progress.total * 100) if progress.total else 100
        logger.debug(
            "Job %s progress: %d/%d (%d%%)%s",
            job_id,
            completed,
            progress.total,
            percent,
            f" - {current}" if current else "",
        )
        return True

    def add_result(self, job_id: str, result: JobResult) -> bool:
        slot = self._slots.get(job_id)
        if slot is None:
            return False
        slot.job.results.append(result)
        return True

    def complete_job(self, job_id: str) -> bool:
        slot = self._slots.get(job_id)
        if slot is None:
            return False
        now = self._clock()
        slot.job.status = "completed"
        slot.job.completed_at = _iso(now)
        logger.info(
            "Job %s completed in %ds - %d results",
            job_id,
            round(now - slot.created),
            len(slot.job.results),
        )
        return True

    def fail_job(self, job_id: str, error: str) -> bool:
        slot = self._slots.get(job_id)
        if slot is None:
            return False
        slot.job.status = "failed"
        slot.job.error = error
        slot.job.completed_at = _iso(self._clock())
        logger.error("Job %s failed: %s", job_id, error)
        return True

    def get_all_jobs(self) -> list[DetectionJob]:
        """Jobs newest first; ties on start time keep the later-created job first."""
        return [slot.job.model_copy(deep=True) for slot in self._newest_first()]

    def __len__(self) -> int:
        return len(self._slots)

    def _newest_first(self) -> list[_Slot]:
        return sorted(
            self._slots.values(),
            key=lambda slot: (slot.created, slot.sequence),
            reverse=True,
        )

    def _cleanup(self, now: float) -> None:
        removed = 0
        for job_id, slot in list(self._slots.items()):
            if now - slot.created > self.config.job_ttl_seconds:
                del self._slots[job_id]
                removed += 1

        if len(self._slots) > self.config.max_jobs:
            keep = self._newest_first()[: self.config.max_jobs]
            removed += len(self._slots) - len(keep)
            self._slots = {slot.job.id: slot for slot in keep}

        if removed:
            logger.debug(
                "Cleaned up %d old/excess jobs (current: %d)", removed, len(self._slots)
            )


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
