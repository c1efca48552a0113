"""Detection tracing, token cost accounting and LLM statistics."""

from __future__ import annotations

import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from source_context.types import ConfidenceLevel, ToolTrace, utc_now_iso

_CONFIDENCE_SCORES: dict[str, float] = {"high": 1.0, "medium": 0.5, "low": 0.0}


@dataclass(slots=True)
class DetectionTrace:
    trace_id: str
    timestamp_utc: str
    doc_path: str
    model: str
    confidence: ConfidenceLevel
    tool_traces: list[ToolTrace] = field(default_factory=list)
    tokens_used: int = 0
    tokens_estimated: bool = False
    estimated_cost_usd: float = 0.0
    latency_ms: float = 0.0
    cached: bool = False
    # Typed agent turns, in order.
    transcript: list[Any] = field(default_factory=list)


@dataclass(slots=True)
class CostModel:
    """Simple token pricing model (USD per 1K tokens)."""

    usd_per_1k: float = 0.0006

    def estimate_cost(self, tokens: int) -> float:
        return (tokens / 1000.0) * self.usd_per_1k


class TraceStore:
    """In-memory store of LLM detection traces."""

    def __init__(self, *, cost_model: CostModel | None = None, max_records: int = 1000) -> None:
        self._records: dict[str, DetectionTrace] = {}
        self._cost_model = cost_model or CostModel()
        self._max_records = max_records

    def create_record(
        self,
        *,
        doc_path: str,
        model: str,
        confidence: ConfidenceLevel,
        tool_traces: list[ToolTrace] | None = None,
        tokens_used: int = 0,
        tokens_estimated: bool = False,
        latency_ms: float = 0.0,
        cached: bool = False,
        transcript: list[Any] | None = None,
    ) -> DetectionTrace:
        trace_id = str(uuid.uuid4())
        record = DetectionTrace(
            trace_id=trace_id,
            timestamp_utc=utc_now_iso(),
            doc_path=doc_path,
            model=model,
            confidence=confidence,
            tool_traces=list(tool_traces or []),
            tokens_used=tokens_used,
            tokens_estimated=tokens_estimated,
            # Cache hits cost nothing.
            estimated_cost_usd=0.0 if cached else self._cost_model.estimate_cost(tokens_used),
            latency_ms=latency_ms,
            cached=cached,
            transcript=list(transcript or []),
        )
        self._records[trace_id] = record
        while len(self._records) > self._max_records:
            del self._records[next(iter(self._records))]
        return record

    def get(self, trace_id: str) -> DetectionTrace:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[DetectionTrace]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, object]:
        """Aggregate LLM usage statistics across recorded detections."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "cache_hits": 0,
                "cache_misses": 0,
                "total_tokens": 0,
                "total_cost_usd": 0.0,
                "average_confidence": 0.0,
                "avg_latency_ms": 0.0,
                "confidence_breakdown": {},
                "model_breakdown": {},
            }

        hits = sum(1 for record in records if record.cached)
        return {
            "total_requests": total,
            "cache_hits": hits,
            "cache_misses": total - hits,
            "total_tokens": sum(record.tokens_used for record in records),
            "total_cost_usd": sum(record.estimated_cost_usd for record in records),
            "average_confidence": sum(
                _CONFIDENCE_SCORES[record.confidence] for record in records
            )
            / total,
            "avg_latency_ms": sum(record.latency_ms for record in records) / total,
            "confidence_breakdown": dict(Counter(record.confidence for record in records)),
            "model_breakdown": dict(Counter(record.model for record in records)),
        }

    def clear(self) -> None:
        self._records.clear()


class Timer:
    """Simple context timer used by the detector."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
