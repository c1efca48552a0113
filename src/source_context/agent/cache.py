"""In-memory TTL cache for LLM detection responses."""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from dataclasses import dataclass

from source_context.types import LLMDetectionRequest, LLMDetectionResponse


@dataclass(slots=True)
class LLMCacheEntry:
    request: LLMDetectionRequest
    response: LLMDetectionResponse
    timestamp: float
    ttl: float


class LLMCache:
    """Caches detection responses keyed by a lossy request fingerprint.

    The fingerprint uses the counts of available files and folders rather than
    their identity, so two snapshots with equal counts share entries.
    Expired entries are evicted lazily by `get` and explicitly by `cleanup`.
    """

    def __init__(
        self, default_ttl: float = 3600, *, clock: Callable[[], float] = time.time
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, LLMCacheEntry] = {}

    def get(self, request: LLMDetectionRequest) -> LLMDetectionResponse | None:
        key = fingerprint(request)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            del self._entries[key]
            return None
        return entry.response.model_copy(update={"cached": True})

    def set(
        self,
        request: LLMDetectionRequest,
        response: LLMDetectionResponse,
        ttl: float | None = None,
    ) -> None:
        self._entries[fingerprint(request)] = LLMCacheEntry(
            request=request,
            response=response.model_copy(),
            timestamp=self._clock(),
            ttl=ttl or self.default_ttl,
        )

    def cleanup(self) -> int:
        """Remove expired entries and return how many were dropped."""
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict[str, int]:
        """Count live and expired entries without evicting anything."""
        expired = sum(1 for entry in self._entries.values() if self._is_expired(entry))
        return {
            "size": len(self._entries),
            "entries": len(self._entries) - expired,
            "expired": expired,
        }

    def _is_expired(self, entry: LLMCacheEntry) -> bool:
        return (self._clock() - entry.timestamp) > entry.ttl


def fingerprint(request: LLMDetectionRequest) -> str:
    return json.dumps(
        {
            "path": request.doc_path,
            "title": request.doc_title,
            "contentHash": string_hash(request.doc_content),
            "filesCount": len(request.available_files),
            "foldersCount": len(request.available_folders),
        },
        separators=(",", ":"),
    )


def string_hash(text: str) -> int:
    """Deterministic 32-bit signed rolling hash (`h * 31 + c`)."""
    value = 0
    for char in text:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value
