"""In-memory result cache with lazy per-entry expiry."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping


def make_cache_key(backend_id: str, operation_type: str, parameters: Mapping[str, Any] | None) -> str:
    """Return a deterministic key for a (backend, operation, parameters) request.

    The three parts are encoded as a single JSON array so that ids containing the
    separator of a naive concatenation cannot collide with other requests.
    """

    return json.dumps(
        [backend_id, operation_type, dict(parameters or {})],
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    created_at: float
    ttl: float
    backend_id: str | None = None
    operation_type: str | None = None
    hit_count: int = 0
    last_accessed: float | None = None

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class ResultCache:
    """Key/value store whose entries expire when read past their TTL."""

    def __init__(self, *, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        now = self._clock()
        if entry.is_expired(now):
            del self._entries[key]
            return None
        entry.hit_count += 1
        entry.last_accessed = now
        return entry

    def set(
        self,
        key: str,
        value: Any,
        ttl: float,
        *,
        backend_id: str | None = None,
        operation_type: str | None = None,
    ) -> CacheEntry:
        if ttl < 0:
            raise ValueError("Cache TTL must be >= 0")
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=self._clock(),
            ttl=ttl,
            backend_id=backend_id,
            operation_type=operation_type,
        )
        self._entries[key] = entry
        return entry

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self, backend_id: str | None = None) -> None:
        if backend_id is None:
            self._entries.clear()
            return
        for key in [key for key, entry in self._entries.items() if entry.backend_id == backend_id]:
            del self._entries[key]

    def prune(self) -> int:
        """Drop every expired entry and return how many were removed."""

        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["CacheEntry", "ResultCache", "make_cache_key"]
