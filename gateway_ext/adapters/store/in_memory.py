"""In-memory TTL key-value store.

Notes:
- Per-process only: running multiple workers gives each worker its own
  counters, so rate limits are multiplied by the worker count.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from gateway_ext.adapters.store.base import AbstractKeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: str
    expires_at: float


class InMemoryKeyValueStore(AbstractKeyValueStore):
    """Process-local stand-in for Redis with lazy expiry and LRU eviction.

    Attributes:
        max_entries: Maximum number of stored keys (None for unlimited).
    """

    def __init__(
        self,
        *,
        max_entries: int | None = 10_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_entries = max_entries
        self._clock = clock
        self._data: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.RLock()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryKeyValueStore(max_entries={self._max_entries}, size={len(self._data)})"

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired_locked()
            return len(self._data)

    async def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                self._data.pop(key, None)
                logger.debug("store.expired", extra={"store_key": key[:24]})
                return None
            self._data.move_to_end(key)
            return entry.value

    async def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")

        with self._lock:
            self._evict_expired_locked()
            self._data[key] = _Entry(value=value, expires_at=self._clock() + ttl_seconds)
            self._data.move_to_end(key)
            self._evict_if_over_capacity_locked()

    async def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def ttl(self, key: str) -> float | None:
        """Seconds until ``key`` expires, or None when absent."""

        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            return max(0.0, entry.expires_at - self._clock())

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        expired_keys = [k for k, entry in self._data.items() if entry.expires_at <= now]
        for key in expired_keys:
            self._data.pop(key, None)

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._data) > self._max_entries:
            # popitem(last=False) removes the least recently used entry
            key, _ = self._data.popitem(last=False)
            logger.debug("store.evicted", extra={"store_key": key[:24]})
