"""Key-value store interface."""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractKeyValueStore(ABC):
    """String key-value store with per-key expiry.

    Implementations raise StoreAppError on any backend failure so callers can
    apply their own policy (fail open, report error) without knowing the
    backend's exception types.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value for ``key`` or None when absent/expired."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` expiring after ``ttl_seconds``."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources. No-op by default."""
        return None
