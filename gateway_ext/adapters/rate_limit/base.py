"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the counting algorithm can change without touching the middleware.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (never negative).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Seconds until the block elapses when rejected.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    async def consume(self, identity: str) -> RateLimitResult:
        """Consume one unit of budget for ``identity``.

        Args:
            identity: Caller credential (e.g. API key).

        Returns:
            RateLimitResult describing whether it was allowed.

        Raises:
            StoreAppError: If the backing store fails or holds a corrupt record.
        """
        raise NotImplementedError
