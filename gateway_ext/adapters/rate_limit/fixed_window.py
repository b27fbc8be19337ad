"""Fixed-window rate limiter with a blocking cooldown, backed by a shared store.

Each caller identity owns one record in the key-value store:

    ratelimit:apikey:<identity> -> {"count": 3, "resetAt": 1700000060000,
                                    "blockedUntil": 1700000120000}

Timestamps are epoch milliseconds. The record carries a store-native expiry
equal to whichever of the window or the block ends last, so unused records
disappear on their own.

The read-modify-write against the record is not atomic: two requests from the
same identity in the same instant can both read the old count and over-admit
by a small margin.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
import time
from dataclasses import dataclass, replace
from typing import Any, Callable

from gateway_ext.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from gateway_ext.adapters.store.base import AbstractKeyValueStore
from gateway_ext.core.errors import StoreAppError

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "ratelimit:apikey:"


def hash_identity(identity: str) -> str:
    """Hash a caller identity for logging without exposing secrets."""
    return hashlib.sha256(identity.encode()).hexdigest()[:16]


def _is_number(value: Any) -> bool:
    # json.loads accepts NaN and Infinity
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


@dataclass(frozen=True)
class RateLimitRecord:
    """Per-identity counter state.

    Attributes:
        count: Requests observed in the current window.
        reset_at: Epoch ms when the window expires.
        blocked_until: Epoch ms until which all requests are rejected.
    """

    count: int
    reset_at: int
    blocked_until: int | None = None

    def is_blocked(self, now_ms: int) -> bool:
        return self.blocked_until is not None and self.blocked_until > now_ms

    def to_json(self) -> str:
        data: dict[str, int] = {"count": self.count, "resetAt": self.reset_at}
        if self.blocked_until is not None:
            data["blockedUntil"] = self.blocked_until
        return json.dumps(data, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> "RateLimitRecord":
        """Decode a stored record.

        Raises:
            StoreAppError: If the payload is not a well-formed record.
        """
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise StoreAppError(
                code="corrupt_record",
                message="Rate limit record is not valid JSON",
            ) from exc

        if not isinstance(data, dict):
            raise StoreAppError(code="corrupt_record", message="Rate limit record is not an object")

        count = data.get("count")
        reset_at = data.get("resetAt")
        blocked_until = data.get("blockedUntil")

        if not isinstance(count, int) or isinstance(count, bool) or not _is_number(reset_at):
            raise StoreAppError(
                code="corrupt_record",
                message="Rate limit record is missing count/resetAt",
            )
        if blocked_until is not None and not _is_number(blocked_until):
            raise StoreAppError(
                code="corrupt_record",
                message="Rate limit record has a non-numeric blockedUntil",
            )

        try:
            return cls(
                count=count,
                reset_at=int(reset_at),
                blocked_until=int(blocked_until) if blocked_until is not None else None,
            )
        except (ValueError, OverflowError) as exc:
            raise StoreAppError(
                code="corrupt_record",
                message="Rate limit record has an invalid timestamp",
            ) from exc


class FixedWindowRateLimiter(AbstractRateLimiter):
    """Fixed-window counter that blocks an identity once it exceeds its quota.

    A request is rejected while the identity is blocked; the block is set the
    moment a request pushes ``count`` above ``points`` and lasts
    ``block_duration`` seconds. Once a window or a block has ended the next
    request starts a fresh window with ``count = 1``.
    """

    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        points: int,
        duration: int,
        block_duration: int,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Shared key-value store holding the records.
            points: Requests allowed per window.
            duration: Window length in seconds.
            block_duration: Cooldown in seconds once the quota is exceeded.
            key_prefix: Namespace prepended to the identity.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If points, duration or block_duration are below 1.
        """
        if points < 1:
            raise ValueError("points must be >= 1")
        if duration < 1:
            raise ValueError("duration must be >= 1")
        if block_duration < 1:
            raise ValueError("block_duration must be >= 1")

        self._store = store
        self._points = points
        self._duration_ms = duration * 1000
        self._block_duration_ms = block_duration * 1000
        self._key_prefix = key_prefix
        self._clock = clock

    @property
    def points(self) -> int:
        return self._points

    def storage_key(self, identity: str) -> str:
        return f"{self._key_prefix}{identity}"

    async def consume(self, identity: str) -> RateLimitResult:
        if not identity:
            raise ValueError("identity must be a non-empty string")

        key = self.storage_key(identity)
        now_ms = int(self._clock() * 1000)

        raw = await self._store.get(key)
        record = RateLimitRecord.from_json(raw) if raw is not None else None

        if record is None:
            record = self._new_window(now_ms)
        elif record.is_blocked(now_ms):
            # Rejected without counting; the stored record already expires
            # when the block ends.
            return self._build_result(record, now_ms)
        elif record.reset_at <= now_ms or record.blocked_until is not None:
            # Window over, or a previous block has elapsed.
            record = self._new_window(now_ms)
        else:
            record = replace(record, count=record.count + 1)
            if record.count > self._points:
                record = replace(record, blocked_until=now_ms + self._block_duration_ms)
                logger.info(
                    "rate_limit.blocked",
                    extra={
                        "key_hash": hash_identity(identity),
                        "count": record.count,
                        "limit": self._points,
                        "block_s": self._block_duration_ms // 1000,
                    },
                )

        await self._store.set(key, record.to_json(), ttl_seconds=self._ttl_seconds(record, now_ms))
        return self._build_result(record, now_ms)

    def _new_window(self, now_ms: int) -> RateLimitRecord:
        return RateLimitRecord(count=1, reset_at=now_ms + self._duration_ms)

    @staticmethod
    def _ttl_seconds(record: RateLimitRecord, now_ms: int) -> int:
        window_ttl = math.ceil((record.reset_at - now_ms) / 1000)
        block_ttl = 0
        if record.blocked_until is not None:
            block_ttl = math.ceil((record.blocked_until - now_ms) / 1000)
        return max(1, window_ttl, block_ttl)

    def _build_result(self, record: RateLimitRecord, now_ms: int) -> RateLimitResult:
        blocked = record.is_blocked(now_ms)
        retry_after = None
        if blocked and record.blocked_until is not None:
            retry_after = max(1, math.ceil((record.blocked_until - now_ms) / 1000))
        return RateLimitResult(
            allowed=not blocked,
            limit=self._points,
            remaining=max(0, self._points - record.count),
            reset_at=record.reset_at / 1000,
            retry_after_seconds=retry_after,
        )
