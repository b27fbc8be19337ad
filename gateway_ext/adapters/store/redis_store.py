"""Redis-backed key-value store."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import redis
import redis.asyncio as aioredis

from gateway_ext.adapters.store.base import AbstractKeyValueStore
from gateway_ext.core.errors import ConfigurationAppError, StoreAppError

logger = logging.getLogger(__name__)

# Failures that mean "the store could not answer", as opposed to bugs.
_STORE_ERRORS: tuple[type[BaseException], ...] = (
    redis.RedisError,
    asyncio.TimeoutError,
    OSError,
)


class RedisKeyValueStore(AbstractKeyValueStore):
    """Key-value store on top of ``redis.asyncio``.

    Every command is bounded by the client socket timeout so a stalled Redis
    surfaces as StoreAppError instead of hanging the request.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        socket_timeout_seconds: float = 2.0,
        client: Any | None = None,
    ) -> None:
        """Create the store from a URL or an existing client.

        Args:
            redis_url: Redis connection URL.
            socket_timeout_seconds: Socket and connect timeout per command.
            client: Pre-built async client (takes precedence over the URL).

        Raises:
            ConfigurationAppError: If neither a URL nor a client is provided.
        """
        if client is None:
            if not redis_url:
                raise ConfigurationAppError(
                    code="redis_url_missing",
                    message="REDIS_URL is required for the Redis key-value store.",
                )
            client = aioredis.Redis.from_url(
                redis_url,
                decode_responses=True,
                socket_timeout=socket_timeout_seconds,
                socket_connect_timeout=socket_timeout_seconds,
            )
        self._client = client

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except UnicodeDecodeError as exc:
            # decode_responses=True: bytes written by another client may not be UTF-8
            raise StoreAppError(
                code="corrupt_record",
                message=f"Value under {key!r} is not valid UTF-8",
                details={"operation": "get", "error_type": type(exc).__name__},
            ) from exc
        except _STORE_ERRORS as exc:
            raise self._wrap("get", exc) from exc

    async def set(self, key: str, value: str, *, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except _STORE_ERRORS as exc:
            raise self._wrap("set", exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except _STORE_ERRORS as exc:
            raise self._wrap("delete", exc) from exc

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _wrap(operation: str, exc: BaseException) -> StoreAppError:
        logger.debug(
            "store.command_failed",
            extra={"operation": operation, "error_type": type(exc).__name__},
        )
        return StoreAppError(
            code="store_unavailable",
            message=f"Redis {operation} failed: {exc}",
            details={"operation": operation, "error_type": type(exc).__name__},
        )
