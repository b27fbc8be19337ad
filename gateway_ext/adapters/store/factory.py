"""Factory for the shared key-value store."""

from __future__ import annotations

import logging

from gateway_ext.adapters.store.base import AbstractKeyValueStore
from gateway_ext.adapters.store.in_memory import InMemoryKeyValueStore
from gateway_ext.adapters.store.redis_store import RedisKeyValueStore
from gateway_ext.core.config import RedisSettings

logger = logging.getLogger(__name__)


def create_key_value_store(redis_settings: RedisSettings) -> AbstractKeyValueStore:
    """Return Redis when REDIS_URL is configured, otherwise an in-memory store.

    Args:
        redis_settings: Resolved Redis settings.

    Returns:
        AbstractKeyValueStore: Store shared by the rate limiter and health probe.
    """
    if redis_settings.url:
        return RedisKeyValueStore(
            redis_settings.url,
            socket_timeout_seconds=redis_settings.socket_timeout_seconds,
        )

    logger.warning(
        "store.in_memory_fallback",
        extra={"reason": "redis_url_not_configured"},
    )
    return InMemoryKeyValueStore()
