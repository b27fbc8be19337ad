"""Tests for the Redis key-value store adapter (client mocked)."""

import asyncio
from unittest.mock import AsyncMock

import pytest
import redis

from gateway_ext.adapters.store.factory import create_key_value_store
from gateway_ext.adapters.store.in_memory import InMemoryKeyValueStore
from gateway_ext.adapters.store.redis_store import RedisKeyValueStore
from gateway_ext.core.config import RedisSettings
from gateway_ext.core.errors import ConfigurationAppError, StoreAppError


def test_requires_url_or_client() -> None:
    with pytest.raises(ConfigurationAppError) as exc_info:
        RedisKeyValueStore(None)

    assert exc_info.value.code == "redis_url_missing"


@pytest.mark.asyncio
async def test_commands_are_forwarded_with_expiry() -> None:
    client = AsyncMock()
    client.get.return_value = "value"
    store = RedisKeyValueStore(client=client)

    await store.set("k", "v", ttl_seconds=30)
    assert await store.get("k") == "value"
    await store.delete("k")

    client.set.assert_awaited_once_with("k", "v", ex=30)
    client.get.assert_awaited_once_with("k")
    client.delete.assert_awaited_once_with("k")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        redis.ConnectionError("Connection refused"),
        redis.TimeoutError("Timeout reading from socket"),
        asyncio.TimeoutError(),
        OSError("Network unreachable"),
    ],
)
async def test_backend_errors_become_store_errors(error: BaseException) -> None:
    client = AsyncMock()
    client.get.side_effect = error
    store = RedisKeyValueStore(client=client)

    with pytest.raises(StoreAppError) as exc_info:
        await store.get("k")

    assert exc_info.value.code == "store_unavailable"
    assert exc_info.value.details["operation"] == "get"


@pytest.mark.asyncio
async def test_non_utf8_value_is_a_corrupt_record() -> None:
    client = AsyncMock()
    client.get.side_effect = UnicodeDecodeError("utf-8", b"\xff\xfe", 0, 1, "invalid start byte")
    store = RedisKeyValueStore(client=client)

    with pytest.raises(StoreAppError) as exc_info:
        await store.get("ratelimit:apikey:X")

    assert exc_info.value.code == "corrupt_record"
    assert exc_info.value.details["error_type"] == "UnicodeDecodeError"


@pytest.mark.asyncio
async def test_data_error_becomes_store_error() -> None:
    client = AsyncMock()
    client.set.side_effect = redis.DataError("Invalid input of type: 'NoneType'")
    store = RedisKeyValueStore(client=client)

    with pytest.raises(StoreAppError) as exc_info:
        await store.set("k", "v", ttl_seconds=5)

    assert exc_info.value.details["operation"] == "set"


@pytest.mark.asyncio
async def test_set_rejects_non_positive_ttl() -> None:
    store = RedisKeyValueStore(client=AsyncMock())

    with pytest.raises(ValueError):
        await store.set("k", "v", ttl_seconds=0)


@pytest.mark.asyncio
async def test_close_releases_client() -> None:
    client = AsyncMock()
    store = RedisKeyValueStore(client=client)

    await store.close()

    client.aclose.assert_awaited_once()


def test_factory_builds_redis_client_from_url() -> None:
    store = create_key_value_store(
        RedisSettings(url="redis://localhost:6379/0", socket_timeout_seconds=0.5)
    )

    assert isinstance(store, RedisKeyValueStore)


def test_factory_falls_back_to_in_memory() -> None:
    store = create_key_value_store(RedisSettings(url=None))

    assert isinstance(store, InMemoryKeyValueStore)
