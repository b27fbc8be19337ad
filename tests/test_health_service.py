"""Unit tests for the dependency probes and health aggregation."""

import asyncio
from dataclasses import dataclass
from unittest.mock import AsyncMock, MagicMock

import pytest
import sqlalchemy as sa
from sqlalchemy.pool import StaticPool

from gateway_ext.adapters.store.in_memory import InMemoryKeyValueStore
from gateway_ext.core.errors import StoreAppError
from gateway_ext.services.health_service import HealthService
from gateway_ext.services.instance_registry import InstanceRegistry


@dataclass
class FakeConnection:
    connection_state: str | None


@pytest.fixture
def engine() -> sa.Engine:
    # StaticPool: the probe runs in an executor thread and must see the same in-memory db
    return sa.create_engine(
        "sqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest.fixture
def broken_engine() -> MagicMock:
    engine = MagicMock()
    engine.connect.side_effect = sa.exc.OperationalError("SELECT 1", {}, Exception("db down"))
    return engine


@pytest.fixture
def registry() -> InstanceRegistry:
    return InstanceRegistry(
        {
            "sales": FakeConnection("open"),
            "support": FakeConnection("open"),
            "marketing": FakeConnection("close"),
        }
    )


def _failing_store(error: Exception) -> AsyncMock:
    store = AsyncMock()
    store.set.side_effect = error
    return store


class TestDatabaseProbe:
    @pytest.mark.asyncio
    async def test_ok_with_latency(self, engine) -> None:
        result = await HealthService(engine=engine).check_database()

        assert result.status == "ok"
        assert result.latency is not None
        assert result.latency >= 0

    @pytest.mark.asyncio
    async def test_reads_from_probe_table(self, engine) -> None:
        with engine.begin() as conn:
            conn.execute(sa.text("CREATE TABLE instance (id INTEGER PRIMARY KEY)"))

        result = await HealthService(engine=engine, probe_table="instance").check_database()

        assert result.status == "ok"

    @pytest.mark.asyncio
    async def test_missing_probe_table_is_error(self, engine) -> None:
        result = await HealthService(engine=engine, probe_table="no_such_table").check_database()

        assert result.status == "error"
        assert "no_such_table" in result.message

    @pytest.mark.asyncio
    async def test_connection_error_is_reported_not_raised(self, broken_engine) -> None:
        result = await HealthService(engine=broken_engine).check_database()

        assert result.status == "error"
        assert "db down" in result.message

    @pytest.mark.asyncio
    async def test_disabled_without_engine(self) -> None:
        result = await HealthService().check_database()

        assert result.status == "disabled"
        assert result.message == "Database not configured"


class TestCacheProbe:
    @pytest.mark.asyncio
    async def test_round_trip_leaves_no_key_behind(self, fake_time) -> None:
        store = InMemoryKeyValueStore(clock=fake_time)

        result = await HealthService(store=store, clock=fake_time).check_cache()

        assert result.status == "ok"
        assert result.latency is not None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_uses_expiring_health_key(self, fake_time) -> None:
        store = AsyncMock()
        store.get.return_value = "ok"

        await HealthService(store=store, clock=fake_time).check_cache()

        key = f"health:check:{int(fake_time() * 1000)}"
        store.set.assert_awaited_once_with(key, "ok", ttl_seconds=10)
        store.get.assert_awaited_once_with(key)
        store.delete.assert_awaited_once_with(key)

    @pytest.mark.asyncio
    async def test_unexpected_value_is_error(self) -> None:
        store = AsyncMock()
        store.get.return_value = "something else"

        result = await HealthService(store=store).check_cache()

        assert result.status == "error"

    @pytest.mark.asyncio
    async def test_store_error_is_reported(self) -> None:
        store = _failing_store(StoreAppError(code="store_unavailable", message="Redis set failed"))

        result = await HealthService(store=store).check_cache()

        assert result.status == "error"
        assert result.message == "Redis set failed"

    @pytest.mark.asyncio
    async def test_hanging_store_times_out(self) -> None:
        async def _hang(*args, **kwargs):
            await asyncio.sleep(10)

        store = AsyncMock()
        store.set.side_effect = _hang

        result = await HealthService(store=store, probe_timeout_seconds=0.05).check_cache()

        assert result.status == "error"
        assert "timed out" in result.message

    @pytest.mark.asyncio
    async def test_disabled_without_store(self) -> None:
        result = await HealthService().check_cache()

        assert result.status == "disabled"


class TestInstancesProbe:
    @pytest.mark.asyncio
    async def test_tallies_open_connections(self, registry) -> None:
        result = await HealthService(registry=registry).check_instances()

        assert result.status == "ok"
        assert (result.total, result.connected, result.disconnected) == (3, 2, 1)

    @pytest.mark.asyncio
    async def test_empty_registry(self) -> None:
        result = await HealthService(registry=InstanceRegistry()).check_instances()

        assert (result.status, result.total, result.connected) == ("ok", 0, 0)

    @pytest.mark.asyncio
    async def test_disabled_without_registry(self) -> None:
        result = await HealthService().check_instances()

        assert result.status == "disabled"
        assert result.total is None

    @pytest.mark.asyncio
    async def test_broken_registry_reports_error(self) -> None:
        registry = MagicMock()
        registry.snapshot.side_effect = RuntimeError("monitor gone")

        result = await HealthService(registry=registry).check_instances()

        assert result.status == "error"
        assert (result.total, result.connected, result.disconnected) == (0, 0, 0)


class TestAggregation:
    @pytest.mark.asyncio
    async def test_healthy_when_mandatory_dependencies_ok(self, engine, registry) -> None:
        service = HealthService(engine=engine, store=InMemoryKeyValueStore(), registry=registry)

        report = await service.detailed()

        assert report.status == "healthy"
        assert report.checks.database.status == "ok"
        assert report.checks.redis.status == "ok"
        assert report.checks.instances.connected == 2
        assert report.uptime >= 0
        assert report.version

    @pytest.mark.asyncio
    async def test_broken_registry_alone_does_not_flip_status(self, engine) -> None:
        registry = MagicMock()
        registry.snapshot.side_effect = RuntimeError("monitor gone")
        service = HealthService(engine=engine, store=InMemoryKeyValueStore(), registry=registry)

        report = await service.detailed()

        assert report.status == "healthy"
        assert report.checks.instances.status == "error"

    @pytest.mark.asyncio
    async def test_unhealthy_when_database_fails(self, broken_engine) -> None:
        service = HealthService(engine=broken_engine, store=InMemoryKeyValueStore())

        report = await service.detailed()

        assert report.status == "unhealthy"
        assert report.checks.redis.status == "ok"

    @pytest.mark.asyncio
    async def test_unhealthy_when_cache_fails(self, engine) -> None:
        store = _failing_store(StoreAppError(code="store_unavailable", message="down"))
        report = await HealthService(engine=engine, store=store).detailed()

        assert report.status == "unhealthy"
        assert report.checks.database.status == "ok"

    @pytest.mark.asyncio
    async def test_disabled_mandatory_dependency_is_unhealthy(self) -> None:
        report = await HealthService(store=InMemoryKeyValueStore()).detailed()

        assert report.status == "unhealthy"
        assert report.checks.database.status == "disabled"

    @pytest.mark.asyncio
    async def test_probes_run_concurrently(self, engine) -> None:
        async def _slow_set(*args, **kwargs):
            await asyncio.sleep(0.2)

        store = AsyncMock()
        store.set.side_effect = _slow_set
        store.get.return_value = "ok"
        service = HealthService(engine=engine, store=store)

        loop = asyncio.get_running_loop()
        start = loop.time()
        report = await service.detailed()
        elapsed = loop.time() - start

        assert report.status == "healthy"
        assert elapsed < 0.4

    @pytest.mark.asyncio
    async def test_readiness(self, engine, broken_engine) -> None:
        ready = await HealthService(engine=engine, store=InMemoryKeyValueStore()).readiness()
        not_ready = await HealthService(engine=broken_engine, store=InMemoryKeyValueStore()).readiness()

        assert ready.ready is True
        assert ready.checks is None
        assert not_ready.ready is False
        assert not_ready.checks.database.status == "error"
        assert not_ready.checks.redis.status == "ok"

    def test_liveness_needs_no_dependencies(self, broken_engine) -> None:
        report = HealthService(engine=broken_engine).liveness()

        assert report.alive is True
        broken_engine.connect.assert_not_called()
