"""Dependency probes and health aggregation.

Three probes feed the health endpoints:
- database: bounded read (at most one row) through SQLAlchemy
- redis: write/read/delete of a throwaway key in the shared key-value store
- instances: tally of open connections in the in-process registry

Probes never raise and never retry. Each one is bounded by a timeout and a
failure is reported as an ``error`` entry; a dependency that was never wired
in is reported as ``disabled``. Retrying is left to whoever polls the
endpoint.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version as package_version
from typing import Callable

import sqlalchemy as sa

from gateway_ext.adapters.db.engine import build_probe_statement
from gateway_ext.adapters.store.base import AbstractKeyValueStore
from gateway_ext.schemas.health import (
    DependencyCheck,
    HealthChecks,
    HealthReport,
    InstancesCheck,
    LivenessReport,
    ReadinessChecks,
    ReadinessReport,
)
from gateway_ext.services.instance_registry import OPEN_STATE, InstanceRegistry

logger = logging.getLogger(__name__)

PROCESS_STARTED_AT = time.monotonic()

CACHE_PROBE_KEY_PREFIX = "health:check:"
CACHE_PROBE_VALUE = "ok"
CACHE_PROBE_TTL_SECONDS = 10


def utc_timestamp() -> str:
    """Generate an ISO-8601 UTC timestamp string."""
    return datetime.now(timezone.utc).isoformat()


def resolve_version(distribution: str = "gateway-ext") -> str:
    """Installed package version, or "unknown" when running from a checkout."""
    try:
        return package_version(distribution)
    except PackageNotFoundError:
        return "unknown"


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class HealthService:
    """Probes optional collaborators and reduces them to one status.

    Attributes:
        probe_timeout_seconds: Upper bound for each individual probe.
    """

    def __init__(
        self,
        *,
        engine: sa.Engine | None = None,
        store: AbstractKeyValueStore | None = None,
        registry: InstanceRegistry | None = None,
        probe_timeout_seconds: float = 5.0,
        probe_table: str | None = None,
        version: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._engine = engine
        self._store = store
        self._registry = registry
        self.probe_timeout_seconds = probe_timeout_seconds
        self._probe_statement = build_probe_statement(probe_table)
        self._version = version or resolve_version()
        self._clock = clock

    async def check_database(self) -> DependencyCheck:
        """Issue a bounded read against the relational store."""

        if self._engine is None:
            return DependencyCheck(status="disabled", message="Database not configured")

        start = time.perf_counter()
        try:
            loop = asyncio.get_running_loop()
            await asyncio.wait_for(
                loop.run_in_executor(None, self._read_one_row),
                timeout=self.probe_timeout_seconds,
            )
        except Exception as exc:
            return self._probe_failed("database", exc)

        return DependencyCheck(status="ok", latency=_elapsed_ms(start))

    def _read_one_row(self) -> None:
        assert self._engine is not None
        with self._engine.connect() as conn:
            conn.execute(self._probe_statement).first()

    async def check_cache(self) -> DependencyCheck:
        """Write, read back and delete a throwaway key in the shared store."""

        if self._store is None:
            return DependencyCheck(status="disabled", message="Redis not configured")

        start = time.perf_counter()
        try:
            value = await asyncio.wait_for(
                self._round_trip_probe_key(),
                timeout=self.probe_timeout_seconds,
            )
        except Exception as exc:
            return self._probe_failed("redis", exc)

        if value != CACHE_PROBE_VALUE:
            return self._probe_failed(
                "redis",
                ValueError(f"Probe key read back {value!r}, expected {CACHE_PROBE_VALUE!r}"),
            )

        return DependencyCheck(status="ok", latency=_elapsed_ms(start))

    async def _round_trip_probe_key(self) -> str | None:
        assert self._store is not None
        key = f"{CACHE_PROBE_KEY_PREFIX}{int(self._clock() * 1000)}"
        await self._store.set(key, CACHE_PROBE_VALUE, ttl_seconds=CACHE_PROBE_TTL_SECONDS)
        value = await self._store.get(key)
        await self._store.delete(key)
        return value

    async def check_instances(self) -> InstancesCheck:
        """Count managed connections that report an open state."""

        if self._registry is None:
            return InstancesCheck(status="disabled")

        try:
            connections = list(self._registry.snapshot().values())
            connected = sum(1 for conn in connections if conn.connection_state == OPEN_STATE)
        except Exception as exc:
            logger.error(
                "health.probe_failed",
                extra={
                    "dependency": "instances",
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return InstancesCheck(
                status="error",
                total=0,
                connected=0,
                disconnected=0,
                message=str(exc) or type(exc).__name__,
            )

        return InstancesCheck(
            status="ok",
            total=len(connections),
            connected=connected,
            disconnected=len(connections) - connected,
        )

    async def detailed(self) -> HealthReport:
        """Probe every dependency concurrently and aggregate.

        Healthy only when both mandatory dependencies (database, redis) are
        ``ok``; the instances probe never changes the aggregate.
        """

        database, cache, instances = await asyncio.gather(
            self.check_database(),
            self.check_cache(),
            self.check_instances(),
            return_exceptions=True,
        )

        checks = HealthChecks(
            database=self._settle("database", database),
            redis=self._settle("redis", cache),
            instances=self._settle_instances(instances),
        )
        healthy = checks.database.status == "ok" and checks.redis.status == "ok"

        return HealthReport(
            status="healthy" if healthy else "unhealthy",
            timestamp=utc_timestamp(),
            version=self._version,
            uptime=round(time.monotonic() - PROCESS_STARTED_AT, 3),
            checks=checks,
        )

    async def readiness(self) -> ReadinessReport:
        """Probe the mandatory dependencies; ready only if both are ``ok``."""

        database, cache = await asyncio.gather(
            self.check_database(),
            self.check_cache(),
            return_exceptions=True,
        )
        checks = ReadinessChecks(
            database=self._settle("database", database),
            redis=self._settle("redis", cache),
        )

        if checks.database.status == "ok" and checks.redis.status == "ok":
            return ReadinessReport(ready=True, timestamp=utc_timestamp())

        return ReadinessReport(ready=False, timestamp=utc_timestamp(), checks=checks)

    def liveness(self) -> LivenessReport:
        """Report that the process can still serve a request. No probing."""

        return LivenessReport(alive=True, timestamp=utc_timestamp())

    def _settle(self, dependency: str, result: DependencyCheck | BaseException) -> DependencyCheck:
        if isinstance(result, BaseException):
            return self._probe_failed(dependency, result)
        return result

    def _settle_instances(self, result: InstancesCheck | BaseException) -> InstancesCheck:
        if isinstance(result, BaseException):
            return InstancesCheck(
                status="error",
                total=0,
                connected=0,
                disconnected=0,
                message=str(result) or type(result).__name__,
            )
        return result

    def _probe_failed(self, dependency: str, exc: BaseException) -> DependencyCheck:
        if isinstance(exc, asyncio.TimeoutError):
            message = f"Probe timed out after {self.probe_timeout_seconds}s"
        else:
            message = str(exc) or type(exc).__name__

        logger.error(
            "health.probe_failed",
            extra={
                "dependency": dependency,
                "error_type": type(exc).__name__,
                "error_msg": message,
            },
        )
        return DependencyCheck(status="error", message=message)
