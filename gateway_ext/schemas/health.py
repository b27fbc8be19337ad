"""Pydantic schemas for health check responses."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

CheckStatus = Literal["ok", "error", "disabled"]


class DependencyCheck(BaseModel):
    """Outcome of probing one dependency."""

    status: CheckStatus = Field(..., description="ok, error or disabled.")
    latency: int | None = Field(
        default=None,
        description="Probe round-trip in milliseconds (only when status is ok).",
    )
    message: str | None = Field(
        default=None,
        description="Error message, or why the dependency is disabled.",
    )


class InstancesCheck(BaseModel):
    """Tally of managed connections in the in-process registry."""

    status: CheckStatus
    total: int | None = None
    connected: int | None = None
    disconnected: int | None = None
    message: str | None = None


class HealthChecks(BaseModel):
    database: DependencyCheck
    redis: DependencyCheck
    instances: InstancesCheck


class HealthReport(BaseModel):
    """Detailed health snapshot returned by GET /health."""

    status: Literal["healthy", "unhealthy"]
    timestamp: str = Field(..., description="ISO-8601 UTC time the snapshot was taken.")
    version: str
    uptime: float = Field(..., description="Seconds since the process started.")
    checks: HealthChecks


class LivenessReport(BaseModel):
    alive: bool = True
    timestamp: str


class ReadinessChecks(BaseModel):
    """Checks reported when not ready; the cache result is keyed ``redis``."""

    database: DependencyCheck
    redis: DependencyCheck


class ReadinessReport(BaseModel):
    """Readiness answer; ``checks`` is only populated when not ready."""

    ready: bool
    timestamp: str
    checks: ReadinessChecks | None = None
