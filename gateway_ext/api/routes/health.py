from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from gateway_ext.schemas.health import HealthReport, LivenessReport, ReadinessReport
from gateway_ext.services.health_service import HealthService

router = APIRouter(tags=["Health"])


def get_health_service(request: Request) -> HealthService:
    """Return the HealthService wired by the app factory."""
    return request.app.state.health_service


@router.get(
    "",
    response_model=HealthReport,
    responses={503: {"model": HealthReport, "description": "A mandatory dependency failed"}},
)
async def health_check(request: Request) -> JSONResponse:
    """Detailed health check.

    Probes the database, the shared cache and the instance registry in
    parallel. Returns 200 when both mandatory dependencies are ok, 503
    otherwise; the body has the same shape either way.
    """

    report = await get_health_service(request).detailed()
    status_code = (
        status.HTTP_200_OK if report.status == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    return JSONResponse(status_code=status_code, content=report.model_dump(exclude_none=True))


@router.get("/live", response_model=LivenessReport)
def liveness(request: Request) -> LivenessReport:
    """Liveness probe: 200 whenever the process can answer at all."""

    return get_health_service(request).liveness()


@router.get(
    "/ready",
    response_model=ReadinessReport,
    response_model_exclude_none=True,
    responses={503: {"model": ReadinessReport, "description": "Not ready to accept traffic"}},
)
async def readiness(request: Request) -> JSONResponse:
    """Readiness probe: 200 only if database and cache are both reachable.

    The 503 body lists the failing checks under ``database`` and ``redis``
    (the cache check keeps the key name used by the detailed report rather
    than ``cache``).
    """

    report = await get_health_service(request).readiness()
    status_code = status.HTTP_200_OK if report.ready else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=report.model_dump(exclude_none=True))
