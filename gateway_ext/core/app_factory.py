"""Application factory for FastAPI app.

Two entry points:
- ``install_extensions`` plugs the rate limiter and health router into an
  existing host application without touching its routes.
- ``create_app`` builds a standalone app around them (used by ``main`` and
  the test suite).
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Callable

import sqlalchemy as sa
from fastapi import FastAPI

from gateway_ext.adapters.db.engine import create_database_engine
from gateway_ext.adapters.store.base import AbstractKeyValueStore
from gateway_ext.adapters.store.factory import create_key_value_store
from gateway_ext.api.routes import health_router
from gateway_ext.core.config import Settings, settings as default_settings
from gateway_ext.core.exception_handlers import setup_exception_handlers
from gateway_ext.core.logging import configure_logging
from gateway_ext.core.middleware import create_request_id_middleware
from gateway_ext.core.openapi import apply_openapi_customizations
from gateway_ext.core.rate_limit import create_rate_limit_middleware
from gateway_ext.services.health_service import HealthService, resolve_version
from gateway_ext.services.instance_registry import InstanceRegistry

logger = logging.getLogger(__name__)

_UNSET = object()


def install_extensions(
    app: FastAPI,
    *,
    settings: Settings | None = None,
    store: AbstractKeyValueStore | None = None,
    engine: sa.Engine | None = None,
    registry: InstanceRegistry | None = None,
    clock: Callable[[], float] = time.time,
) -> HealthService:
    """Attach rate limiting and health endpoints to ``app``.

    Args:
        app: Host FastAPI application.
        settings: Settings to use (defaults to the global instance).
        store: Shared key-value store for rate limit records and the cache probe.
        engine: SQLAlchemy engine probed by the health checks.
        registry: Registry of managed connections (optional).
        clock: Time source for the rate limiter (injected in tests).

    Returns:
        The HealthService stored on ``app.state.health_service``.
    """
    cfg = settings or default_settings

    app.middleware("http")(
        create_rate_limit_middleware(
            store,
            cfg.rate_limit,
            key_prefix=cfg.redis.key_prefix,
            clock=clock,
        )
    )

    health_service = HealthService(
        engine=engine,
        store=store,
        registry=registry,
        probe_timeout_seconds=cfg.app.health_probe_timeout_seconds,
        probe_table=cfg.database.probe_table,
    )
    app.state.health_service = health_service
    app.include_router(health_router, prefix=cfg.app.health_path_prefix)

    logger.info(
        "extensions.installed",
        extra={
            "rate_limit_enabled": cfg.rate_limit.enabled,
            "health_prefix": cfg.app.health_path_prefix,
            "database_configured": engine is not None,
            "store_type": type(store).__name__ if store is not None else None,
            "registry_configured": registry is not None,
        },
    )
    return health_service


def create_app(
    *,
    settings: Settings | None = None,
    store: AbstractKeyValueStore | None | object = _UNSET,
    engine: sa.Engine | None | object = _UNSET,
    registry: InstanceRegistry | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Collaborators left unset are built from settings; pass ``None``
    explicitly to leave one out (its probe then reports "disabled").

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    kv_store = create_key_value_store(cfg.redis) if store is _UNSET else store
    db_engine = create_database_engine(cfg.database.url) if engine is _UNSET else engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            if kv_store is not None:
                await kv_store.close()
            if engine is _UNSET and db_engine is not None:
                db_engine.dispose()

    app = FastAPI(
        title=cfg.app.title,
        description=(
            "Opt-in extensions for the WhatsApp gateway: per-API-key rate limiting "
            "and liveness/readiness/detailed health checks."
        ),
        version=resolve_version(),
        lifespan=lifespan,
    )

    install_extensions(
        app,
        settings=cfg,
        store=kv_store,  # type: ignore[arg-type]
        engine=db_engine,  # type: ignore[arg-type]
        registry=registry,
        clock=clock,
    )

    # Outermost so every log line, including rate limit decisions, carries the request id
    app.middleware("http")(create_request_id_middleware(cfg.log.request_id_header))

    setup_exception_handlers(app)
    apply_openapi_customizations(app, health_prefix=cfg.app.health_path_prefix)

    return app
