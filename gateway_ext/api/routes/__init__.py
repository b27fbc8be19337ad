from __future__ import annotations

from gateway_ext.api.routes.health import router as health_router

__all__ = ["health_router"]
