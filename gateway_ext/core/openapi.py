"""OpenAPI customization.

Documents the gateway's API key (``apikey`` header) as the security scheme,
adds tag metadata, and marks health endpoints as unauthenticated since
orchestrators poll them without credentials.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

from gateway_ext.core.rate_limit import API_KEY_HEADER

_TAGS = [
    {
        "name": "Health",
        "description": "Liveness, readiness and detailed dependency checks.",
    },
]


def apply_openapi_customizations(app: FastAPI, *, health_prefix: str = "/health") -> None:
    """Patch ``app.openapi`` to add the API key scheme and health exemptions."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": API_KEY_HEADER,
                "description": "Gateway API key; also used as the rate limit identity.",
            },
        )
        schema.setdefault("security", [{"ApiKeyAuth": []}])

        tags = schema.setdefault("tags", [])
        known = {t.get("name") for t in tags}
        tags.extend(tag for tag in _TAGS if tag["name"] not in known)

        for path, methods in schema.get("paths", {}).items():
            if path == health_prefix or path.startswith(f"{health_prefix}/"):
                for method_obj in methods.values():
                    if isinstance(method_obj, dict):
                        method_obj["security"] = []

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
