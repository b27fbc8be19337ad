"""Rate limiting HTTP middleware.

This module wires the store-backed limiter into the HTTP layer as global
middleware, so the host router needs no per-route changes.

Rate limiting strategy:
- Fixed window per API key, with a cooldown once the quota is exceeded.
- Callers without an API key are not limited; rejecting anonymous traffic is
  the authentication layer's job.
- Fail-open: if the shared store is unreachable or holds a corrupt record the
  request is admitted and the failure is logged.

Usage:
    app.middleware("http")(create_rate_limit_middleware(store, settings.rate_limit))
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from gateway_ext.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from gateway_ext.adapters.rate_limit.fixed_window import (
    DEFAULT_KEY_PREFIX,
    FixedWindowRateLimiter,
    hash_identity,
)
from gateway_ext.adapters.store.base import AbstractKeyValueStore
from gateway_ext.core.config import RateLimitSettings
from gateway_ext.core.errors import StoreAppError
from gateway_ext.schemas.rate_limit import RateLimitExceededResponse

logger = logging.getLogger(__name__)

API_KEY_HEADER = "apikey"
API_KEY_QUERY_PARAM = "apikey"

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


def extract_api_key(request: Request) -> str | None:
    """Resolve the caller identity from the request.

    Order of preference: ``apikey`` header, ``Authorization: Bearer <token>``,
    ``apikey`` query parameter.

    Args:
        request: Incoming request.

    Returns:
        The API key, or None when the request carries none.
    """

    api_key = request.headers.get(API_KEY_HEADER)

    if not api_key:
        authorization = request.headers.get("authorization")
        if authorization:
            match = _BEARER_RE.match(authorization.strip())
            if match:
                api_key = match.group(1).strip()

    # Query parameter is the least safe option but the gateway's clients use it
    if not api_key:
        api_key = request.query_params.get(API_KEY_QUERY_PARAM)

    return api_key or None


def _format_reset(reset_at: float) -> str:
    """Render an epoch-seconds timestamp as ISO-8601 UTC with millisecond precision."""
    moment = datetime.fromtimestamp(reset_at, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Build the X-RateLimit-* headers attached to every limited response."""
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(max(0, result.remaining)),
        "X-RateLimit-Reset": _format_reset(result.reset_at),
    }


class RateLimitMiddleware:
    """Callable HTTP middleware enforcing per-API-key limits.

    Register with ``app.middleware("http")(instance)``.
    """

    def __init__(self, limiter: AbstractRateLimiter | None, *, enabled: bool = True) -> None:
        self._limiter = limiter
        self._enabled = enabled and limiter is not None

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def __call__(self, request: Request, call_next) -> Response:
        if not self._enabled or self._limiter is None:
            return await call_next(request)

        api_key = extract_api_key(request)
        if not api_key:
            return await call_next(request)

        key_hash = hash_identity(api_key)

        try:
            result = await self._limiter.consume(api_key)
        except StoreAppError as exc:
            logger.error(
                "rate_limit.store_error",
                extra={
                    "key_hash": key_hash,
                    "error_code": exc.code,
                    "error_msg": exc.message,
                    "fail_open": True,
                },
            )
            return await call_next(request)

        headers = build_rate_limit_headers(result)

        if not result.allowed:
            retry_after = result.retry_after_seconds or 0
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "key_hash": key_hash,
                    "limit": result.limit,
                    "remaining": result.remaining,
                    "retry_after_s": retry_after,
                    "request_path": request.url.path,
                },
            )
            body = RateLimitExceededResponse(retry_after=retry_after)
            headers["Retry-After"] = str(retry_after)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=body.model_dump(by_alias=True),
                headers=headers,
            )

        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        response: Response = await call_next(request)
        response.headers.update(headers)
        return response


def create_rate_limit_middleware(
    store: AbstractKeyValueStore | None,
    rate_limit_settings: RateLimitSettings,
    *,
    key_prefix: str = DEFAULT_KEY_PREFIX,
    clock: Callable[[], float] = time.time,
) -> RateLimitMiddleware:
    """Build the middleware from settings.

    Returns a passthrough middleware when rate limiting is disabled or no
    store is available.

    Args:
        store: Shared key-value store for rate limit records.
        rate_limit_settings: RATE_LIMIT_* settings.
        key_prefix: Namespace for record keys.
        clock: Time source (injected in tests).

    Returns:
        RateLimitMiddleware ready to register on the app.
    """

    if not rate_limit_settings.enabled:
        return RateLimitMiddleware(None, enabled=False)

    if store is None:
        logger.warning(
            "rate_limit.disabled",
            extra={"reason": "store_not_configured"},
        )
        return RateLimitMiddleware(None, enabled=False)

    limiter = FixedWindowRateLimiter(
        store,
        points=rate_limit_settings.points,
        duration=rate_limit_settings.duration,
        block_duration=rate_limit_settings.block_duration,
        key_prefix=key_prefix,
        clock=clock,
    )
    logger.info(
        "rate_limit.enabled",
        extra={
            "limit": rate_limit_settings.points,
            "window_s": rate_limit_settings.duration,
            "block_s": rate_limit_settings.block_duration,
        },
    )
    return RateLimitMiddleware(limiter)
