"""Request correlation middleware.

Every request/response pair carries an id (the incoming X-Request-ID, or a
fresh UUID) that is stored in a context variable for log correlation and
echoed back on the response together with the handling duration.

Usage:
    app.middleware("http")(create_request_id_middleware(settings.log.request_id_header))
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response

from gateway_ext.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_ID_HEADER = "X-Request-ID"

CallNext = Callable[[Request], Awaitable[Response]]


def create_request_id_middleware(
    header_name: str = DEFAULT_REQUEST_ID_HEADER,
) -> Callable[[Request, CallNext], Awaitable[Response]]:
    """Build the correlation middleware for a given header name.

    Args:
        header_name: Header read from the request and echoed on the response.

    Returns:
        An ``http`` middleware callable for ``app.middleware("http")``.
    """

    async def request_id_middleware(request: Request, call_next: CallNext) -> Response:
        """Propagate the request id and add X-Request-Duration-ms.

        Args:
            request: The incoming HTTP request object.
            call_next: The next middleware/route handler in the stack.

        Returns:
            Response: The downstream response with correlation headers added.
        """

        request_id = request.headers.get(header_name) or str(uuid.uuid4())
        set_request_id(request_id)
        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000
            logger.debug(
                "request.completed",
                extra={
                    "request_method": request.method,
                    "request_path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                },
            )
        finally:
            clear_request_id()

        response.headers[header_name] = request_id
        response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
        return response

    return request_id_middleware
