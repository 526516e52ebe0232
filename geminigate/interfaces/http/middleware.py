"""Request id and timing middleware for the gateway HTTP interface."""

import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request
from fastapi.responses import Response

from ...logging import debug, LogRecord, LogEvent


async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Attach request ID and timing headers.

    An incoming ``X-Request-ID`` is honoured so that callers can correlate
    their own logs; otherwise a UUID is generated. Both identifiers are kept on
    ``request.state`` for handlers and error responses.
    """
    if not hasattr(request.state, "request_id"):
        request.state.request_id = request.headers.get("x-request-id") or str(
            uuid.uuid4()
        )
    if not hasattr(request.state, "start_time_monotonic"):
        request.state.start_time_monotonic = time.monotonic()

    debug(
        LogRecord(
            event=LogEvent.REQUEST_START.value,
            message=f"{request.method} {request.url.path}",
            request_id=request.state.request_id,
        )
    )

    response = await call_next(request)

    response.headers["X-Request-ID"] = request.state.request_id
    duration_ms = (time.monotonic() - request.state.start_time_monotonic) * 1000
    response.headers["X-Response-Time-ms"] = f"{duration_ms:.1f}"
    return response
