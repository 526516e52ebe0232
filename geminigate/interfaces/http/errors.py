import time
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from ...domain.models import ErrorResponse
from ...logging import error, warning, LogRecord, LogEvent

# Error codes returned in the ``error`` field of JSON error bodies.
DAILY_LIMIT_REACHED = "daily_limit_reached"
CONFIGURATION_ERROR = "configuration_error"
INVALID_REQUEST = "invalid_request"
UNAUTHORIZED = "unauthorized"
FORBIDDEN = "forbidden"
INTERNAL_ERROR = "internal_error"


def build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    request_id: Optional[str] = None,
) -> JSONResponse:
    """Creates a JSONResponse carrying an :class:`ErrorResponse` body."""
    body = ErrorResponse(error=error_code, message=message, request_id=request_id)
    return JSONResponse(
        status_code=status_code, content=body.model_dump(exclude_none=True)
    )


async def log_and_return_error_response(
    request: Request,
    status_code: int,
    error_code: str,
    error_message: str,
    caught_exception: Optional[Exception] = None,
    data: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    start_time_mono = getattr(request.state, "start_time_monotonic", time.monotonic())
    duration_ms = (time.monotonic() - start_time_mono) * 1000

    log_data: Dict[str, Any] = {
        "status_code": status_code,
        "duration_ms": duration_ms,
        "error_type": error_code,
        "path": request.url.path,
        "client_ip": request.client.host if request.client else "unknown",
    }
    if data:
        log_data.update(data)

    record = LogRecord(
        event=LogEvent.REQUEST_FAILURE.value,
        message=f"Request failed: {error_message}",
        request_id=request_id,
        data=log_data,
    )
    # Client-side problems are expected traffic, server-side ones are not
    if status_code >= 500:
        error(record, exc=caught_exception)
    else:
        warning(record)

    return build_error_response(status_code, error_code, error_message, request_id)
