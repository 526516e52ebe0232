from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ....logging import debug, LogRecord, LogEvent

router = APIRouter()


@router.get("/", include_in_schema=False)
async def root_health_check() -> JSONResponse:
    """Check basic API health and availability.

    Returns:
        JSONResponse: A response with status 'ok' and current UTC timestamp.
    """
    return JSONResponse(
        {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


@router.get("/health")
async def health_check(request: Request) -> JSONResponse:
    """Readiness details: configuration presence and outbound pacing state.

    Never exposes secrets, only whether they are set.
    """
    settings = request.app.state.settings
    gateway = request.app.state.gateway
    limiter = gateway.provider.rate_limiter

    debug(
        LogRecord(
            event=LogEvent.HEALTH_CHECK.value,
            message="Health check",
            request_id=getattr(request.state, "request_id", None),
        )
    )
    return JSONResponse(
        {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.app_version,
            "model": gateway.default_model,
            "gemini_api_key_configured": bool(settings.gemini_api_key),
            "persistence_backend": settings.persistence_backend,
            "rate_limiter": limiter.get_metrics(),
        }
    )
