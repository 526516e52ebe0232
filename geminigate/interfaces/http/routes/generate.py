import hmac
import time
import uuid
from typing import Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from ....application.fallback import generate_fallback_response
from ....application.gateway import GeminiGateway
from ....config import Settings
from ....constants import UNKNOWN_REMAINING
from ....domain.exceptions import UpstreamError
from ....domain.models import GenerateRequest, GenerateResponse
from ....logging import info, warning, LogRecord, LogEvent
from ..errors import FORBIDDEN, UNAUTHORIZED, log_and_return_error_response

router = APIRouter()

FALLBACK_CONTEXT_MAX_CHARS = 200


def _gateway_key_matches(settings: Settings, request: Request) -> bool:
    if not settings.gateway_api_key:
        return True
    presented = request.headers.get("x-gateway-key", "")
    return hmac.compare_digest(
        presented.encode("utf-8"), settings.gateway_api_key.encode("utf-8")
    )


@router.post("/v1/generate", response_model=None)
async def generate(request: Request) -> Response:
    """Run one logical Gemini call for a trading-journal feature.

    Quota and configuration failures are surfaced by the app's exception
    handlers. Upstream failures after retries are answered with a canned tip
    and ``fallback: true`` so the calling feature can still render something.

    The body names the user being charged, so this surface is for trusted
    backend callers. ``skip_usage_check`` is only honoured when
    ``GATEWAY_API_KEY`` is configured and presented.
    """
    settings: Settings = request.app.state.settings
    gateway: GeminiGateway = request.app.state.gateway

    request_id = getattr(request.state, "request_id", str(uuid.uuid4()))
    request.state.request_id = request_id
    request.state.start_time_monotonic = getattr(
        request.state, "start_time_monotonic", time.monotonic()
    )

    if not _gateway_key_matches(settings, request):
        return await log_and_return_error_response(
            request, 401, UNAUTHORIZED, "Missing or invalid X-Gateway-Key header."
        )

    raw_body = await request.json()
    body = GenerateRequest.model_validate(raw_body)

    if body.skip_usage_check and not settings.gateway_api_key:
        return await log_and_return_error_response(
            request,
            403,
            FORBIDDEN,
            "skip_usage_check requires GATEWAY_API_KEY to be configured.",
        )

    info(
        LogRecord(
            event=LogEvent.REQUEST_START.value,
            message="Generate request received",
            request_id=request_id,
            data={
                "user_id": body.user_id,
                "model": body.model or gateway.default_model,
                "has_system_prompt": body.system_prompt is not None,
                "explicit_cache_key": body.cache_key is not None,
                "skip_usage_check": body.skip_usage_check,
            },
        )
    )

    try:
        result = await gateway.call_gemini(
            user_id=body.user_id,
            prompt=body.prompt,
            system_prompt=body.system_prompt,
            model=body.model,
            cache_key=body.cache_key,
            cache_ttl_minutes=body.cache_ttl_minutes,
            skip_usage_check=body.skip_usage_check,
            request_id=request_id,
        )
    except UpstreamError as e:
        context = _fallback_context(body.fallback_context, body.prompt)
        warning(
            LogRecord(
                event=LogEvent.FALLBACK_RESPONSE.value,
                message="Gemini unavailable, answering with fallback text",
                request_id=request_id,
                data={"user_id": body.user_id, "status_code": e.status_code},
            ),
            exc=e,
        )
        response = GenerateResponse(
            text=generate_fallback_response(context),
            cached=False,
            remaining_requests=UNKNOWN_REMAINING,
            fallback=True,
        )
        return JSONResponse(content=response.model_dump())

    response = GenerateResponse(
        text=result.text,
        cached=result.cached,
        remaining_requests=result.remaining_requests,
    )
    return JSONResponse(content=response.model_dump())


def _fallback_context(fallback_context: Optional[str], prompt: str) -> str:
    if fallback_context:
        return fallback_context
    context = prompt.strip()
    if len(context) > FALLBACK_CONTEXT_MAX_CHARS:
        context = context[:FALLBACK_CONTEXT_MAX_CHARS].rstrip() + "..."
    return context
