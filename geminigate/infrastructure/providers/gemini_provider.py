import time
from typing import Optional, Sequence

import httpx
from pydantic import ValidationError

from ...application.converters import MessageLike, convert_messages_to_gemini
from ...constants import GEMINI_API_URL
from ...domain.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    RateLimitError,
    UpstreamError,
    UpstreamTimeoutError,
)
from ...domain.models import GeminiRequest, GeminiResponse, GenerationConfig
from ...logging import debug, error, info, is_debug_enabled, LogRecord, LogEvent
from .rate_limiter import MinIntervalRateLimiter
from .resilience import RetryHandler


class GeminiProvider:
    """Calls ``{api_url}/{model}:generateContent`` with pacing and retries.

    Each attempt first waits on the shared rate limiter, then issues one POST.
    The response is classified into success, :class:`RateLimitError` (429),
    :class:`UpstreamError` (other non-2xx, transport failure) or
    :class:`MalformedResponseError` (error field or no text), and the
    :class:`RetryHandler` decides what happens next.
    """

    def __init__(
        self,
        api_key: Optional[str],
        client: httpx.AsyncClient,
        rate_limiter: MinIntervalRateLimiter,
        retry_handler: Optional[RetryHandler] = None,
        generation_config: Optional[GenerationConfig] = None,
        api_url: str = GEMINI_API_URL,
    ) -> None:
        self._api_key = api_key
        self._client = client
        self.rate_limiter = rate_limiter
        self.retry_handler = retry_handler or RetryHandler()
        self.generation_config = generation_config or GenerationConfig()
        self._api_url = api_url.rstrip("/")

    @property
    def api_key(self) -> str:
        if not self._api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY not configured", config_key="GEMINI_API_KEY"
            )
        return self._api_key

    async def close(self) -> None:
        await self._client.aclose()

    def build_request(self, messages: Sequence[MessageLike]) -> GeminiRequest:
        return GeminiRequest(
            contents=convert_messages_to_gemini(messages),
            generation_config=self.generation_config,
        )

    async def generate(
        self,
        model: str,
        messages: Sequence[MessageLike],
        max_retries: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> str:
        """Return the generated text, retrying per the handler's policy.

        Raises:
            ConfigurationError: No API key is configured.
            UpstreamError: Every attempt failed; carries the last failure.
        """
        api_key = self.api_key
        request = self.build_request(messages)

        handler = self.retry_handler
        if max_retries is not None and max_retries != handler.max_retries:
            handler = handler.with_max_retries(max_retries)

        return await handler.execute_with_retry(
            self._attempt,
            model,
            request,
            api_key,
            request_id=request_id,
        )

    async def _attempt(self, model: str, request: GeminiRequest, api_key: str) -> str:
        await self.rate_limiter.wait_for_rate_limit()

        payload = request.to_payload()
        url = f"{self._api_url}/{model}:generateContent"

        start = time.monotonic()
        if is_debug_enabled():
            debug(
                LogRecord(
                    event=LogEvent.UPSTREAM_REQUEST.value,
                    message="Calling Gemini generateContent",
                    data={"model": model, "payload": payload},
                )
            )
        try:
            response = await self._client.post(
                url,
                params={"key": api_key},
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(
                f"Gemini request timed out: {e.__class__.__name__}",
                timeout_seconds=self._client.timeout.read,
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(
                f"Gemini request failed: {e.__class__.__name__}: {e}"
            ) from e

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitError(
                "Gemini API rate limited (429)",
                retry_after=float(retry_after)
                if retry_after and retry_after.isdigit()
                else None,
            )

        if not response.is_success:
            error(
                LogRecord(
                    event=LogEvent.UPSTREAM_FAILURE.value,
                    message=f"Gemini API error ({response.status_code})",
                    data={"model": model, "body": response.text[:1000]},
                )
            )
            raise UpstreamError(
                f"Gemini API error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = GeminiResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise MalformedResponseError(
                "Gemini returned an unparseable body",
                status_code=response.status_code,
            ) from e

        if data.error is not None:
            raise MalformedResponseError(
                data.error.message or "Gemini reported an error",
                status_code=data.error.code,
            )

        text = data.first_text()
        if not text:
            raise MalformedResponseError(
                "No response content from Gemini", status_code=response.status_code
            )

        info(
            LogRecord(
                event=LogEvent.UPSTREAM_REQUEST.value,
                message="Gemini response received",
                data={
                    "model": model,
                    "duration_ms": round((time.monotonic() - start) * 1000, 1),
                    "chars": len(text),
                },
            )
        )
        return text
