import json

import httpx
import pytest
import respx
from unittest.mock import AsyncMock

from geminigate.application.converters import build_messages
from geminigate.constants import GEMINI_API_URL
from geminigate.domain.exceptions import (
    ConfigurationError,
    MalformedResponseError,
    RateLimitError,
    UpstreamError,
    UpstreamTimeoutError,
)
from geminigate.infrastructure.providers.gemini_provider import GeminiProvider
from geminigate.infrastructure.providers.rate_limiter import MinIntervalRateLimiter
from geminigate.infrastructure.providers.resilience import RetryHandler

MODEL = "gemini-2.0-flash-lite"
ENDPOINT = f"{GEMINI_API_URL}/{MODEL}:generateContent"


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def limiter():
    return MinIntervalRateLimiter(min_interval=0)


@pytest.fixture
def provider(limiter, sleep):
    return GeminiProvider(
        api_key="test-gemini-key",
        client=httpx.AsyncClient(),
        rate_limiter=limiter,
        retry_handler=RetryHandler(max_retries=3, sleep=sleep),
    )


class TestGeminiProvider:
    @pytest.mark.anyio
    @respx.mock
    async def test_successful_generation(self, provider, gemini_body):
        route = respx.post(ENDPOINT).mock(
            return_value=httpx.Response(200, json=gemini_body("Cut losers early."))
        )

        text = await provider.generate(MODEL, build_messages("Review my week"))

        assert text == "Cut losers early."
        request = route.calls.last.request
        assert request.url.params["key"] == "test-gemini-key"
        payload = json.loads(request.content)
        assert payload["contents"] == [
            {"role": "user", "parts": [{"text": "Review my week"}]}
        ]
        assert payload["generationConfig"] == {
            "temperature": 0.7,
            "maxOutputTokens": 2048,
            "topP": 0.95,
            "topK": 40,
        }

    @pytest.mark.anyio
    @respx.mock
    async def test_system_prompt_sent_as_leading_turns(self, provider, gemini_body):
        route = respx.post(ENDPOINT).mock(
            return_value=httpx.Response(200, json=gemini_body("ok"))
        )

        await provider.generate(MODEL, build_messages("q", "You are a coach"))

        payload = json.loads(route.calls.last.request.content)
        assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]
        assert payload["contents"][0]["parts"][0]["text"].startswith(
            "System instructions: "
        )

    @pytest.mark.anyio
    @respx.mock
    async def test_rate_limited_then_success(self, provider, sleep, limiter, gemini_body):
        route = respx.post(ENDPOINT).mock(
            side_effect=[
                httpx.Response(429, json={"error": {"code": 429}}),
                httpx.Response(200, json=gemini_body("second time lucky")),
            ]
        )

        text = await provider.generate(MODEL, build_messages("q"))

        assert text == "second time lucky"
        assert route.call_count == 2
        sleep.assert_awaited_once_with(10.0)
        # Every attempt goes through the pacing gate
        assert limiter.metrics.total_requests == 2

    @pytest.mark.anyio
    @respx.mock
    async def test_server_errors_exhaust_retries(self, provider, sleep):
        route = respx.post(ENDPOINT).mock(return_value=httpx.Response(500, text="oops"))

        with pytest.raises(UpstreamError) as exc_info:
            await provider.generate(MODEL, build_messages("q"))

        assert exc_info.value.status_code == 500
        assert route.call_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [5.0, 10.0]

    @pytest.mark.anyio
    @respx.mock
    async def test_persistent_429_raises_rate_limit_error(self, provider):
        respx.post(ENDPOINT).mock(return_value=httpx.Response(429))

        with pytest.raises(RateLimitError):
            await provider.generate(MODEL, build_messages("q"))

    @pytest.mark.anyio
    @respx.mock
    async def test_retry_after_header_is_kept(self, provider):
        respx.post(ENDPOINT).mock(
            return_value=httpx.Response(429, headers={"Retry-After": "7"})
        )

        with pytest.raises(RateLimitError) as exc_info:
            await provider.generate(MODEL, build_messages("q"), max_retries=1)

        assert exc_info.value.retry_after == 7.0

    @pytest.mark.anyio
    @respx.mock
    async def test_error_field_in_body_is_malformed(self, provider):
        respx.post(ENDPOINT).mock(
            return_value=httpx.Response(
                200, json={"error": {"message": "quota", "code": 400}}
            )
        )

        with pytest.raises(MalformedResponseError, match="quota"):
            await provider.generate(MODEL, build_messages("q"), max_retries=1)

    @pytest.mark.anyio
    @respx.mock
    async def test_no_candidates_is_malformed(self, provider):
        respx.post(ENDPOINT).mock(
            return_value=httpx.Response(200, json={"candidates": []})
        )

        with pytest.raises(MalformedResponseError):
            await provider.generate(MODEL, build_messages("q"), max_retries=1)

    @pytest.mark.anyio
    @respx.mock
    async def test_non_json_body_is_malformed(self, provider):
        respx.post(ENDPOINT).mock(return_value=httpx.Response(200, text="<html>"))

        with pytest.raises(MalformedResponseError):
            await provider.generate(MODEL, build_messages("q"), max_retries=1)

    @pytest.mark.anyio
    @respx.mock
    async def test_timeout_is_retried_then_raised(self, provider):
        route = respx.post(ENDPOINT).mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(UpstreamTimeoutError):
            await provider.generate(MODEL, build_messages("q"), max_retries=2)

        assert route.call_count == 2

    @pytest.mark.anyio
    @respx.mock
    async def test_transport_error_is_upstream_error(self, provider):
        respx.post(ENDPOINT).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(UpstreamError):
            await provider.generate(MODEL, build_messages("q"), max_retries=1)

    @pytest.mark.anyio
    @respx.mock
    async def test_missing_api_key_fails_without_request(self, limiter, gemini_body):
        route = respx.post(ENDPOINT).mock(
            return_value=httpx.Response(200, json=gemini_body("x"))
        )
        provider = GeminiProvider(
            api_key=None, client=httpx.AsyncClient(), rate_limiter=limiter
        )

        with pytest.raises(ConfigurationError) as exc_info:
            await provider.generate(MODEL, build_messages("q"))

        assert exc_info.value.config_key == "GEMINI_API_KEY"
        assert not route.called

    @pytest.mark.anyio
    @respx.mock
    async def test_model_goes_into_path(self, provider, gemini_body):
        route = respx.post(f"{GEMINI_API_URL}/gemini-1.5-pro:generateContent").mock(
            return_value=httpx.Response(200, json=gemini_body("pro"))
        )

        assert await provider.generate("gemini-1.5-pro", build_messages("q")) == "pro"
        assert route.called
