import httpx
import pytest
import respx
from unittest.mock import AsyncMock, patch

from geminigate.application.gateway import GeminiGateway
from geminigate.application.quota import QuotaGate, utc_today
from geminigate.application.response_cache import ResponseCache
from geminigate.constants import FALLBACK_TIPS, GEMINI_API_URL
from geminigate.infrastructure.persistence.memory import (
    InMemoryCacheStore,
    InMemoryProfileStore,
)
from geminigate.infrastructure.providers.gemini_provider import GeminiProvider
from geminigate.infrastructure.providers.rate_limiter import MinIntervalRateLimiter
from geminigate.infrastructure.providers.resilience import RetryHandler
from geminigate.interfaces.http.app import create_app

ENDPOINT = f"{GEMINI_API_URL}/gemini-2.0-flash-lite:generateContent"


@pytest.fixture
def profiles():
    store = InMemoryProfileStore()
    store.set_profile("trader-1", daily_ai_requests=0, last_ai_reset_date=utc_today())
    return store


def _build_gateway(settings, profiles, api_key="test-gemini-key"):
    provider = GeminiProvider(
        api_key=api_key,
        client=httpx.AsyncClient(),
        rate_limiter=MinIntervalRateLimiter(min_interval=0),
        retry_handler=RetryHandler(max_retries=2, sleep=AsyncMock()),
    )
    return GeminiGateway(
        provider=provider,
        cache=ResponseCache(InMemoryCacheStore()),
        quota=QuotaGate(profiles),
        default_model=settings.gemini_default_model,
    )


@pytest.fixture
def make_client(test_settings, profiles):
    def factory(settings=None, api_key="test-gemini-key"):
        settings = settings or test_settings
        with patch("geminigate.interfaces.http.app.init_logging"):
            app = create_app(settings, gateway=_build_gateway(settings, profiles, api_key))
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return factory


@pytest.fixture
def test_client(make_client):
    return make_client()


class TestHealthRoutes:
    @pytest.mark.anyio
    async def test_root(self, test_client):
        async with test_client as client:
            response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.anyio
    async def test_health_reports_limiter_and_config(self, test_client):
        async with test_client as client:
            response = await client.get("/health")
        body = response.json()
        assert response.status_code == 200
        assert body["gemini_api_key_configured"] is True
        assert body["persistence_backend"] == "memory"
        assert body["rate_limiter"]["total_requests"] == 0
        assert "test-gemini-key" not in response.text


class TestGenerateRoute:
    @pytest.mark.anyio
    @respx.mock
    async def test_generate_success(self, test_client, profiles, gemini_body):
        respx.post(ENDPOINT).mock(
            return_value=httpx.Response(200, json=gemini_body("Tighten your stops."))
        )

        async with test_client as client:
            response = await client.post(
                "/v1/generate",
                json={"user_id": "trader-1", "prompt": "How was my week?"},
                headers={"X-Request-ID": "req-123"},
            )

        assert response.status_code == 200
        assert response.json() == {
            "text": "Tighten your stops.",
            "cached": False,
            "remaining_requests": 9,
            "fallback": False,
        }
        assert response.headers["X-Request-ID"] == "req-123"
        assert "X-Response-Time-ms" in response.headers
        assert profiles.profiles["trader-1"].daily_ai_requests == 1

    @pytest.mark.anyio
    @respx.mock
    async def test_second_call_is_cached(self, test_client, gemini_body):
        route = respx.post(ENDPOINT).mock(
            return_value=httpx.Response(200, json=gemini_body("Once"))
        )
        payload = {"user_id": "trader-1", "prompt": "Same", "cache_key": "weekly_1"}

        async with test_client as client:
            await client.post("/v1/generate", json=payload)
            response = await client.post("/v1/generate", json=payload)

        assert response.json()["cached"] is True
        assert response.json()["remaining_requests"] == -1
        assert route.call_count == 1

    @pytest.mark.anyio
    @respx.mock
    async def test_quota_exceeded_returns_429(self, test_client, profiles):
        route = respx.post(ENDPOINT)
        profiles.set_profile(
            "trader-1", daily_ai_requests=10, last_ai_reset_date=utc_today()
        )

        async with test_client as client:
            response = await client.post(
                "/v1/generate", json={"user_id": "trader-1", "prompt": "More"}
            )

        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "daily_limit_reached"
        assert body["message"] == "Daily AI request limit reached. Try again tomorrow."
        assert not route.called

    @pytest.mark.anyio
    async def test_missing_api_key_returns_500(self, make_client):
        async with make_client(api_key=None) as client:
            response = await client.post(
                "/v1/generate", json={"user_id": "trader-1", "prompt": "q"}
            )

        assert response.status_code == 500
        assert response.json()["error"] == "configuration_error"
        assert "GEMINI_API_KEY" in response.json()["message"]

    @pytest.mark.anyio
    @respx.mock
    async def test_upstream_failure_returns_fallback(self, test_client):
        respx.post(ENDPOINT).mock(return_value=httpx.Response(500))

        async with test_client as client:
            response = await client.post(
                "/v1/generate",
                json={
                    "user_id": "trader-1",
                    "prompt": "Analyse trade 42",
                    "fallback_context": "Trade 42: long EURUSD",
                },
            )

        assert response.status_code == 200
        body = response.json()
        assert body["fallback"] is True
        assert body["cached"] is False
        assert body["text"].endswith("Context: Trade 42: long EURUSD")
        assert any(tip in body["text"] for tip in FALLBACK_TIPS)

    @pytest.mark.anyio
    @respx.mock
    async def test_fallback_context_defaults_to_prompt(self, test_client):
        respx.post(ENDPOINT).mock(return_value=httpx.Response(503))

        async with test_client as client:
            response = await client.post(
                "/v1/generate", json={"user_id": "trader-1", "prompt": "x" * 500}
            )

        text = response.json()["text"]
        assert text.endswith("x" * 200 + "...")

    @pytest.mark.anyio
    async def test_empty_prompt_is_rejected(self, test_client):
        async with test_client as client:
            response = await client.post(
                "/v1/generate", json={"user_id": "trader-1", "prompt": ""}
            )

        assert response.status_code == 422
        assert response.json()["error"] == "invalid_request"

    @pytest.mark.anyio
    async def test_invalid_json_is_rejected(self, test_client):
        async with test_client as client:
            response = await client.post(
                "/v1/generate",
                content=b"{not json",
                headers={"Content-Type": "application/json"},
            )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"

    @pytest.mark.anyio
    async def test_ttl_above_one_year_is_rejected(self, test_client):
        async with test_client as client:
            response = await client.post(
                "/v1/generate",
                json={
                    "user_id": "trader-1",
                    "prompt": "q",
                    "cache_ttl_minutes": 10**10,
                },
            )

        assert response.status_code == 422
        assert response.json()["error"] == "invalid_request"

    @pytest.mark.anyio
    @respx.mock
    async def test_skip_usage_check_needs_gateway_key(self, test_client, profiles):
        route = respx.post(ENDPOINT)

        async with test_client as client:
            response = await client.post(
                "/v1/generate",
                json={"user_id": "trader-1", "prompt": "q", "skip_usage_check": True},
            )

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"
        assert not route.called
        assert profiles.profiles["trader-1"].daily_ai_requests == 0


class TestGatewayKey:
    @pytest.fixture
    def keyed_client(self, make_client, test_settings):
        settings = test_settings.model_copy(update={"gateway_api_key": "s3cret"})
        return make_client(settings=settings)

    @pytest.mark.anyio
    async def test_missing_key_rejected(self, keyed_client):
        async with keyed_client as client:
            response = await client.post(
                "/v1/generate", json={"user_id": "trader-1", "prompt": "q"}
            )

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    @pytest.mark.anyio
    @respx.mock
    async def test_matching_key_accepted(self, keyed_client, gemini_body):
        respx.post(ENDPOINT).mock(
            return_value=httpx.Response(200, json=gemini_body("ok"))
        )

        async with keyed_client as client:
            response = await client.post(
                "/v1/generate",
                json={"user_id": "trader-1", "prompt": "q"},
                headers={"X-Gateway-Key": "s3cret"},
            )

        assert response.status_code == 200

    @pytest.mark.anyio
    @respx.mock
    async def test_skip_usage_check_with_key(self, keyed_client, profiles, gemini_body):
        respx.post(ENDPOINT).mock(
            return_value=httpx.Response(200, json=gemini_body("background"))
        )

        async with keyed_client as client:
            response = await client.post(
                "/v1/generate",
                json={"user_id": "trader-1", "prompt": "q", "skip_usage_check": True},
                headers={"X-Gateway-Key": "s3cret"},
            )

        assert response.status_code == 200
        assert response.json()["remaining_requests"] == -1
        assert profiles.profiles["trader-1"].daily_ai_requests == 0
