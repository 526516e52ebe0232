"""Top-level orchestration: cache, quota, paced upstream call, cache store."""

from typing import Awaitable, Callable, Optional

import httpx

from ..config import Settings, get_settings
from ..constants import DEFAULT_CACHE_TTL_MINUTES, QUOTA_EXCEEDED_MESSAGE, UNKNOWN_REMAINING
from ..domain.exceptions import ConfigurationError, QuotaExceededError
from ..domain.models import GatewayResult, GenerationConfig
from ..infrastructure.persistence.base import CacheStore, ProfileStore
from ..infrastructure.persistence.memory import InMemoryCacheStore, InMemoryProfileStore
from ..infrastructure.persistence.supabase import (
    SupabaseCacheStore,
    SupabaseProfileStore,
    SupabaseRestClient,
)
from ..infrastructure.providers.gemini_provider import GeminiProvider
from ..infrastructure.providers.http_client_factory import HttpClientFactory
from ..infrastructure.providers.rate_limiter import (
    MinIntervalRateLimiter,
    get_rate_limiter,
)
from ..infrastructure.providers.resilience import RetryHandler
from ..logging import info, warning, LogRecord, LogEvent
from .cache_keys import derive_cache_key
from .converters import build_messages
from .quota import QuotaGate
from .response_cache import ResponseCache


class GeminiGateway:
    """Shared entry point for every feature that needs AI inference.

    A single logical call:

    1. derives the effective cache key (explicit or fingerprinted),
    2. returns a valid cached answer immediately (free, no quota),
    3. otherwise runs the quota gate unless ``skip_usage_check`` is set,
    4. calls Gemini through the rate limiter and retry policy,
    5. caches ``{"text": ...}`` for ``cache_ttl_minutes``.

    Usage is counted once per logical call, before the upstream request, and
    that same decision supplies ``remaining_requests``.
    """

    def __init__(
        self,
        provider: GeminiProvider,
        cache: ResponseCache,
        quota: QuotaGate,
        default_model: str,
        default_cache_ttl_minutes: int = DEFAULT_CACHE_TTL_MINUTES,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.quota = quota
        self.default_model = default_model
        self.default_cache_ttl_minutes = default_cache_ttl_minutes
        self._on_close = on_close

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        rate_limiter: Optional[MinIntervalRateLimiter] = None,
        cache_store: Optional[CacheStore] = None,
        profile_store: Optional[ProfileStore] = None,
        upstream_client: Optional[httpx.AsyncClient] = None,
    ) -> "GeminiGateway":
        """Wire a gateway from settings.

        Stores default to the configured persistence backend; the rate limiter
        defaults to the process-wide one.
        """
        persistence_client: Optional[httpx.AsyncClient] = None
        if cache_store is None or profile_store is None:
            if settings.persistence_backend == "memory":
                cache_store = cache_store or InMemoryCacheStore()
                profile_store = profile_store or InMemoryProfileStore(
                    default_tier="free"
                )
            else:
                if not settings.supabase_url or not settings.supabase_key:
                    raise ConfigurationError(
                        "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required "
                        "for the supabase persistence backend",
                        config_key="SUPABASE_URL",
                    )
                persistence_client = HttpClientFactory.create_persistence_client(
                    settings
                )
                rest = SupabaseRestClient(
                    settings.supabase_url,
                    settings.supabase_key,
                    client=persistence_client,
                )
                cache_store = cache_store or SupabaseCacheStore(rest)
                profile_store = profile_store or SupabaseProfileStore(rest)

        provider = GeminiProvider(
            api_key=settings.gemini_api_key,
            client=upstream_client or HttpClientFactory.create_upstream_client(settings),
            rate_limiter=rate_limiter
            or get_rate_limiter(settings.min_request_interval_seconds),
            retry_handler=RetryHandler(
                max_retries=settings.provider_max_retries,
                rate_limited_base_delay=settings.rate_limited_base_delay,
                failure_base_delay=settings.failure_base_delay,
            ),
            generation_config=GenerationConfig(
                temperature=settings.generation_temperature,
                max_output_tokens=settings.generation_max_output_tokens,
                top_p=settings.generation_top_p,
                top_k=settings.generation_top_k,
            ),
            api_url=settings.gemini_api_url,
        )

        async def close_persistence() -> None:
            if persistence_client is not None:
                await persistence_client.aclose()

        return cls(
            provider=provider,
            cache=ResponseCache(cache_store),
            quota=QuotaGate(profile_store, tier_limits=settings.tier_daily_limits),
            default_model=settings.gemini_default_model,
            default_cache_ttl_minutes=settings.cache_ttl_minutes,
            on_close=close_persistence,
        )

    async def close(self) -> None:
        await self.provider.close()
        if self._on_close is not None:
            await self._on_close()

    async def call_gemini(
        self,
        user_id: str,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        cache_key: Optional[str] = None,
        cache_ttl_minutes: Optional[int] = None,
        skip_usage_check: bool = False,
        request_id: Optional[str] = None,
    ) -> GatewayResult:
        """Generate text for ``prompt``, using the cache when possible.

        Raises:
            ConfigurationError: GEMINI_API_KEY is not configured.
            QuotaExceededError: The user's daily budget is used up.
            UpstreamError: Gemini failed after all retries; callers are expected
                to fall back to :func:`generate_fallback_response`.
        """
        # Fail before touching cache or quota when the key is missing
        _ = self.provider.api_key

        model = model or self.default_model
        ttl = (
            cache_ttl_minutes
            if cache_ttl_minutes is not None
            else self.default_cache_ttl_minutes
        )

        effective_key = derive_cache_key(prompt, system_prompt, cache_key)
        cached = await self.cache.check(effective_key, request_id=request_id)
        if cached is not None:
            text = cached.get("text")
            if isinstance(text, str) and text:
                return GatewayResult(
                    text=text, cached=True, remaining_requests=UNKNOWN_REMAINING
                )
            warning(
                LogRecord(
                    event=LogEvent.CACHE_ERROR.value,
                    message="Cached payload has no text, ignoring it",
                    request_id=request_id,
                    data={"cache_key": effective_key},
                )
            )

        remaining = UNKNOWN_REMAINING
        if not skip_usage_check:
            decision = await self.quota.increment_daily_usage(
                user_id, request_id=request_id
            )
            if not decision.allowed:
                raise QuotaExceededError(
                    QUOTA_EXCEEDED_MESSAGE,
                    user_id=user_id,
                    request_id=request_id,
                )
            remaining = decision.remaining

        messages = build_messages(prompt, system_prompt)
        text = await self.provider.generate(model, messages, request_id=request_id)

        await self.cache.store(
            effective_key, {"text": text}, ttl_minutes=ttl, request_id=request_id
        )

        info(
            LogRecord(
                event=LogEvent.REQUEST_COMPLETED.value,
                message="Gemini call completed",
                request_id=request_id,
                data={
                    "model": model,
                    "cache_key": effective_key,
                    "remaining_requests": remaining,
                },
            )
        )
        return GatewayResult(text=text, cached=False, remaining_requests=remaining)


async def call_gemini(
    *,
    supabase_url: str,
    supabase_key: str,
    user_id: str,
    prompt: str,
    system_prompt: Optional[str] = None,
    model: Optional[str] = None,
    cache_key: Optional[str] = None,
    cache_ttl_minutes: Optional[int] = None,
    skip_usage_check: bool = False,
    settings: Optional[Settings] = None,
) -> GatewayResult:
    """One-shot call for callers that do not keep a gateway around.

    Builds a gateway against the given Supabase project, sharing the
    process-wide rate limiter, and closes its HTTP clients afterwards.
    """
    base = settings or get_settings()
    effective = base.model_copy(
        update={
            "supabase_url": supabase_url,
            "supabase_key": supabase_key,
            "persistence_backend": "supabase",
        }
    )
    gateway = GeminiGateway.from_settings(effective)
    try:
        return await gateway.call_gemini(
            user_id=user_id,
            prompt=prompt,
            system_prompt=system_prompt,
            model=model,
            cache_key=cache_key,
            cache_ttl_minutes=cache_ttl_minutes,
            skip_usage_check=skip_usage_check,
        )
    finally:
        await gateway.close()
