"""Process-local stores for development and tests (``PERSISTENCE_BACKEND=memory``)."""

from typing import Dict, Optional

from ...domain.exceptions import RecordNotFoundError
from ...domain.models import CacheEntry, ProfileUsage
from ...domain.result import Result
from .base import CacheStore, ProfileStore


class InMemoryCacheStore(CacheStore):
    def __init__(self) -> None:
        self.rows: Dict[str, CacheEntry] = {}

    async def fetch(self, cache_key: str) -> Result[CacheEntry]:
        entry = self.rows.get(cache_key)
        if entry is None:
            return Result.failure(
                RecordNotFoundError(f"No cache row for key {cache_key}")
            )
        return Result.success(entry.model_copy(deep=True))

    async def upsert(self, entry: CacheEntry) -> Result[None]:
        self.rows[entry.cache_key] = entry.model_copy(deep=True)
        return Result.success(None)


class InMemoryProfileStore(ProfileStore):
    """Profiles keyed by user id.

    Unknown users are created on first read with ``default_tier`` when it is
    set, which keeps local development free of a seeding step.
    """

    def __init__(self, default_tier: Optional[str] = None) -> None:
        self.profiles: Dict[str, ProfileUsage] = {}
        self._default_tier = default_tier

    def set_profile(
        self,
        user_id: str,
        daily_ai_requests: int = 0,
        last_ai_reset_date: Optional[str] = None,
        subscription_tier: Optional[str] = "free",
    ) -> None:
        self.profiles[user_id] = ProfileUsage(
            daily_ai_requests=daily_ai_requests,
            last_ai_reset_date=last_ai_reset_date,
            subscription_tier=subscription_tier,
        )

    async def fetch_usage(self, user_id: str) -> Result[ProfileUsage]:
        usage = self.profiles.get(user_id)
        if usage is None and self._default_tier is not None:
            self.set_profile(user_id, subscription_tier=self._default_tier)
            usage = self.profiles[user_id]
        if usage is None:
            return Result.failure(RecordNotFoundError(f"No profile for user {user_id}"))
        return Result.success(usage.model_copy())

    async def update_usage(
        self, user_id: str, daily_ai_requests: int, last_ai_reset_date: str
    ) -> Result[None]:
        usage = self.profiles.get(user_id)
        if usage is None:
            return Result.failure(RecordNotFoundError(f"No profile for user {user_id}"))
        self.profiles[user_id] = usage.model_copy(
            update={
                "daily_ai_requests": daily_ai_requests,
                "last_ai_reset_date": last_ai_reset_date,
            }
        )
        return Result.success(None)
