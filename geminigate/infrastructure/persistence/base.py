"""Storage interfaces consumed by the cache and quota layers.

Implementations never raise for infrastructure failures. Every call returns a
:class:`~geminigate.domain.result.Result`; "row does not exist" is reported as
a :class:`~geminigate.domain.exceptions.RecordNotFoundError` failure.
"""

from abc import ABC, abstractmethod

from ...domain.models import CacheEntry, ProfileUsage
from ...domain.result import Result


class CacheStore(ABC):
    """Key-value table holding cached responses."""

    @abstractmethod
    async def fetch(self, cache_key: str) -> Result[CacheEntry]:
        """Single-row fetch by exact key."""

    @abstractmethod
    async def upsert(self, entry: CacheEntry) -> Result[None]:
        """Insert or overwrite the row for ``entry.cache_key``."""


class ProfileStore(ABC):
    """User profile table holding the daily AI usage counters."""

    @abstractmethod
    async def fetch_usage(self, user_id: str) -> Result[ProfileUsage]:
        """Point read of the quota columns for ``user_id``."""

    @abstractmethod
    async def update_usage(
        self, user_id: str, daily_ai_requests: int, last_ai_reset_date: str
    ) -> Result[None]:
        """Point update of the counter and its reset date."""
