"""Persistent response cache in front of the upstream API."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from ..constants import DEFAULT_CACHE_TTL_MINUTES
from ..domain.models import CacheEntry
from ..infrastructure.persistence.base import CacheStore
from ..logging import debug, info, warning, LogRecord, LogEvent


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ResponseCache:
    """
    Read-through cache over a :class:`CacheStore`.

    Lookups return a value only when its expiry is strictly in the future.
    Any store failure, "not found" included, is a miss. Writes are upserts with
    last-writer-wins semantics; a failed write is logged and dropped. Expired
    rows are never deleted here, they simply stop matching until overwritten.
    """

    def __init__(
        self,
        store: CacheStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    async def check(
        self, cache_key: str, request_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        result = await self._store.fetch(cache_key)
        if not result.ok:
            if not result.not_found:
                warning(
                    LogRecord(
                        event=LogEvent.CACHE_ERROR.value,
                        message="Cache lookup failed, treating as miss",
                        request_id=request_id,
                        data={"cache_key": cache_key},
                    ),
                    exc=result.error,
                )
            debug(
                LogRecord(
                    event=LogEvent.CACHE_MISS.value,
                    message="Cache miss",
                    request_id=request_id,
                    data={"cache_key": cache_key},
                )
            )
            return None

        entry: CacheEntry = result.value  # type: ignore[assignment]
        if not entry.is_valid(self._clock()):
            debug(
                LogRecord(
                    event=LogEvent.CACHE_MISS.value,
                    message="Cache entry expired",
                    request_id=request_id,
                    data={
                        "cache_key": cache_key,
                        "expires_at": entry.expires_at.isoformat(),
                    },
                )
            )
            return None

        info(
            LogRecord(
                event=LogEvent.CACHE_HIT.value,
                message="Cache hit",
                request_id=request_id,
                data={"cache_key": cache_key},
            )
        )
        return entry.response

    async def store(
        self,
        cache_key: str,
        response: Dict[str, Any],
        ttl_minutes: int = DEFAULT_CACHE_TTL_MINUTES,
        request_id: Optional[str] = None,
    ) -> bool:
        """Upsert ``response`` under ``cache_key``; returns whether it was written."""
        try:
            expires_at = self._clock() + timedelta(minutes=ttl_minutes)
        except OverflowError as e:
            warning(
                LogRecord(
                    event=LogEvent.CACHE_ERROR.value,
                    message="Cache TTL out of range, response not cached",
                    request_id=request_id,
                    data={"cache_key": cache_key, "ttl_minutes": ttl_minutes},
                ),
                exc=e,
            )
            return False
        result = await self._store.upsert(
            CacheEntry(cache_key=cache_key, response=response, expires_at=expires_at)
        )
        if not result.ok:
            warning(
                LogRecord(
                    event=LogEvent.CACHE_ERROR.value,
                    message="Failed to cache response",
                    request_id=request_id,
                    data={"cache_key": cache_key},
                ),
                exc=result.error,
            )
            return False
        debug(
            LogRecord(
                event=LogEvent.CACHE_STORE.value,
                message="Cached response",
                request_id=request_id,
                data={"cache_key": cache_key, "ttl_minutes": ttl_minutes},
            )
        )
        return True
