"""Supabase (PostgREST) backed cache and profile stores.

Talks to ``{SUPABASE_URL}/rest/v1`` with httpx. Every failure is converted
into a :class:`Result` failure; nothing here raises to the caller.
"""

from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from ...constants import CACHE_TABLE, PROFILES_TABLE
from ...domain.exceptions import PersistenceError, RecordNotFoundError
from ...domain.models import CacheEntry, ProfileUsage
from ...domain.result import Result
from ...logging import debug, LogRecord, LogEvent
from .base import CacheStore, ProfileStore

REST_PATH = "/rest/v1"


class SupabaseRestClient:
    """Minimal PostgREST client covering point reads, upserts and updates."""

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = supabase_url.rstrip("/") + REST_PATH
        self._headers = {
            "apikey": supabase_key,
            "Authorization": f"Bearer {supabase_key}",
            "Content-Type": "application/json",
        }
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        table: str,
        params: Dict[str, str],
        json_body: Any = None,
        prefer: Optional[str] = None,
    ) -> Result[httpx.Response]:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            response = await self._client.request(
                method,
                f"{self.base_url}/{table}",
                params=params,
                json=json_body,
                headers=headers,
            )
        except httpx.HTTPError as e:
            return self._failure(
                PersistenceError(
                    f"{method} {table} failed: {e.__class__.__name__}: {e}",
                    table=table,
                )
            )
        if response.status_code >= 400:
            return self._failure(
                PersistenceError(
                    f"{method} {table} returned HTTP {response.status_code}",
                    table=table,
                    status_code=response.status_code,
                    details={"body": response.text[:500]},
                )
            )
        return Result.success(response)

    @staticmethod
    def _failure(exc: PersistenceError) -> Result[httpx.Response]:
        debug(
            LogRecord(
                event=LogEvent.PERSISTENCE_ERROR.value,
                message=exc.message,
                data={"table": exc.table, "status_code": exc.status_code},
            )
        )
        return Result.failure(exc)

    async def select_one(
        self, table: str, columns: List[str], filters: Dict[str, str]
    ) -> Result[Dict[str, Any]]:
        params = {"select": ",".join(columns), "limit": "1"}
        params.update({column: f"eq.{value}" for column, value in filters.items()})
        result = await self._request("GET", table, params)
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]
        try:
            rows = result.value.json()  # type: ignore[union-attr]
        except ValueError:
            return Result.failure(
                PersistenceError(f"GET {table} returned invalid JSON", table=table)
            )
        if not isinstance(rows, list) or not rows:
            return Result.failure(
                RecordNotFoundError(f"No row in {table} for {filters}", table=table)
            )
        return Result.success(rows[0])

    async def upsert(
        self, table: str, row: Dict[str, Any], on_conflict: str
    ) -> Result[None]:
        result = await self._request(
            "POST",
            table,
            {"on_conflict": on_conflict},
            json_body=row,
            prefer="resolution=merge-duplicates,return=minimal",
        )
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]
        return Result.success(None)

    async def update(
        self, table: str, values: Dict[str, Any], filters: Dict[str, str]
    ) -> Result[None]:
        params = {column: f"eq.{value}" for column, value in filters.items()}
        result = await self._request(
            "PATCH", table, params, json_body=values, prefer="return=minimal"
        )
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]
        return Result.success(None)


class SupabaseCacheStore(CacheStore):
    """``ai_response_cache`` table: ``cache_key`` (unique), ``response``, ``expires_at``."""

    def __init__(self, rest: SupabaseRestClient, table: str = CACHE_TABLE) -> None:
        self._rest = rest
        self._table = table

    async def fetch(self, cache_key: str) -> Result[CacheEntry]:
        result = await self._rest.select_one(
            self._table, ["response", "expires_at"], {"cache_key": cache_key}
        )
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]
        try:
            entry = CacheEntry(cache_key=cache_key, **result.value)  # type: ignore[arg-type]
        except (ValidationError, TypeError) as e:
            return Result.failure(
                PersistenceError(
                    f"Malformed cache row for key {cache_key}: {e}", table=self._table
                )
            )
        return Result.success(entry)

    async def upsert(self, entry: CacheEntry) -> Result[None]:
        debug(
            LogRecord(
                event=LogEvent.CACHE_STORE.value,
                message="Upserting cache row",
                data={"cache_key": entry.cache_key},
            )
        )
        return await self._rest.upsert(
            self._table,
            {
                "cache_key": entry.cache_key,
                "response": entry.response,
                "expires_at": entry.expires_at.isoformat(),
            },
            on_conflict="cache_key",
        )


class SupabaseProfileStore(ProfileStore):
    """``profiles`` table quota columns, keyed by ``id``."""

    COLUMNS = ["daily_ai_requests", "last_ai_reset_date", "subscription_tier"]

    def __init__(self, rest: SupabaseRestClient, table: str = PROFILES_TABLE) -> None:
        self._rest = rest
        self._table = table

    async def fetch_usage(self, user_id: str) -> Result[ProfileUsage]:
        result = await self._rest.select_one(self._table, self.COLUMNS, {"id": user_id})
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]
        try:
            usage = ProfileUsage.model_validate(result.value)
        except ValidationError as e:
            return Result.failure(
                PersistenceError(
                    f"Malformed profile row for user {user_id}: {e}", table=self._table
                )
            )
        return Result.success(usage)

    async def update_usage(
        self, user_id: str, daily_ai_requests: int, last_ai_reset_date: str
    ) -> Result[None]:
        return await self._rest.update(
            self._table,
            {
                "daily_ai_requests": daily_ai_requests,
                "last_ai_reset_date": last_ai_reset_date,
            },
            {"id": user_id},
        )
