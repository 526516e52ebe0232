"""Per-user daily AI request budget, stored on the user's profile row.

The counter resets logically: when the stored reset date is not today's UTC
date the count is read as zero, and the next accepted request writes today's
date back. No scheduled job is involved.

The gate fails open. If the profile cannot be read because of an
infrastructure problem, the request is allowed with ``remaining=-1``; quota is
a soft governance signal, not a security boundary.

Known gap: the read-modify-write below is not transactional, so two
concurrent requests for the same user can both read ``n`` and both write
``n + 1`` (lost update).
"""

from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional

from ..constants import DEFAULT_TIER_DAILY_LIMITS, FREE_TIER, UNKNOWN_REMAINING
from ..domain.models import QuotaDecision
from ..infrastructure.persistence.base import ProfileStore
from ..logging import debug, info, warning, LogRecord, LogEvent


def utc_today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class QuotaGate:
    def __init__(
        self,
        store: ProfileStore,
        tier_limits: Optional[Mapping[str, int]] = None,
        today: Callable[[], str] = utc_today,
    ) -> None:
        self._store = store
        self._tier_limits: Dict[str, int] = dict(
            tier_limits if tier_limits is not None else DEFAULT_TIER_DAILY_LIMITS
        )
        self._today = today

    def limit_for_tier(self, tier: Optional[str]) -> int:
        """Daily ceiling for ``tier``; unknown or missing tiers get the free limit."""
        if tier and tier in self._tier_limits:
            return self._tier_limits[tier]
        return self._tier_limits.get(FREE_TIER, DEFAULT_TIER_DAILY_LIMITS[FREE_TIER])

    async def increment_daily_usage(
        self, user_id: str, request_id: Optional[str] = None
    ) -> QuotaDecision:
        """Check the user's budget and, if allowed, count this request.

        Rejections do not touch stored state.
        """
        result = await self._store.fetch_usage(user_id)

        if result.not_found:
            warning(
                LogRecord(
                    event=LogEvent.QUOTA_EXCEEDED.value,
                    message="No profile found for user, rejecting AI request",
                    request_id=request_id,
                    data={"user_id": user_id},
                )
            )
            return QuotaDecision(allowed=False, remaining=0)

        if not result.ok:
            warning(
                LogRecord(
                    event=LogEvent.QUOTA_FAIL_OPEN.value,
                    message="Failed to check daily usage, allowing request",
                    request_id=request_id,
                    data={"user_id": user_id},
                ),
                exc=result.error,
            )
            return QuotaDecision(allowed=True, remaining=UNKNOWN_REMAINING)

        profile = result.unwrap()
        today = self._today()
        current = profile.daily_ai_requests or 0
        if profile.last_ai_reset_date != today:
            current = 0

        limit = self.limit_for_tier(profile.subscription_tier)

        if current >= limit:
            info(
                LogRecord(
                    event=LogEvent.QUOTA_EXCEEDED.value,
                    message="Daily AI request limit reached",
                    request_id=request_id,
                    data={
                        "user_id": user_id,
                        "tier": profile.subscription_tier,
                        "limit": limit,
                    },
                )
            )
            return QuotaDecision(allowed=False, remaining=0)

        update = await self._store.update_usage(user_id, current + 1, today)
        if not update.ok:
            warning(
                LogRecord(
                    event=LogEvent.QUOTA_FAIL_OPEN.value,
                    message="Failed to persist daily usage, allowing request",
                    request_id=request_id,
                    data={"user_id": user_id},
                ),
                exc=update.error,
            )

        remaining = limit - current - 1
        debug(
            LogRecord(
                event=LogEvent.QUOTA_CHECK.value,
                message="Daily usage incremented",
                request_id=request_id,
                data={"user_id": user_id, "count": current + 1, "remaining": remaining},
            )
        )
        return QuotaDecision(allowed=True, remaining=remaining)
