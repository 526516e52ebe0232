"""Client-side pacing for outbound Gemini requests."""

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import anyio

from ...constants import MIN_REQUEST_INTERVAL_SECONDS
from ...logging import debug, info, LogRecord, LogEvent


@dataclass
class RateLimitMetrics:
    """Metrics for rate limit tracking."""

    total_requests: int = 0
    waits: int = 0
    total_wait_seconds: float = 0.0
    last_request_time: Optional[float] = None


class MinIntervalRateLimiter:
    """
    Leaky bucket of size one: guarantees a minimum spacing between request
    starts, with no burst allowance.

    The whole check-sleep-stamp sequence runs under a lock, so concurrent
    callers queue first-come-first-served and each one leaves at least
    ``min_interval`` after the previous one. The stamp is taken even when no
    wait was needed.

    Pacing is per process only; parallel instances do not coordinate.
    """

    def __init__(
        self,
        min_interval: float = MIN_REQUEST_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = anyio.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError(f"min_interval must be non-negative, got {min_interval}")
        self.min_interval = min_interval
        self.metrics = RateLimitMetrics()
        self._clock = clock
        self._sleep = sleep
        self._last_request_time: Optional[float] = None
        self._lock = anyio.Lock()

    @property
    def last_request_time(self) -> Optional[float]:
        return self._last_request_time

    async def wait_for_rate_limit(self, request_id: Optional[str] = None) -> float:
        """Suspend until the next request may start; returns seconds waited."""
        async with self._lock:
            waited = 0.0
            if self._last_request_time is not None:
                elapsed = self._clock() - self._last_request_time
                if elapsed < self.min_interval:
                    waited = self.min_interval - elapsed
                    info(
                        LogRecord(
                            event=LogEvent.RATE_LIMIT_WAIT.value,
                            message=f"Rate limit: waiting {waited:.2f}s before next request",
                            request_id=request_id,
                            data={"wait_seconds": round(waited, 3)},
                        )
                    )
                    await self._sleep(waited)
                    self.metrics.waits += 1
                    self.metrics.total_wait_seconds += waited

            self._last_request_time = self._clock()
            self.metrics.last_request_time = self._last_request_time
            self.metrics.total_requests += 1
            return waited

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "min_interval_seconds": self.min_interval,
            "total_requests": self.metrics.total_requests,
            "waits": self.metrics.waits,
            "total_wait_seconds": round(self.metrics.total_wait_seconds, 3),
        }


_rate_limiter: Optional[MinIntervalRateLimiter] = None


def get_rate_limiter(
    min_interval: float = MIN_REQUEST_INTERVAL_SECONDS,
) -> MinIntervalRateLimiter:
    """Process-wide limiter shared by every gateway in this process.

    ``min_interval`` only applies when the singleton is first created.
    """
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = MinIntervalRateLimiter(min_interval=min_interval)
        debug(
            LogRecord(
                event=LogEvent.RATE_LIMIT_WAIT.value,
                message="Process rate limiter created",
                data={"min_interval_seconds": min_interval},
            )
        )
    return _rate_limiter


def reset_rate_limiter() -> None:
    global _rate_limiter
    _rate_limiter = None
