"""
Retry logic for upstream calls.

Attempt outcomes: success, rate limited (429), or any other upstream failure.
Both failure kinds consume one attempt; they differ only in backoff base.
"""

from typing import Any, Awaitable, Callable, Optional, TypeVar

import anyio

from ...constants import (
    DEFAULT_MAX_RETRIES,
    FAILURE_BASE_DELAY_SECONDS,
    RATE_LIMITED_BASE_DELAY_SECONDS,
)
from ...domain.exceptions import RateLimitError, UpstreamError
from ...logging import warning, LogRecord, LogEvent

T = TypeVar("T")


class RetryHandler:
    """Handles retry logic with exponential backoff for upstream failures."""

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        rate_limited_base_delay: float = RATE_LIMITED_BASE_DELAY_SECONDS,
        failure_base_delay: float = FAILURE_BASE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = anyio.sleep,
    ):
        """
        Initialize retry handler.

        Args:
            max_retries: Total number of attempts, 429s included
            rate_limited_base_delay: Backoff base in seconds after a 429
            failure_base_delay: Backoff base in seconds after other failures
            sleep: Awaitable sleep, injectable for tests
        """
        self.max_retries = max_retries
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")

        self.rate_limited_base_delay = rate_limited_base_delay
        self.failure_base_delay = failure_base_delay
        self._sleep = sleep

    def with_max_retries(self, max_retries: int) -> "RetryHandler":
        return RetryHandler(
            max_retries=max_retries,
            rate_limited_base_delay=self.rate_limited_base_delay,
            failure_base_delay=self.failure_base_delay,
            sleep=self._sleep,
        )

    def rate_limited_delay(self, attempt: int) -> float:
        return self.rate_limited_base_delay * (2**attempt)

    def failure_delay(self, attempt: int) -> float:
        return self.failure_base_delay * (2**attempt)

    async def execute_with_retry(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        request_id: Optional[str] = None,
        **kwargs: Any,
    ) -> T:
        """
        Run ``func`` up to ``max_retries`` times.

        A 429 always sleeps ``rate_limited_base_delay * 2**attempt`` and moves
        on to the next attempt. Any other :class:`UpstreamError` sleeps
        ``failure_base_delay * 2**attempt`` only when attempts remain.

        Raises:
            The last upstream error once every attempt has failed.
        """
        last_error: Optional[UpstreamError] = None

        for attempt in range(self.max_retries):
            try:
                return await func(*args, **kwargs)
            except RateLimitError as e:
                last_error = e
                delay = self.rate_limited_delay(attempt)
                warning(
                    LogRecord(
                        event=LogEvent.UPSTREAM_RATE_LIMITED.value,
                        message=(
                            f"Rate limited (429). Waiting {delay:.0f}s before retry "
                            f"{attempt + 1}/{self.max_retries}"
                        ),
                        request_id=request_id,
                        data={
                            "attempt": attempt + 1,
                            "delay_seconds": delay,
                            "retry_after": e.retry_after,
                        },
                    )
                )
                await self._sleep(delay)
            except UpstreamError as e:
                last_error = e
                warning(
                    LogRecord(
                        event=LogEvent.UPSTREAM_FAILURE.value,
                        message=f"Gemini attempt {attempt + 1} failed",
                        request_id=request_id,
                        data={"attempt": attempt + 1, "status_code": e.status_code},
                    ),
                    exc=e,
                )
                if attempt < self.max_retries - 1:
                    delay = self.failure_delay(attempt)
                    warning(
                        LogRecord(
                            event=LogEvent.RETRY_BACKOFF.value,
                            message=f"Retrying in {delay:.0f}s",
                            request_id=request_id,
                            data={"attempt": attempt + 1, "delay_seconds": delay},
                        )
                    )
                    await self._sleep(delay)

        raise last_error or UpstreamError("All Gemini API attempts failed")
