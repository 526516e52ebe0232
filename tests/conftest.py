from typing import Any, Callable, Dict, Iterator, List

from unittest.mock import MagicMock, patch
import pytest

from geminigate.config import Settings
from geminigate.infrastructure.providers.rate_limiter import reset_rate_limiter


# Configure anyio to only use asyncio backend
@pytest.fixture
def anyio_backend() -> str:
    """Force tests to use asyncio backend only."""
    return "asyncio"


@pytest.fixture(autouse=True, scope="session")
def mock_logger() -> Iterator[MagicMock]:
    with patch("geminigate.logging._logger", MagicMock()) as mock_logger:
        mock_logger.log.return_value = None
        yield mock_logger


@pytest.fixture(autouse=True)
def fresh_rate_limiter() -> Iterator[None]:
    reset_rate_limiter()
    yield
    reset_rate_limiter()


class FakeClock:
    """Monotonic clock whose sleep advances time instead of waiting."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


def _gemini_body(text: str) -> Dict[str, Any]:
    return {
        "candidates": [
            {
                "content": {"parts": [{"text": text}], "role": "model"},
                "finishReason": "STOP",
            }
        ],
        "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 30},
    }


@pytest.fixture
def gemini_body() -> Callable[[str], Dict[str, Any]]:
    """Builds a successful generateContent body carrying ``text``."""
    return _gemini_body


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        GEMINI_API_KEY="test-gemini-key",
        PERSISTENCE_BACKEND="memory",
        MIN_REQUEST_INTERVAL_SECONDS=0,
        LOG_LEVEL="DEBUG",
    )
