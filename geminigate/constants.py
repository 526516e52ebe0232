"""Constants module for geminigate.

Contains the upstream endpoint, pacing and backoff defaults, tier ceilings,
table names and the canned text used throughout the gateway.
"""

from typing import Dict, Final, Tuple

from .enums import SubscriptionTiers

GEMINI_API_URL: Final[str] = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_GEMINI_MODEL: Final[str] = "gemini-2.0-flash-lite"

# 5 RPM on the free Gemini tier = one request every 12 seconds
MIN_REQUEST_INTERVAL_SECONDS: Final[float] = 12.0

DEFAULT_MAX_RETRIES: Final[int] = 3
RATE_LIMITED_BASE_DELAY_SECONDS: Final[float] = 10.0  # 10s, 20s, 40s
FAILURE_BASE_DELAY_SECONDS: Final[float] = 5.0  # 5s, 10s, 20s

DEFAULT_TEMPERATURE: Final[float] = 0.7
DEFAULT_MAX_OUTPUT_TOKENS: Final[int] = 2048
DEFAULT_TOP_P: Final[float] = 0.95
DEFAULT_TOP_K: Final[int] = 40

DEFAULT_CACHE_TTL_MINUTES: Final[int] = 60
MAX_CACHE_TTL_MINUTES: Final[int] = 60 * 24 * 365

# remaining_requests value reported when the quota was not consulted
UNKNOWN_REMAINING: Final[int] = -1

FREE_TIER: Final[str] = SubscriptionTiers.Free
DEFAULT_TIER_DAILY_LIMITS: Final[Dict[str, int]] = {
    SubscriptionTiers.Free: 10,
    SubscriptionTiers.Monthly: 100,
    SubscriptionTiers.Lifetime: 500,
}

CACHE_TABLE: Final[str] = "ai_response_cache"
PROFILES_TABLE: Final[str] = "profiles"

SYSTEM_INSTRUCTIONS_PREFIX: Final[str] = "System instructions: "
SYSTEM_ACKNOWLEDGEMENT: Final[str] = "Understood. I will follow these instructions."

QUOTA_EXCEEDED_MESSAGE: Final[str] = (
    "Daily AI request limit reached. Try again tomorrow."
)

FALLBACK_TIPS: Final[Tuple[str, ...]] = (
    "Focus on your trading plan and stick to your predefined rules.",
    "Consider reviewing your recent trades to identify patterns.",
    "Remember: consistency is more important than occasional big wins.",
    "Take breaks when feeling overwhelmed - emotional control is key.",
    "Journal your thoughts before and after each trade.",
)
FALLBACK_TEMPLATE: Final[str] = (
    "I'm currently unable to provide a detailed AI analysis "
    "(service temporarily unavailable). Here's a general tip: {tip}"
    "\n\nContext: {context}"
)
