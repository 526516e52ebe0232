"""Enums module for geminigate.

Contains the enumeration classes used throughout the application.
"""

from enum import StrEnum


class MessageRoles(StrEnum):
    """Roles accepted in the flat caller-side message list."""

    System = "system"
    User = "user"
    Assistant = "assistant"


class GeminiRoles(StrEnum):
    """Turn roles understood by the generateContent endpoint."""

    User = "user"
    Model = "model"


class SubscriptionTiers(StrEnum):
    """Subscription tiers stored in ``profiles.subscription_tier``."""

    Free = "free"
    Monthly = "monthly"
    Lifetime = "lifetime"
