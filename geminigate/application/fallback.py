import random
from typing import Optional

from ..constants import FALLBACK_TEMPLATE, FALLBACK_TIPS


def generate_fallback_response(
    context: str, rng: Optional[random.Random] = None
) -> str:
    """Canned coaching tip annotated with the caller's context.

    Used when the upstream call fails after exhausting retries so the feature
    degrades to generic advice instead of surfacing an error.
    """
    picker = rng or random
    tip = picker.choice(FALLBACK_TIPS)
    return FALLBACK_TEMPLATE.format(tip=tip, context=context)
