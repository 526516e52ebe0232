"""Cache key derivation for gateway responses.

Keys are fingerprints, not uniqueness guarantees: a collision only means an
unrelated cached answer is served, so callers must treat cached text as
advisory.
"""

from typing import Optional

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3
_MASK_64 = 0xFFFFFFFFFFFFFFFF

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def fnv1a_64(data: bytes) -> int:
    """64-bit FNV-1a hash of ``data``."""
    h = FNV64_OFFSET_BASIS
    for byte in data:
        h ^= byte
        h = (h * FNV64_PRIME) & _MASK_64
    return h


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def fingerprint(text: str) -> str:
    """Stable, fast fingerprint of ``text`` rendered in base 36."""
    return to_base36(fnv1a_64(text.encode("utf-8")))


def derive_cache_key(
    prompt: str,
    system_prompt: Optional[str] = None,
    explicit_key: Optional[str] = None,
) -> str:
    """Return the effective cache key for a call.

    An explicit key is used verbatim so callers can share responses by a
    business fingerprint (e.g. ``trade_analysis_<id>``). Otherwise the key is
    derived from the prompt followed by the system prompt.
    """
    if explicit_key:
        return explicit_key
    return fingerprint(prompt + (system_prompt or ""))
