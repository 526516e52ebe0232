"""Shared Gemini access for trading-journal features."""

from .application.fallback import generate_fallback_response
from .application.gateway import GeminiGateway, call_gemini

__version__ = "1.0.0"

__all__ = ["GeminiGateway", "call_gemini", "generate_fallback_response", "__version__"]
