"""Exception hierarchy for the Gemini gateway.

Configuration and quota errors are meant to reach end users as actionable
messages. Upstream errors are retried internally and, once retries are
exhausted, converted into fallback text by callers. Persistence errors never
propagate past the cache and quota layers; they travel inside ``Result``.
"""

from typing import Optional, Dict, Any


class GeminiGatewayException(Exception):
    """Base exception for all gateway-specific exceptions."""

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.request_id = request_id
        self.details = details or {}


class ConfigurationError(GeminiGatewayException):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.config_key = config_key


class QuotaExceededError(GeminiGatewayException):
    """Raised when a user has used up the daily AI budget of their tier."""

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        limit: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.user_id = user_id
        self.limit = limit


class UpstreamError(GeminiGatewayException):
    """Raised when a call to the generative-language API fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.status_code = status_code


class RateLimitError(UpstreamError):
    """Raised when the upstream API answers 429."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, 429, request_id, details)
        self.retry_after = retry_after


class UpstreamTimeoutError(UpstreamError):
    """Raised when an upstream attempt times out."""

    def __init__(
        self,
        message: str,
        timeout_seconds: Optional[float] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, None, request_id, details)
        self.timeout_seconds = timeout_seconds


class MalformedResponseError(UpstreamError):
    """Raised when a 2xx response carries an error field or no text."""

    pass


class PersistenceError(GeminiGatewayException):
    """Failure talking to the cache table or the profile table."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, request_id, details)
        self.table = table
        self.status_code = status_code


class RecordNotFoundError(PersistenceError):
    """The requested row does not exist."""

    pass
