from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_K,
    DEFAULT_TOP_P,
    MAX_CACHE_TTL_MINUTES,
    UNKNOWN_REMAINING,
)
from ..enums import GeminiRoles


class ChatMessage(BaseModel):
    """A caller-side message in OpenAI-style ``{role, content}`` form.

    Attributes:
        role (str): 'system', 'user' or 'assistant'.
        content (str): The message text.
    """

    role: str
    content: str


class GeminiPart(BaseModel):
    """A single part of a Gemini turn. Only text parts are produced here."""

    text: Optional[str] = None


class GeminiContent(BaseModel):
    """One turn in the alternating user/model transcript.

    Attributes:
        role (GeminiRoles): 'user' or 'model'.
        parts (List[GeminiPart]): Content parts of the turn.
    """

    role: GeminiRoles
    parts: List[GeminiPart]


class GenerationConfig(BaseModel):
    """Sampling parameters sent with every generateContent call."""

    model_config = ConfigDict(populate_by_name=True)

    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = Field(
        default=DEFAULT_MAX_OUTPUT_TOKENS, alias="maxOutputTokens"
    )
    top_p: float = Field(default=DEFAULT_TOP_P, alias="topP")
    top_k: int = Field(default=DEFAULT_TOP_K, alias="topK")


class GeminiRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    contents: List[GeminiContent]
    generation_config: Optional[GenerationConfig] = Field(
        default=None, alias="generationConfig"
    )

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GeminiCandidateContent(BaseModel):
    parts: List[GeminiPart] = Field(default_factory=list)
    role: Optional[str] = None


class GeminiCandidate(BaseModel):
    content: Optional[GeminiCandidateContent] = None
    finish_reason: Optional[str] = Field(default=None, alias="finishReason")


class GeminiErrorDetail(BaseModel):
    message: str = ""
    code: Optional[int] = None
    status: Optional[str] = None


class GeminiResponse(BaseModel):
    """Body returned by generateContent.

    Attributes:
        candidates (Optional[List[GeminiCandidate]]): Generated candidates.
        error (Optional[GeminiErrorDetail]): Present when the API reports a failure.
    """

    candidates: Optional[List[GeminiCandidate]] = None
    error: Optional[GeminiErrorDetail] = None

    def first_text(self) -> Optional[str]:
        """Text of the first part of the first candidate, if any."""
        if not self.candidates:
            return None
        content = self.candidates[0].content
        if content is None or not content.parts:
            return None
        return content.parts[0].text or None


class CacheEntry(BaseModel):
    """A cached prior response, one row of ``ai_response_cache``.

    Attributes:
        cache_key (str): Fingerprint identifying the reusable response.
        response (Dict[str, Any]): Opaque JSON payload, in practice ``{"text": ...}``.
        expires_at (datetime): Absolute expiry; the entry is valid only before it.
    """

    cache_key: str
    response: Dict[str, Any]
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at


class ProfileUsage(BaseModel):
    """Quota columns of a ``profiles`` row."""

    daily_ai_requests: Optional[int] = 0
    last_ai_reset_date: Optional[str] = None
    subscription_tier: Optional[str] = None

    @field_validator("last_ai_reset_date", mode="before")
    @classmethod
    def normalize_date(cls, v: Any) -> Any:
        if isinstance(v, (date, datetime)):
            return v.isoformat()[:10]
        return v


class QuotaDecision(BaseModel):
    """Outcome of the daily quota gate.

    ``remaining`` is -1 when the gate failed open and the real number is unknown.
    """

    allowed: bool
    remaining: int


class GatewayResult(BaseModel):
    text: str
    cached: bool
    remaining_requests: int = UNKNOWN_REMAINING


class GenerateRequest(BaseModel):
    """Body of ``POST /v1/generate``."""

    user_id: str = Field(min_length=1)
    prompt: str = Field(min_length=1)
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    cache_key: Optional[str] = None
    cache_ttl_minutes: Optional[int] = Field(
        default=None, ge=0, le=MAX_CACHE_TTL_MINUTES
    )
    skip_usage_check: bool = False
    fallback_context: Optional[str] = None


class GenerateResponse(BaseModel):
    text: str
    cached: bool
    remaining_requests: int
    fallback: bool = False


class ErrorResponse(BaseModel):
    error: str
    message: str
    request_id: Optional[str] = None
