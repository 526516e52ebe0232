"""Conversion between the flat ``{role, content}`` message list and Gemini turns."""

from typing import Any, Dict, List, Optional, Sequence, Union

from ..constants import SYSTEM_ACKNOWLEDGEMENT, SYSTEM_INSTRUCTIONS_PREFIX
from ..domain.models import ChatMessage, GeminiContent, GeminiPart
from ..enums import GeminiRoles, MessageRoles
from ..logging import debug, LogRecord

MessageLike = Union[ChatMessage, Dict[str, Any]]


def _coerce(message: MessageLike) -> ChatMessage:
    if isinstance(message, ChatMessage):
        return message
    return ChatMessage.model_validate(message)


def build_messages(prompt: str, system_prompt: Optional[str] = None) -> List[ChatMessage]:
    """Build the message list for a single-prompt call."""
    messages: List[ChatMessage] = []
    if system_prompt:
        messages.append(ChatMessage(role=MessageRoles.System, content=system_prompt))
    messages.append(ChatMessage(role=MessageRoles.User, content=prompt))
    return messages


def _text_turn(role: GeminiRoles, text: str) -> GeminiContent:
    return GeminiContent(role=role, parts=[GeminiPart(text=text)])


def convert_messages_to_gemini(messages: Sequence[MessageLike]) -> List[GeminiContent]:
    """Convert OpenAI-style messages into alternating Gemini turns.

    generateContent has no system role. The first system message becomes a
    synthetic leading user turn followed by a synthetic model acknowledgement,
    so alternation holds before the real conversation starts. Further system
    messages are dropped. ``assistant`` maps to ``model``; every other role
    maps to ``user``.
    """
    chat_messages = [_coerce(m) for m in messages]

    contents = [
        _text_turn(
            GeminiRoles.Model
            if m.role == MessageRoles.Assistant
            else GeminiRoles.User,
            m.content,
        )
        for m in chat_messages
        if m.role != MessageRoles.System
    ]

    system_message = next(
        (m for m in chat_messages if m.role == MessageRoles.System), None
    )
    if system_message is not None:
        contents[0:0] = [
            _text_turn(
                GeminiRoles.User,
                f"{SYSTEM_INSTRUCTIONS_PREFIX}{system_message.content}",
            ),
            _text_turn(GeminiRoles.Model, SYSTEM_ACKNOWLEDGEMENT),
        ]
        debug(
            LogRecord(
                event="system_prompt_converted",
                message="System prompt converted to synthetic user/model turns",
                data={"turns": len(contents)},
            )
        )

    return contents
