"""Chat socket wire models: the outbound request and the inbound frame variants.

The inbound protocol exists in two generations and a client has to speak
both:

* legacy: plain text fragments appended in order, terminated by the literal
  ``[STREAM_END]``;
* structured: JSON objects with a ``type`` discriminator, one of a status
  kind (``thinking``, ``searching``, ``generating``, ...), ``answer`` or
  ``done``.

``parse_frame`` turns one raw frame into exactly one of the variants below.
Structured parsing is always tried first; anything that is not a JSON object
with a string ``type`` is legacy text.
"""

from __future__ import annotations

import json
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from advisor_chat.models.messages import ChatMessage

STREAM_END_SENTINEL = "[STREAM_END]"

ANSWER_TYPE = "answer"
DONE_TYPE = "done"

# Display text for status kinds that arrive without their own message
STATUS_LABELS = {
    "thinking": "생각하는 중...",
    "searching": "검색하는 중...",
    "generating": "답변을 생성하는 중...",
}


class StatusFrame(BaseModel):
    kind: Literal["status"] = "status"
    status: str
    message: Optional[str] = None

    @property
    def label(self) -> str:
        return self.message or STATUS_LABELS.get(self.status, self.status)


class AnswerFrame(BaseModel):
    kind: Literal["answer"] = "answer"
    message: str = ""
    pending_id: Optional[str] = None
    cache_id: Optional[str] = None


class DoneFrame(BaseModel):
    kind: Literal["done"] = "done"


class LegacyFragment(BaseModel):
    kind: Literal["fragment"] = "fragment"
    text: str


class LegacySentinel(BaseModel):
    kind: Literal["sentinel"] = "sentinel"


Frame = Union[StatusFrame, AnswerFrame, DoneFrame, LegacyFragment, LegacySentinel]


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def parse_frame(raw: str | bytes) -> Frame:
    """Classify one inbound socket frame."""
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")

    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        data = None

    if isinstance(data, dict) and isinstance(data.get("type"), str):
        frame_type = data["type"]
        if frame_type == ANSWER_TYPE:
            message = data.get("message")
            return AnswerFrame(
                message="" if message is None else str(message),
                pending_id=_optional_str(data.get("pending_id")),
                cache_id=_optional_str(data.get("cache_id")),
            )
        if frame_type == DONE_TYPE:
            return DoneFrame()
        return StatusFrame(
            status=frame_type,
            message=_optional_str(data.get("message")),
        )

    if raw == STREAM_END_SENTINEL:
        return LegacySentinel()
    return LegacyFragment(text=raw)


class ChatRequest(BaseModel):
    """Payload sent once, right after the chat socket opens."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    messages: list[dict[str, Any]]
    user_id: Optional[str] = Field(default=None, alias="userId")
    # Reserved by the backend; always empty for now.
    attachments: list[Any] = Field(default_factory=list)
    profile: Optional[dict[str, Any]] = None

    @classmethod
    def build(
        cls,
        session_id: str,
        history: list[ChatMessage],
        new_message: ChatMessage,
        user_id: Optional[str] = None,
        profile: Optional[dict[str, Any]] = None,
        window: int = 10,
    ) -> "ChatRequest":
        """Request carrying the trailing ``window`` history messages plus ``new_message``."""
        trailing = history[-window:] if window > 0 else []
        return cls(
            session_id=session_id,
            messages=[m.to_wire() for m in [*trailing, new_message]],
            user_id=user_id,
            profile=profile,
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
