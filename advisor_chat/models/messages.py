"""Message models for local state, storage rows and the chat wire format."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Message sender role."""

    USER = "user"
    ASSISTANT = "assistant"


class FeedbackType(str, Enum):
    """Reaction recorded against an assistant message."""

    LIKE = "like"
    DISLIKE = "dislike"


class ChatMessage(BaseModel):
    """One turn in a conversation.

    ``pending_id`` and ``cache_id`` are correlation ids handed out by the
    chat backend with an answer; they are only set on assistant messages and
    are echoed back when the user leaves feedback.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    session_id: str
    sender: MessageRole
    content: str
    created_at: datetime = Field(default_factory=utcnow)
    pending_id: Optional[str] = None
    cache_id: Optional[str] = None
    feedback: Optional[FeedbackType] = None

    def to_wire(self) -> dict[str, Any]:
        """Shape used inside chat and summarization requests."""
        return {
            "id": self.id,
            "content": self.content,
            "sender": self.sender.value,
            "timestamp": int(self.created_at.timestamp() * 1000),
        }


def sort_messages(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Order messages by creation timestamp (stable for equal timestamps)."""
    return sorted(messages, key=lambda m: m.created_at)
