"""Session models for conversation management."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from advisor_chat.models.messages import utcnow


class Session(BaseModel):
    """Conversation session owned by one user.

    ``summary`` is filled in asynchronously after an exchange completes and
    doubles as the display title.
    """

    id: str
    user_id: str
    summary: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SessionSummary(BaseModel):
    """Summary of a session for list views."""

    id: str
    title: str
    updated_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "SessionSummary":
        return cls(
            id=session.id,
            title=session.summary or "새 대화",
            updated_at=session.updated_at,
        )
