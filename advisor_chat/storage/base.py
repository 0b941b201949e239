"""Durable storage port used by the chat session client.

Backends persist sessions and messages, hand out server-side ids, and push
newly inserted messages of a session to subscribers (other devices writing to
the same conversation, or the echo of our own writes).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from advisor_chat.models.messages import ChatMessage, FeedbackType
from advisor_chat.models.sessions import Session

MessageListener = Callable[[ChatMessage], None]


class Subscription(ABC):
    """Handle for a realtime message subscription."""

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError


class ChatStore(ABC):
    """Row storage for sessions, messages and user profiles.

    Lifecycle:
        store = SomeChatStore(...)
        await store.initialize()   # once, before first use
        ...
        await store.close()
    """

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_session(self, user_id: str) -> Session:
        raise NotImplementedError

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]:
        raise NotImplementedError

    @abstractmethod
    async def list_sessions(self, user_id: str, limit: int = 50) -> list[Session]:
        """Sessions of ``user_id``, most recently updated first."""
        raise NotImplementedError

    @abstractmethod
    async def update_session_summary(self, session_id: str, summary: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def touch_session(self, session_id: str) -> None:
        """Bump ``updated_at`` of a session."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_message(self, message: ChatMessage) -> ChatMessage:
        """Persist ``message`` and return the stored row (server id and timestamp)."""
        raise NotImplementedError

    @abstractmethod
    async def list_messages(self, session_id: str) -> list[ChatMessage]:
        """Messages of a session in creation order."""
        raise NotImplementedError

    @abstractmethod
    async def update_message_feedback(
        self, message_id: str, feedback: FeedbackType
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def subscribe_messages(
        self, session_id: str, listener: MessageListener
    ) -> Subscription:
        """Call ``listener`` for every message inserted into ``session_id`` from now on."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_user_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        raise NotImplementedError
