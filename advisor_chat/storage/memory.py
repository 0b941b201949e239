"""In-process chat store for tests and offline runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from uuid import uuid4

from advisor_chat.models.messages import ChatMessage, FeedbackType, sort_messages, utcnow
from advisor_chat.models.sessions import Session
from advisor_chat.storage.base import ChatStore, MessageListener, Subscription

logger = logging.getLogger(__name__)


class _MemorySubscription(Subscription):
    def __init__(self, store: "InMemoryChatStore", session_id: str, listener: MessageListener) -> None:
        self._store = store
        self._session_id = session_id
        self._listener = listener

    async def close(self) -> None:
        listeners = self._store._listeners.get(self._session_id, [])
        if self._listener in listeners:
            listeners.remove(self._listener)


class InMemoryChatStore(ChatStore):
    """Dict-backed store. Inserts are pushed to subscribers on the next loop turn."""

    def __init__(self) -> None:
        self.sessions: dict[str, Session] = {}
        self.messages: dict[str, ChatMessage] = {}
        self.profiles: dict[str, dict[str, Any]] = {}
        self._listeners: dict[str, list[MessageListener]] = {}

    async def create_session(self, user_id: str) -> Session:
        session = Session(id=str(uuid4()), user_id=user_id)
        self.sessions[session.id] = session
        logger.debug("Created session %s for user %s", session.id, user_id)
        return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    async def list_sessions(self, user_id: str, limit: int = 50) -> list[Session]:
        owned = [s for s in self.sessions.values() if s.user_id == user_id]
        owned.sort(key=lambda s: s.updated_at, reverse=True)
        return owned[:limit]

    async def update_session_summary(self, session_id: str, summary: str) -> None:
        session = self.sessions.get(session_id)
        if session is not None:
            session.summary = summary
            session.updated_at = utcnow()

    async def touch_session(self, session_id: str) -> None:
        session = self.sessions.get(session_id)
        if session is not None:
            session.updated_at = utcnow()

    async def insert_message(self, message: ChatMessage) -> ChatMessage:
        stored = message.model_copy(update={"id": str(uuid4()), "created_at": utcnow()})
        self.messages[stored.id] = stored

        listeners = list(self._listeners.get(stored.session_id, []))
        if listeners:
            loop = asyncio.get_running_loop()
            for listener in listeners:
                loop.call_soon(listener, stored.model_copy())
        return stored.model_copy()

    async def list_messages(self, session_id: str) -> list[ChatMessage]:
        return sort_messages(
            [m.model_copy() for m in self.messages.values() if m.session_id == session_id]
        )

    async def update_message_feedback(
        self, message_id: str, feedback: FeedbackType
    ) -> None:
        message = self.messages.get(message_id)
        if message is not None:
            message.feedback = feedback

    def subscribe_messages(
        self, session_id: str, listener: MessageListener
    ) -> Subscription:
        self._listeners.setdefault(session_id, []).append(listener)
        return _MemorySubscription(self, session_id, listener)

    async def get_user_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        return self.profiles.get(user_id)
