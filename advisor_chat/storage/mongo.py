"""MongoDB chat store: one document per session and one per message.

Collections::

    chat_sessions  {_id, user_id, summary, created_at, updated_at}
    chat_messages  {_id, session_id, sender, content, created_at,
                    pending_id, cache_id, feedback}
    user_profile   {_id: user_id, ...profile fields}

Realtime pushes use MongoDB change streams, which need a replica set. On a
standalone server the watch fails; that is logged and the subscription stays
silent, the local state then only reflects this client's own writes.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Optional
from uuid import uuid4

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from advisor_chat.errors import StorageError
from advisor_chat.models.messages import ChatMessage, FeedbackType, utcnow
from advisor_chat.models.sessions import Session
from advisor_chat.storage.base import ChatStore, MessageListener, Subscription

logger = logging.getLogger(__name__)

SESSIONS_COLLECTION = "chat_sessions"
MESSAGES_COLLECTION = "chat_messages"
PROFILES_COLLECTION = "user_profile"


def _wrap_errors(func):
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PyMongoError as exc:
            raise StorageError(f"{func.__name__} failed: {exc}") from exc

    return wrapper


def _session_from_doc(doc: dict[str, Any]) -> Session:
    return Session(
        id=doc["_id"],
        user_id=doc["user_id"],
        summary=doc.get("summary"),
        created_at=doc["created_at"],
        updated_at=doc["updated_at"],
    )


def _message_to_doc(message: ChatMessage) -> dict[str, Any]:
    doc = message.model_dump(mode="python", exclude={"id"})
    doc["_id"] = message.id
    doc["sender"] = message.sender.value
    if message.feedback is not None:
        doc["feedback"] = message.feedback.value
    return doc


def _message_from_doc(doc: dict[str, Any]) -> ChatMessage:
    return ChatMessage(
        id=doc["_id"],
        session_id=doc["session_id"],
        sender=doc["sender"],
        content=doc.get("content", ""),
        created_at=doc["created_at"],
        pending_id=doc.get("pending_id"),
        cache_id=doc.get("cache_id"),
        feedback=doc.get("feedback"),
    )


class _ChangeStreamSubscription(Subscription):
    def __init__(self, task: asyncio.Task) -> None:
        self._task = task

    async def close(self) -> None:
        if self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class MongoChatStore(ChatStore):
    """Motor-backed store.

    Lifecycle:
        store = MongoChatStore(uri, database)
        await store.initialize()   # connects and pings
        ...
        await store.close()
    """

    def __init__(self, uri: str, database: str) -> None:
        self._uri = uri
        self._database_name = database
        self._client: AsyncIOMotorClient | None = None
        self._db: AsyncIOMotorDatabase | None = None
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("MongoChatStore already initialized - skipping")
            return

        logger.info("Connecting to MongoDB at %s", self._uri)
        self._client = AsyncIOMotorClient(
            self._uri,
            serverSelectionTimeoutMS=5_000,
            tz_aware=True,
        )
        self._db = self._client[self._database_name]
        try:
            await self._client.admin.command("ping")
            await self.messages.create_index(
                [("session_id", ASCENDING), ("created_at", ASCENDING)]
            )
            await self.sessions.create_index(
                [("user_id", ASCENDING), ("updated_at", DESCENDING)]
            )
        except PyMongoError as exc:
            raise StorageError(f"MongoDB unavailable: {exc}") from exc
        self._initialized = True
        logger.info("MongoDB connection established")

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("MongoDB connection closed")
        self._initialized = False

    @property
    def db(self) -> AsyncIOMotorDatabase:
        if self._db is None:
            raise RuntimeError(
                "MongoChatStore not initialized - call initialize() first"
            )
        return self._db

    @property
    def sessions(self) -> AsyncIOMotorCollection:
        return self.db[SESSIONS_COLLECTION]

    @property
    def messages(self) -> AsyncIOMotorCollection:
        return self.db[MESSAGES_COLLECTION]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @_wrap_errors
    async def create_session(self, user_id: str) -> Session:
        now = utcnow()
        doc = {
            "_id": str(uuid4()),
            "user_id": user_id,
            "summary": None,
            "created_at": now,
            "updated_at": now,
        }
        await self.sessions.insert_one(doc)
        logger.info("Created session %s for user %s", doc["_id"], user_id)
        return _session_from_doc(doc)

    @_wrap_errors
    async def get_session(self, session_id: str) -> Optional[Session]:
        doc = await self.sessions.find_one({"_id": session_id})
        return _session_from_doc(doc) if doc else None

    @_wrap_errors
    async def list_sessions(self, user_id: str, limit: int = 50) -> list[Session]:
        cursor = (
            self.sessions.find({"user_id": user_id})
            .sort("updated_at", DESCENDING)
            .limit(limit)
        )
        return [_session_from_doc(doc) async for doc in cursor]

    @_wrap_errors
    async def update_session_summary(self, session_id: str, summary: str) -> None:
        await self.sessions.update_one(
            {"_id": session_id},
            {"$set": {"summary": summary, "updated_at": utcnow()}},
        )

    @_wrap_errors
    async def touch_session(self, session_id: str) -> None:
        await self.sessions.update_one(
            {"_id": session_id}, {"$set": {"updated_at": utcnow()}}
        )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    @_wrap_errors
    async def insert_message(self, message: ChatMessage) -> ChatMessage:
        stored = message.model_copy(update={"id": str(uuid4()), "created_at": utcnow()})
        await self.messages.insert_one(_message_to_doc(stored))
        return stored

    @_wrap_errors
    async def list_messages(self, session_id: str) -> list[ChatMessage]:
        cursor = self.messages.find({"session_id": session_id}).sort(
            "created_at", ASCENDING
        )
        return [_message_from_doc(doc) async for doc in cursor]

    @_wrap_errors
    async def update_message_feedback(
        self, message_id: str, feedback: FeedbackType
    ) -> None:
        await self.messages.update_one(
            {"_id": message_id}, {"$set": {"feedback": feedback.value}}
        )

    def subscribe_messages(
        self, session_id: str, listener: MessageListener
    ) -> Subscription:
        task = asyncio.create_task(self._watch_messages(session_id, listener))
        return _ChangeStreamSubscription(task)

    async def _watch_messages(self, session_id: str, listener: MessageListener) -> None:
        pipeline = [
            {
                "$match": {
                    "operationType": "insert",
                    "fullDocument.session_id": session_id,
                }
            }
        ]
        try:
            async with self.messages.watch(pipeline) as stream:
                logger.info("Watching messages of session %s", session_id)
                async for change in stream:
                    listener(_message_from_doc(change["fullDocument"]))
        except PyMongoError as exc:
            logger.warning(
                "Realtime message watch unavailable for session %s: %s",
                session_id,
                exc,
            )

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    @_wrap_errors
    async def get_user_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        doc = await self.db[PROFILES_COLLECTION].find_one({"_id": user_id})
        if doc is None:
            return None
        doc["id"] = doc.pop("_id")
        return doc
