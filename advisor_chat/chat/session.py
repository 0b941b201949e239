"""Chat session client: the owner of one conversation's local state.

Responsibilities:

- **Session resolution**: a conversation row is created lazily, right before
  its first message is sent, and then becomes the active session.
- **Exchange**: one chat socket per user message; while a reply is streaming
  further submissions are ignored.
- **Persistence and recovery**: the user message is appended locally at once
  and written in the background; exactly one assistant message is written
  per submission, a canned fallback when the socket fails.
- **Reconciliation**: realtime pushes are merged by id, and a push that
  echoes a not-yet-confirmed optimistic message replaces it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Any, Callable, Coroutine, Optional

from advisor_chat.api.client import AdvisorApiClient
from advisor_chat.chat.fallback import FallbackReply, static_fallback
from advisor_chat.chat.interpreter import FrameInterpreter, StreamingExchange
from advisor_chat.chat.transport import ChatTransport
from advisor_chat.errors import ApiError, ChatSetupError, StorageError, TransportError
from advisor_chat.models.frames import ChatRequest
from advisor_chat.models.messages import (
    ChatMessage,
    FeedbackType,
    MessageRole,
    sort_messages,
)
from advisor_chat.storage.base import ChatStore, Subscription

logger = logging.getLogger(__name__)

# Max clock distance between an optimistic message and its realtime echo
ECHO_MATCH_WINDOW = timedelta(seconds=5)

UpdateCallback = Callable[["ChatSessionClient"], None]


class ChatSessionClient:
    """Streaming chat client bound to one user and at most one active session.

    Lifecycle:
        client = ChatSessionClient(store, transport, api, user_id)
        await client.open()          # profile, realtime, history
        reply = await client.send("안녕")
        ...
        await client.close()         # closes any open chat socket

    Also usable as ``async with ChatSessionClient(...) as client``.
    """

    def __init__(
        self,
        store: ChatStore,
        transport: ChatTransport,
        api: AdvisorApiClient | None = None,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        profile: Optional[dict[str, Any]] = None,
        history_window: int = 10,
        fallback: FallbackReply = static_fallback,
        on_update: UpdateCallback | None = None,
    ) -> None:
        self.store = store
        self.transport = transport
        self.api = api
        self.user_id = user_id
        self.session_id = session_id
        self.profile = profile
        self.history_window = history_window
        self.fallback = fallback
        self.on_update = on_update

        self.exchange: StreamingExchange | None = None
        self._messages: list[ChatMessage] = []
        # optimistic id -> message, until the durable write confirms it
        self._unconfirmed: dict[str, ChatMessage] = {}
        self._busy = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False
        self._profile_loaded = profile is not None
        self._subscription: Subscription | None = None
        self._tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        await self._load_profile()
        if self.session_id:
            await self._resubscribe()
            await self.load_history()

    async def close(self) -> None:
        """Close the chat socket and wait for the current send to settle.

        Realtime pushes stop and background writes finish before this returns.
        """
        if self._closed:
            return
        self._closed = True
        await self.transport.close()
        await self._idle.wait()
        await self._unsubscribe()
        await self.drain()
        logger.info("Chat session client closed (session_id=%s)", self.session_id)

    async def __aenter__(self) -> "ChatSessionClient":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def drain(self) -> None:
        """Wait for background writes and summarization to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[ChatMessage]:
        """Local messages in creation-timestamp order."""
        return sort_messages(self._messages)

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def status(self) -> Optional[str]:
        return self.exchange.status if self.exchange else None

    @property
    def streamed_text(self) -> str:
        return self.exchange.text if self.exchange else ""

    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def ensure_session(self) -> str:
        """Return the active session id, creating the session on first use.

        Raises:
            ChatSetupError: no user is signed in or the session row could not be created.
        """
        if self.session_id:
            return self.session_id
        if not self.user_id:
            raise ChatSetupError("Cannot start a conversation without a signed-in user")

        try:
            session = await self.store.create_session(self.user_id)
        except StorageError as exc:
            logger.error("Session creation failed for user %s: %s", self.user_id, exc)
            raise ChatSetupError("Could not create a new conversation") from exc

        self.session_id = session.id
        logger.info("Started session %s for user %s", session.id, self.user_id)
        await self._resubscribe()
        return session.id

    async def start_new_session(self) -> None:
        """Forget the active session; the next message creates a fresh one."""
        self._require_idle()
        await self._unsubscribe()
        self.session_id = None
        self._messages = []
        self._unconfirmed.clear()
        self._notify()

    async def select_session(self, session_id: str) -> None:
        """Make an existing session active and load its history."""
        self._require_idle()
        if session_id == self.session_id:
            return
        self.session_id = session_id
        self._messages = []
        self._unconfirmed.clear()
        await self._resubscribe()
        await self.load_history()

    async def load_history(self) -> list[ChatMessage]:
        if not self.session_id:
            self._messages = []
            return []
        loaded = await self.store.list_messages(self.session_id)
        self._messages = list(loaded)
        logger.debug("Loaded %d messages for session %s", len(loaded), self.session_id)
        self._notify()
        return self.messages

    def _require_idle(self) -> None:
        if self._busy:
            raise RuntimeError("A reply is still streaming for the current session")

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(self, text: str) -> Optional[ChatMessage]:
        """Send one user message and return the assistant reply.

        Returns None when the submission is ignored: empty text, a reply is
        already streaming, or the client is closed.

        Raises:
            ChatSetupError: the conversation could not be created; nothing
                was appended, persisted or sent.
        """
        text = text.strip()
        if not text or self._closed:
            return None
        if self._busy:
            logger.debug("Ignoring submission while a reply is streaming")
            return None

        self._busy = True
        self._idle.clear()
        try:
            session_id = await self.ensure_session()
            await self._load_profile()
            if self._closed:
                return None

            history = self.messages
            user_message = ChatMessage(
                session_id=session_id, sender=MessageRole.USER, content=text
            )
            self._append(user_message)
            self._unconfirmed[user_message.id] = user_message
            self._spawn(self._persist_user_message(user_message))
            # let the write start before the socket opens
            await asyncio.sleep(0)

            self.exchange = StreamingExchange()
            self._notify()
            logger.info("User message in session %s: %s", session_id, text[:50])

            request = ChatRequest.build(
                session_id,
                history,
                user_message,
                user_id=self.user_id,
                profile=self.profile,
                window=self.history_window,
            )
            return await self._stream_reply(request, user_message)
        finally:
            self.exchange = None
            self._busy = False
            self._idle.set()
            self._notify()

    async def _stream_reply(
        self, request: ChatRequest, user_message: ChatMessage
    ) -> ChatMessage:
        exchange = self.exchange or StreamingExchange()
        interpreter = FrameInterpreter(exchange)
        pending_id = cache_id = None

        try:
            content = await self.transport.exchange(
                request, interpreter, on_frame=lambda _: self._notify()
            )
            pending_id, cache_id = exchange.pending_id, exchange.cache_id
        except TransportError as exc:
            logger.warning(
                "Chat stream failed for session %s: %s", request.session_id, exc
            )
            content = self.fallback(user_message.content)
        except Exception:
            logger.exception(
                "Unexpected error while streaming reply for session %s",
                request.session_id,
            )
            content = self.fallback(user_message.content)
        finally:
            exchange.is_open = False

        reply = ChatMessage(
            session_id=request.session_id,
            sender=MessageRole.ASSISTANT,
            content=content,
            pending_id=pending_id,
            cache_id=cache_id,
        )
        return await self._commit_assistant_message(reply)

    async def _persist_user_message(self, message: ChatMessage) -> None:
        try:
            stored = await self.store.insert_message(message)
        except StorageError as exc:
            logger.error(
                "Failed to persist user message in session %s: %s",
                message.session_id,
                exc,
            )
            self._unconfirmed.pop(message.id, None)
            return
        self._confirm(message.id, stored)

    async def _commit_assistant_message(self, message: ChatMessage) -> ChatMessage:
        try:
            stored = await self.store.insert_message(message)
        except StorageError as exc:
            logger.error(
                "Failed to persist assistant message in session %s: %s",
                message.session_id,
                exc,
            )
            stored = message
        self._append(stored)
        self._spawn(self._after_exchange(stored.session_id, self.messages))
        return stored

    async def _after_exchange(
        self, session_id: str, transcript: list[ChatMessage]
    ) -> None:
        """Bump the session and refresh its summary. Best effort."""
        try:
            await self.store.touch_session(session_id)
            if self.api is None:
                return
            summary = await self.api.summarize(session_id, transcript)
            if summary:
                await self.store.update_session_summary(session_id, summary)
                logger.info("Session %s summarized: %s", session_id, summary[:50])
        except (ApiError, StorageError) as exc:
            logger.warning("Session summarization failed for %s: %s", session_id, exc)

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    async def send_feedback(self, message_id: str, feedback: FeedbackType) -> bool:
        """Record a reaction to an assistant message. Failures are logged, not raised."""
        message = self.get_message(message_id)
        if message is None or message.sender != MessageRole.ASSISTANT:
            raise ValueError(f"No assistant message with id {message_id}")

        previous, message.feedback = message.feedback, feedback
        self._notify()
        try:
            if self.api is not None:
                await self.api.send_feedback(
                    self.user_id,
                    feedback,
                    pending_id=message.pending_id,
                    cache_id=message.cache_id,
                )
            await self.store.update_message_feedback(message_id, feedback)
        except (ApiError, StorageError) as exc:
            logger.warning("Feedback for message %s not recorded: %s", message_id, exc)
            message.feedback = previous
            self._notify()
            return False
        return True

    # ------------------------------------------------------------------
    # Realtime
    # ------------------------------------------------------------------

    async def _resubscribe(self) -> None:
        await self._unsubscribe()
        if self.session_id:
            self._subscription = self.store.subscribe_messages(
                self.session_id, self.handle_pushed_message
            )

    async def _unsubscribe(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()

    def handle_pushed_message(self, message: ChatMessage) -> None:
        """Merge a message pushed by the realtime subscription."""
        if message.session_id != self.session_id:
            return
        if self.get_message(message.id) is not None:
            return

        echoed = self._match_unconfirmed(message)
        if echoed is not None:
            logger.debug("Realtime echo replaces optimistic message %s", echoed.id)
            self._unconfirmed.pop(echoed.id, None)
            self._remove(echoed.id)
        self._append(message)
        self._notify()

    def _match_unconfirmed(self, message: ChatMessage) -> Optional[ChatMessage]:
        for candidate in self._unconfirmed.values():
            if (
                candidate.session_id == message.session_id
                and candidate.sender == message.sender
                and candidate.content == message.content
                and abs(candidate.created_at - message.created_at) <= ECHO_MATCH_WINDOW
            ):
                return candidate
        return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _append(self, message: ChatMessage) -> None:
        if self.get_message(message.id) is None:
            self._messages.append(message)

    def _remove(self, message_id: str) -> None:
        self._messages = [m for m in self._messages if m.id != message_id]

    def _confirm(self, local_id: str, stored: ChatMessage) -> None:
        """Swap an optimistic message for its stored row."""
        self._unconfirmed.pop(local_id, None)
        if self.get_message(local_id) is not None:
            self._remove(local_id)
            self._append(stored)
            self._notify()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        if self._closed:
            logger.debug("Client closed, skipping background work: %s", coro.__qualname__)
            coro.close()
            return
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _load_profile(self) -> None:
        if self._profile_loaded or not self.user_id:
            return
        self._profile_loaded = True
        try:
            self.profile = await self.store.get_user_profile(self.user_id)
        except StorageError as exc:
            logger.warning("Profile load failed for user %s: %s", self.user_id, exc)

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self)
