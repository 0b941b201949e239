"""Transport connector: one chat socket per outbound message.

Lifecycle of :meth:`ChatTransport.exchange`::

    connect -> send request -> receive frames until terminal -> close

There is no automatic retry. Reopening a generation stream half-way could
produce a second assistant reply for the same question, so every failure is
reported once as :class:`TransportError` and the caller decides what to show.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosedError, WebSocketException

from advisor_chat.chat.interpreter import FrameInterpreter
from advisor_chat.errors import TransportError
from advisor_chat.models.frames import ChatRequest

logger = logging.getLogger(__name__)

ConnectFactory = Callable[..., Awaitable[Any]]
FrameCallback = Callable[[FrameInterpreter], None]


class ChatTransport:
    """Owns at most one open chat socket at a time.

    :meth:`close` shuts the transport down for good: a handshake still in
    progress is cancelled, an open socket is closed, and later exchanges
    fail with :class:`TransportError`.
    """

    def __init__(
        self,
        url: str,
        connect: ConnectFactory | None = None,
        connect_timeout: float = 10.0,
        timeout: Optional[float] = None,
    ) -> None:
        self.url = url
        self._connect = connect or websockets.connect
        self._connect_timeout = connect_timeout
        self._timeout = timeout
        self._connection: Any = None
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    @property
    def closed(self) -> bool:
        return self._closed

    async def exchange(
        self,
        request: ChatRequest,
        interpreter: FrameInterpreter,
        on_frame: FrameCallback | None = None,
    ) -> str:
        """Run one request/response cycle and return the final content.

        Raises:
            TransportError: connect failure, abnormal close, timeout, or the
                transport was closed before the socket opened.
        """
        if self._closed:
            raise TransportError("Chat transport is closed")

        self._task = asyncio.ensure_future(self._run(request, interpreter, on_frame))
        try:
            if self._timeout is None:
                return await self._task
            return await asyncio.wait_for(self._task, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            await self._release()
            raise TransportError(
                f"No terminal frame within {self._timeout:.1f}s"
            ) from exc
        except asyncio.CancelledError:
            if not self._closed:
                raise
            raise TransportError(
                "Chat transport closed before the socket opened"
            ) from None
        finally:
            self._task = None

    async def _run(
        self,
        request: ChatRequest,
        interpreter: FrameInterpreter,
        on_frame: FrameCallback | None,
    ) -> str:
        try:
            connection = await self._connect(
                self.url, open_timeout=self._connect_timeout
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            raise TransportError(f"Could not connect to {self.url}: {exc}") from exc

        if self._closed:
            await connection.close()
            raise TransportError("Chat transport closed during the handshake")

        self._connection = connection
        logger.info("Chat socket connected: %s", self.url)

        try:
            await connection.send(request.to_json())
            interpreter.start()
            logger.debug(
                "Sent chat request: session_id=%s, %d messages",
                request.session_id,
                len(request.messages),
            )

            async for raw in connection:
                logger.debug("Frame received: %s", str(raw)[:80])
                should_close = interpreter.feed(raw)
                if on_frame is not None:
                    on_frame(interpreter)
                if should_close:
                    break
        except ConnectionClosedError as exc:
            raise TransportError(f"Chat socket closed abnormally: {exc}") from exc
        except (OSError, WebSocketException) as exc:
            raise TransportError(f"Chat socket error: {exc}") from exc
        finally:
            await self._release()

        return interpreter.finish()

    async def close(self) -> None:
        """Shut the transport down. Safe to call repeatedly."""
        self._closed = True
        task = self._task
        if task is not None and not task.done() and self._connection is None:
            # still connecting: abandon the handshake
            task.cancel()
        await self._release()

    async def _release(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await connection.close()
        except (OSError, WebSocketException) as exc:
            logger.debug("Ignoring error while closing chat socket: %s", exc)
        logger.info("Chat socket closed: %s", self.url)
