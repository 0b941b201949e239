"""Shared test fixtures for the advisor chat client."""

import asyncio
import json
from collections.abc import AsyncGenerator, Callable
from typing import Any, Optional

import httpx
import pytest
import pytest_asyncio

from advisor_chat.api.client import AdvisorApiClient
from advisor_chat.chat.session import ChatSessionClient
from advisor_chat.chat.transport import ChatTransport
from advisor_chat.models.sessions import Session
from advisor_chat.storage.memory import InMemoryChatStore

CHAT_URL = "ws://test/chat"


class FakeConnection:
    """Stands in for a client websocket connection.

    Yields the scripted frames, then either ends (remote close) or raises
    ``error`` (abnormal close). With ``gate`` set, frames are held back until
    the gate opens or the connection is closed.
    """

    def __init__(
        self,
        frames: list[Any],
        error: Optional[BaseException] = None,
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.frames = list(frames)
        self.error = error
        self.gate = gate
        self.sent: list[str] = []
        self.closed = False
        self._closed_event = asyncio.Event()

    @property
    def requests(self) -> list[dict[str, Any]]:
        return [json.loads(data) for data in self.sent]

    async def send(self, data: str) -> None:
        self.sent.append(data)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        if self.gate is not None:
            waiters = [
                asyncio.ensure_future(self.gate.wait()),
                asyncio.ensure_future(self._closed_event.wait()),
            ]
            try:
                await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for waiter in waiters:
                    waiter.cancel()
        for frame in self.frames:
            if self.closed:
                return
            yield frame
        if self.error is not None and not self.closed:
            raise self.error

    async def close(self) -> None:
        self.closed = True
        self._closed_event.set()


class FakeConnector:
    """Connect factory handing out scripted FakeConnections in order."""

    def __init__(self, events: Optional[list[str]] = None) -> None:
        self.events = events if events is not None else []
        self.urls: list[str] = []
        self.connections: list[FakeConnection] = []
        self._scripts: list[dict[str, Any]] = []

    def script(
        self,
        frames: tuple = (),
        error: Optional[BaseException] = None,
        connect_error: Optional[BaseException] = None,
        gate: Optional[asyncio.Event] = None,
        connect_gate: Optional[asyncio.Event] = None,
    ) -> None:
        self._scripts.append(
            {
                "frames": list(frames),
                "error": error,
                "connect_error": connect_error,
                "gate": gate,
                "connect_gate": connect_gate,
            }
        )

    @property
    def calls(self) -> int:
        return len(self.urls)

    async def __call__(self, url: str, **kwargs: Any) -> FakeConnection:
        self.urls.append(url)
        self.events.append("connect")
        script = self._scripts.pop(0) if self._scripts else {"frames": []}
        if script.get("connect_gate") is not None:
            # handshake in progress until the gate opens
            await script["connect_gate"].wait()
        if script.get("connect_error") is not None:
            raise script["connect_error"]
        connection = FakeConnection(
            script["frames"], error=script.get("error"), gate=script.get("gate")
        )
        self.connections.append(connection)
        return connection


class RecordingStore(InMemoryChatStore):
    """In-memory store that records the order of session/message writes."""

    def __init__(self, events: list[str]) -> None:
        super().__init__()
        self.events = events
        self.create_session_calls = 0

    async def create_session(self, user_id: str) -> Session:
        self.create_session_calls += 1
        self.events.append("create_session")
        return await super().create_session(user_id)


@pytest.fixture
def events() -> list[str]:
    return []


@pytest.fixture
def store(events: list[str]) -> RecordingStore:
    return RecordingStore(events)


@pytest.fixture
def connector(events: list[str]) -> FakeConnector:
    return FakeConnector(events)


@pytest.fixture
def transport(connector: FakeConnector) -> ChatTransport:
    return ChatTransport(CHAT_URL, connect=connector)


@pytest.fixture
def api_requests() -> list[httpx.Request]:
    return []


@pytest.fixture
def api_handler() -> Callable[[httpx.Request], httpx.Response]:
    """Default backend: summarize and feedback both succeed."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/summarize":
            return httpx.Response(200, json={"summary": "진로 상담"})
        if request.url.path == "/feedback":
            return httpx.Response(200, json={"ok": True})
        return httpx.Response(404)

    return handler


@pytest_asyncio.fixture
async def api(
    api_handler: Callable[[httpx.Request], httpx.Response],
    api_requests: list[httpx.Request],
) -> AsyncGenerator[AdvisorApiClient, None]:
    """API client backed by an httpx MockTransport."""

    def recording_handler(request: httpx.Request) -> httpx.Response:
        api_requests.append(request)
        return api_handler(request)

    client = AdvisorApiClient(
        "http://test", transport=httpx.MockTransport(recording_handler)
    )
    await client.initialize()
    yield client
    await client.close()


@pytest.fixture
def make_client(
    store: RecordingStore, transport: ChatTransport, api: AdvisorApiClient
) -> Callable[..., ChatSessionClient]:
    def factory(**kwargs: Any) -> ChatSessionClient:
        kwargs.setdefault("user_id", "user-1")
        return ChatSessionClient(store=store, transport=transport, api=api, **kwargs)

    return factory
