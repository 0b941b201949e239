"""Providers for the collaborators a chat session client is built from."""

from typing import Optional

from advisor_chat.api.client import AdvisorApiClient
from advisor_chat.chat.fallback import get_fallback
from advisor_chat.chat.session import ChatSessionClient, UpdateCallback
from advisor_chat.chat.transport import ChatTransport
from advisor_chat.config import Settings, settings as default_settings
from advisor_chat.storage.base import ChatStore
from advisor_chat.storage.memory import InMemoryChatStore
from advisor_chat.storage.mongo import MongoChatStore

# Process-wide singletons (one event loop per process)
_chat_store: ChatStore | None = None
_api_client: AdvisorApiClient | None = None


def get_chat_store(settings: Settings = default_settings) -> ChatStore:
    """Return the singleton store for the configured backend (not yet initialized)."""
    global _chat_store
    if _chat_store is None:
        if settings.storage_backend == "memory":
            _chat_store = InMemoryChatStore()
        else:
            _chat_store = MongoChatStore(settings.mongodb_uri, settings.mongodb_database)
    return _chat_store


def get_api_client(settings: Settings = default_settings) -> AdvisorApiClient:
    """Return the singleton HTTP client (not yet initialized)."""
    global _api_client
    if _api_client is None:
        _api_client = AdvisorApiClient(
            settings.api_url,
            timeout=settings.http_timeout,
            backoff_base=settings.backoff_base,
            upload_backoff_cap=settings.upload_backoff_cap,
            poll_backoff_cap=settings.poll_backoff_cap,
        )
    return _api_client


def build_chat_client(
    user_id: Optional[str],
    session_id: Optional[str] = None,
    settings: Settings = default_settings,
    on_update: UpdateCallback | None = None,
) -> ChatSessionClient:
    """Wire a ChatSessionClient from settings and the shared store / API client."""
    transport = ChatTransport(
        settings.chat_url,
        connect_timeout=settings.connect_timeout,
        timeout=settings.stream_timeout,
    )
    return ChatSessionClient(
        store=get_chat_store(settings),
        transport=transport,
        api=get_api_client(settings),
        user_id=user_id,
        session_id=session_id,
        history_window=settings.history_window,
        fallback=get_fallback(settings.fallback_mode),
        on_update=on_update,
    )
