"""Storage backends for chat sessions and messages."""

from .base import ChatStore, Subscription
from .memory import InMemoryChatStore
from .mongo import MongoChatStore

__all__ = ["ChatStore", "Subscription", "InMemoryChatStore", "MongoChatStore"]
