"""Exception types raised by the advisor chat client."""

from __future__ import annotations


class AdvisorChatError(Exception):
    """Base class for all client errors."""


class ChatSetupError(AdvisorChatError):
    """A send was aborted before any stream was opened (e.g. session creation failed)."""


class TransportError(AdvisorChatError):
    """The chat socket could not be opened, failed mid-stream, or timed out."""


class StorageError(AdvisorChatError):
    """The durable storage backend rejected or could not complete an operation."""


class ApiError(AdvisorChatError):
    """A plain HTTP call to the advisory backend failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TaskFailedError(ApiError):
    """A background task reported ``failed``."""


class TaskTimeoutError(ApiError):
    """A background task did not finish within the polling attempt ceiling."""
