"""Streaming chat session client."""

from .interpreter import FrameInterpreter, InterpreterState, StreamingExchange
from .session import ChatSessionClient
from .transport import ChatTransport

__all__ = [
    "ChatSessionClient",
    "ChatTransport",
    "FrameInterpreter",
    "InterpreterState",
    "StreamingExchange",
]
