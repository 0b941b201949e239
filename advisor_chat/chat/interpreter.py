"""Frame interpreter: folds inbound chat frames into one response.

State machine::

    IDLE -> AWAITING_FIRST_FRAME -> ACCUMULATING -> FINALIZED

``FINALIZED`` is terminal; frames fed after it are dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from advisor_chat.chat.fallback import NO_RESPONSE_MESSAGE
from advisor_chat.models.frames import (
    AnswerFrame,
    DoneFrame,
    Frame,
    LegacyFragment,
    LegacySentinel,
    StatusFrame,
    parse_frame,
)

logger = logging.getLogger(__name__)


class InterpreterState(str, Enum):
    IDLE = "idle"
    AWAITING_FIRST_FRAME = "awaiting_first_frame"
    ACCUMULATING = "accumulating"
    FINALIZED = "finalized"


@dataclass
class StreamingExchange:
    """In-flight state of one request/response cycle. Never persisted."""

    text: str = ""
    status: Optional[str] = None
    pending_id: Optional[str] = None
    cache_id: Optional[str] = None
    is_open: bool = True


class FrameInterpreter:
    """Applies frames to a :class:`StreamingExchange`."""

    def __init__(self, exchange: StreamingExchange | None = None) -> None:
        self.exchange = exchange or StreamingExchange()
        self.state = InterpreterState.IDLE

    def start(self) -> None:
        """Mark the request as sent; the next frame is the first one."""
        if self.state == InterpreterState.IDLE:
            self.state = InterpreterState.AWAITING_FIRST_FRAME

    @property
    def finalized(self) -> bool:
        return self.state == InterpreterState.FINALIZED

    def feed(self, raw: str | bytes) -> bool:
        """Apply one raw frame. Returns True when the connection should be closed."""
        if self.finalized:
            logger.debug("Dropping frame received after finalization")
            return False
        if self.state == InterpreterState.IDLE:
            self.start()
        return self.apply(parse_frame(raw))

    def apply(self, frame: Frame) -> bool:
        exchange = self.exchange
        self.state = InterpreterState.ACCUMULATING

        if isinstance(frame, StatusFrame):
            exchange.status = frame.label
            logger.debug("Status frame: %s", frame.status)
            return False

        if isinstance(frame, AnswerFrame):
            # Structured answers carry the whole reply; replace, don't append.
            exchange.text = frame.message
            if frame.pending_id is not None:
                exchange.pending_id = frame.pending_id
            if frame.cache_id is not None:
                exchange.cache_id = frame.cache_id
            exchange.status = None
            return False

        if isinstance(frame, (DoneFrame, LegacySentinel)):
            self.state = InterpreterState.FINALIZED
            return True

        if isinstance(frame, LegacyFragment):
            exchange.text += frame.text
            return False

        raise TypeError(f"Unknown frame variant: {frame!r}")

    def finish(self) -> str:
        """Close out the exchange and return the content to persist."""
        self.state = InterpreterState.FINALIZED
        self.exchange.is_open = False
        self.exchange.status = None
        return self.exchange.text or NO_RESPONSE_MESSAGE
