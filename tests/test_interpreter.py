"""Tests for the frame interpreter state machine."""

import json

from advisor_chat.chat.fallback import NO_RESPONSE_MESSAGE
from advisor_chat.chat.interpreter import FrameInterpreter, InterpreterState


def _feed_all(interpreter: FrameInterpreter, frames: list[str]) -> list[bool]:
    return [interpreter.feed(frame) for frame in frames]


def test_legacy_fragments_concatenate_until_sentinel() -> None:
    interpreter = FrameInterpreter()
    closes = _feed_all(interpreter, ["Hel", "lo", "[STREAM_END]"])

    assert closes == [False, False, True]
    assert interpreter.finalized
    assert interpreter.finish() == "Hello"


def test_structured_answer_replaces_instead_of_appending() -> None:
    interpreter = FrameInterpreter()
    frames = [
        json.dumps({"type": "answer", "message": "A"}),
        json.dumps({"type": "answer", "message": "B"}),
        json.dumps({"type": "done"}),
    ]
    assert _feed_all(interpreter, frames) == [False, False, True]
    assert interpreter.finish() == "B"


def test_status_frames_leave_the_buffer_alone() -> None:
    interpreter = FrameInterpreter()
    interpreter.start()
    assert interpreter.state == InterpreterState.AWAITING_FIRST_FRAME

    interpreter.feed('{"type": "thinking"}')
    assert interpreter.state == InterpreterState.ACCUMULATING
    assert interpreter.exchange.status
    assert interpreter.exchange.text == ""

    interpreter.feed('{"type": "searching", "message": "입시 자료 검색 중"}')
    assert interpreter.exchange.status == "입시 자료 검색 중"

    interpreter.feed(
        json.dumps({"type": "answer", "message": "정리했어요", "pending_id": "p-1", "cache_id": "c-1"})
    )
    assert interpreter.exchange.status is None
    assert interpreter.exchange.text == "정리했어요"
    assert interpreter.exchange.pending_id == "p-1"
    assert interpreter.exchange.cache_id == "c-1"


def test_frames_after_finalization_are_ignored() -> None:
    interpreter = FrameInterpreter()
    interpreter.feed('{"type": "answer", "message": "최종"}')
    interpreter.feed('{"type": "done"}')

    assert interpreter.feed('{"type": "answer", "message": "late"}') is False
    assert interpreter.feed("more") is False
    assert interpreter.finish() == "최종"


def test_done_does_not_touch_the_buffer() -> None:
    interpreter = FrameInterpreter()
    _feed_all(interpreter, ["partial ", '{"type": "done"}'])
    assert interpreter.finish() == "partial "


def test_empty_stream_finishes_with_placeholder() -> None:
    interpreter = FrameInterpreter()
    interpreter.start()
    assert interpreter.finish() == NO_RESPONSE_MESSAGE
    assert interpreter.exchange.is_open is False
