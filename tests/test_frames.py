"""Tests for inbound frame classification and the outbound request shape."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from advisor_chat.models.frames import (
    AnswerFrame,
    ChatRequest,
    DoneFrame,
    LegacyFragment,
    LegacySentinel,
    StatusFrame,
    parse_frame,
)
from advisor_chat.models.messages import ChatMessage, MessageRole


def test_answer_frame_carries_correlation_ids() -> None:
    frame = parse_frame(
        json.dumps({"type": "answer", "message": "반갑습니다", "pending_id": 7, "cache_id": "c-1"})
    )
    assert frame == AnswerFrame(message="반갑습니다", pending_id="7", cache_id="c-1")


def test_done_frame() -> None:
    assert isinstance(parse_frame('{"type": "done"}'), DoneFrame)


@pytest.mark.parametrize("kind", ["thinking", "searching", "generating"])
def test_status_kinds(kind: str) -> None:
    frame = parse_frame(json.dumps({"type": kind}))
    assert isinstance(frame, StatusFrame)
    assert frame.status == kind
    assert frame.label


def test_status_frame_prefers_its_own_message() -> None:
    frame = parse_frame('{"type": "searching", "message": "학과 정보 검색 중"}')
    assert frame.label == "학과 정보 검색 중"


@pytest.mark.parametrize(
    "raw",
    ["Hel", "42", '"quoted"', "[1, 2]", '{"message": "no type"}', '{"type": 3}', "{broken"],
)
def test_anything_but_a_typed_object_is_legacy_text(raw: str) -> None:
    assert parse_frame(raw) == LegacyFragment(text=raw)


def test_stream_end_sentinel() -> None:
    assert isinstance(parse_frame("[STREAM_END]"), LegacySentinel)


def test_binary_frames_are_decoded() -> None:
    assert parse_frame("안녕".encode("utf-8")) == LegacyFragment(text="안녕")


def test_request_window_keeps_trailing_history_plus_new_message() -> None:
    start = datetime(2026, 3, 1, tzinfo=timezone.utc)
    history = [
        ChatMessage(
            session_id="s-1",
            sender=MessageRole.USER,
            content=f"m{i}",
            created_at=start + timedelta(seconds=i),
        )
        for i in range(15)
    ]
    new = ChatMessage(session_id="s-1", sender=MessageRole.USER, content="new")

    request = ChatRequest.build("s-1", history, new, user_id="u-1", window=10)
    payload = json.loads(request.to_json())

    assert payload["sessionId"] == "s-1"
    assert payload["userId"] == "u-1"
    assert payload["attachments"] == []
    assert payload["profile"] is None
    assert [m["content"] for m in payload["messages"]] == [f"m{i}" for i in range(5, 15)] + ["new"]
    assert set(payload["messages"][0]) == {"id", "content", "sender", "timestamp"}
    assert payload["messages"][0]["timestamp"] == int((start + timedelta(seconds=5)).timestamp() * 1000)
