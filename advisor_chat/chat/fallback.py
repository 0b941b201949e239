"""Canned assistant replies used when the real reply cannot be obtained."""

from __future__ import annotations

from typing import Callable

NO_RESPONSE_MESSAGE = "AI 응답이 없습니다."

SERVICE_UNAVAILABLE_MESSAGE = (
    "죄송합니다. 현재 AI 서비스에 연결할 수 없습니다. "
    "네트워크를 확인하고 잠시 후 다시 시도해주세요."
)

# (keywords, reply) pairs checked in order; first match wins.
KEYWORD_REPLIES: list[tuple[tuple[str, ...], str]] = [
    (
        ("안녕", "hello"),
        "안녕하세요! 지금은 AI 상담 서비스에 연결할 수 없어요. "
        "네트워크를 확인한 뒤 다시 말을 걸어주세요.",
    ),
    (
        ("전공", "학과", "major"),
        "전공 탐색은 관심 과목과 진로 희망을 함께 살펴보는 것이 좋아요. "
        "서비스가 복구되면 맞춤 추천을 다시 요청해주세요.",
    ),
    (
        ("입시", "수시", "정시", "대학"),
        "입시 전략은 내신 등급과 생활기록부를 바탕으로 세우는 것이 좋아요. "
        "연결이 복구되면 자세히 상담해 드릴게요.",
    ),
    (
        ("생기부", "생활기록부", "세특"),
        "생활기록부는 설정 화면에서 업로드할 수 있어요. "
        "업로드 후 다시 질문해주세요.",
    ),
]

FallbackReply = Callable[[str], str]


def static_fallback(user_text: str) -> str:
    return SERVICE_UNAVAILABLE_MESSAGE


def keyword_fallback(user_text: str) -> str:
    """Rule-based reply keyed on simple keyword matches in the user's text."""
    lowered = user_text.lower()
    for keywords, reply in KEYWORD_REPLIES:
        if any(keyword in lowered for keyword in keywords):
            return reply
    return SERVICE_UNAVAILABLE_MESSAGE


def get_fallback(mode: str) -> FallbackReply:
    if mode == "keyword":
        return keyword_fallback
    return static_fallback
