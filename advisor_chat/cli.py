"""Interactive terminal front-end for the advisor chat client.

Run with::

    advisor-chat --user <user-id> [--session <session-id>]

Commands inside the prompt:
    /new                      start a new conversation
    /sessions                 list your conversations
    /open <session-id>        switch to an existing conversation
    /like, /dislike           react to the last assistant reply
    /upload <pdf> <email> <access-token>
                              upload a school record and wait for processing
    /quit                     exit
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from advisor_chat.chat.session import ChatSessionClient
from advisor_chat.config import settings
from advisor_chat.dependencies import build_chat_client, get_api_client, get_chat_store
from advisor_chat.errors import AdvisorChatError, ApiError
from advisor_chat.models.messages import FeedbackType, MessageRole
from advisor_chat.models.sessions import SessionSummary
from advisor_chat.models.tasks import TaskStatus

logger = logging.getLogger(__name__)

HELP_TEXT = __doc__.split("Commands inside the prompt:", 1)[1]


class StatusPrinter:
    """Prints the transient status line whenever it changes."""

    def __init__(self) -> None:
        self._last: Optional[str] = None

    def __call__(self, client: ChatSessionClient) -> None:
        status = client.status
        if status and status != self._last:
            print(f"  … {status}")
        self._last = status


def _print_progress(status: TaskStatus) -> None:
    progress = f"{status.progress:.0f}%" if status.progress is not None else "-"
    print(f"  [{status.status.value}] {progress} {status.current_step or ''}")


async def _handle_command(client: ChatSessionClient, line: str) -> bool:
    """Run a slash command. Returns False when the loop should stop."""
    command, *args = line.split()

    if command == "/quit":
        return False
    if command == "/new":
        await client.start_new_session()
        print("새 대화를 시작합니다.")
    elif command == "/sessions":
        sessions = await client.store.list_sessions(client.user_id or "")
        for session in sessions:
            summary = SessionSummary.from_session(session)
            marker = "*" if session.id == client.session_id else " "
            print(f"{marker} {summary.id}  {summary.title}")
    elif command == "/open" and args:
        await client.select_session(args[0])
        for message in client.messages:
            who = "나" if message.sender == MessageRole.USER else "AI"
            print(f"{who}: {message.content}")
    elif command in ("/like", "/dislike"):
        replies = [m for m in client.messages if m.sender == MessageRole.ASSISTANT]
        if not replies:
            print("반응할 답변이 없습니다.")
        else:
            feedback = FeedbackType.LIKE if command == "/like" else FeedbackType.DISLIKE
            await client.send_feedback(replies[-1].id, feedback)
    elif command == "/upload" and len(args) == 3:
        api = get_api_client()
        try:
            upload = await api.upload_with_retry(
                Path(args[0]), args[1], args[2], max_retries=settings.upload_max_retries
            )
            if upload.task_id:
                await api.poll_task_status(
                    upload.task_id,
                    args[2],
                    max_attempts=settings.poll_max_attempts,
                    on_progress=_print_progress,
                )
            print("생활기록부 처리가 완료되었습니다.")
        except (ApiError, OSError) as exc:
            print(f"업로드 실패: {exc}")
    else:
        print(HELP_TEXT)
    return True


async def main(user_id: Optional[str], session_id: Optional[str]) -> None:
    """Run the interactive chat loop."""
    store = get_chat_store()
    api = get_api_client()
    await store.initialize()
    await api.initialize()

    client = build_chat_client(user_id, session_id, on_update=StatusPrinter())
    try:
        await client.open()
        print("메시지를 입력하세요. (/help 로 명령어 보기)")
        while True:
            line = (await asyncio.to_thread(input, "> ")).strip()
            if not line:
                continue
            try:
                if line.startswith("/"):
                    if not await _handle_command(client, line):
                        break
                    continue
                reply = await client.send(line)
                if reply is not None:
                    print(f"AI: {reply.content}")
            except AdvisorChatError as exc:
                print(f"오류: {exc}")
    except (EOFError, KeyboardInterrupt):
        logger.info("Input closed, shutting down")
    finally:
        await client.close()
        await api.close()
        await store.close()


def run() -> None:
    parser = argparse.ArgumentParser(description="Education advisory chat client")
    parser.add_argument("--user", default=settings.user_id, help="signed-in user id")
    parser.add_argument("--session", default=None, help="existing session id to resume")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        asyncio.run(main(args.user, args.session))
    except KeyboardInterrupt:
        pass
    except AdvisorChatError as exc:
        logger.error("Fatal error: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    run()
