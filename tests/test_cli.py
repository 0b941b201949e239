"""Tests for the terminal front-end commands."""

from pathlib import Path
from typing import Callable

import pytest

from advisor_chat import cli
from advisor_chat.api.client import AdvisorApiClient
from advisor_chat.chat.session import ChatSessionClient

ClientFactory = Callable[..., ChatSessionClient]


@pytest.mark.asyncio
async def test_upload_of_missing_file_reports_failure_and_keeps_running(
    make_client: ClientFactory,
    api: AdvisorApiClient,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(cli, "get_api_client", lambda: api)
    client = make_client()
    missing = tmp_path / "record.pdf"

    keep_running = await cli._handle_command(
        client, f"/upload {missing} student@example.com tok"
    )

    assert keep_running is True
    assert "업로드 실패" in capsys.readouterr().out
