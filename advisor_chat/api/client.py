"""HTTP client for the advisory backend's plain request endpoints.

Covers session summarization, answer feedback, school-record PDF upload and
background task polling. Upload and polling are discrete, idempotent
requests and are retried with capped exponential backoff; the chat stream
itself lives in :mod:`advisor_chat.chat.transport` and is never retried.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from advisor_chat.errors import ApiError, TaskFailedError, TaskTimeoutError
from advisor_chat.models.messages import ChatMessage, FeedbackType
from advisor_chat.models.tasks import TaskState, TaskStatus, UploadResponse
from advisor_chat.utils.backoff import backoff_delay

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/api/academic/upload-pdf"

Sleep = Callable[[float], Awaitable[None]]
ProgressCallback = Callable[[TaskStatus], None]


class AdvisorApiClient:
    """Async client for ``/summarize``, ``/feedback``, upload and task status.

    Lifecycle:
        client = AdvisorApiClient(base_url)
        await client.initialize()
        ...
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        backoff_base: float = 1.0,
        upload_backoff_cap: float = 5.0,
        poll_backoff_cap: float = 10.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._backoff_base = backoff_base
        self._upload_backoff_cap = upload_backoff_cap
        self._poll_backoff_cap = poll_backoff_cap
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    async def initialize(self) -> None:
        """Create the HTTP client."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        logger.info("AdvisorApiClient initialized (base_url=%s)", self._base_url)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("AdvisorApiClient closed")

    async def __aenter__(self) -> "AdvisorApiClient":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self._client:
            raise RuntimeError(
                "AdvisorApiClient not initialized. Call initialize() first."
            )
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise ApiError(f"{method} {path} failed: {exc}") from exc
        if response.is_error:
            raise ApiError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        """Decode a JSON object body, or raise :class:`ApiError`."""
        try:
            body = response.json()
        except ValueError as exc:
            raise ApiError(
                f"{response.request.method} {response.request.url.path} returned a non-JSON body",
                status_code=response.status_code,
            ) from exc
        if not isinstance(body, dict):
            raise ApiError(
                f"{response.request.method} {response.request.url.path} returned "
                f"{type(body).__name__}, expected an object",
                status_code=response.status_code,
            )
        return body

    # ------------------------------------------------------------------
    # Chat side effects
    # ------------------------------------------------------------------

    async def summarize(self, session_id: str, messages: list[ChatMessage]) -> str:
        """Ask the backend for a one-line summary of a conversation."""
        response = await self._request(
            "POST",
            "/summarize",
            json={
                "messages": [m.to_wire() for m in messages],
                "sessionId": session_id,
            },
        )
        summary = self._json(response).get("summary")
        return summary if isinstance(summary, str) else ""

    async def send_feedback(
        self,
        user_id: Optional[str],
        feedback: FeedbackType,
        pending_id: Optional[str] = None,
        cache_id: Optional[str] = None,
    ) -> None:
        """Record a like/dislike for the answer identified by the correlation ids."""
        payload: dict[str, Any] = {"userId": user_id, "type": feedback.value}
        if pending_id is not None:
            payload["pending_id"] = pending_id
        if cache_id is not None:
            payload["cache_id"] = cache_id
        await self._request("POST", "/feedback", json=payload)

    # ------------------------------------------------------------------
    # School record upload
    # ------------------------------------------------------------------

    async def upload_pdf(
        self, file_path: Path, user_email: str, access_token: str
    ) -> UploadResponse:
        """Upload a school-record PDF and start server-side processing."""
        file_path = Path(file_path)
        with file_path.open("rb") as fh:
            response = await self._request(
                "POST",
                UPLOAD_PATH,
                headers={"Authorization": f"Bearer {access_token}"},
                data={"user_email": user_email},
                files={"file": (file_path.name, fh, "application/pdf")},
            )
        try:
            return UploadResponse.model_validate(self._json(response))
        except ValidationError as exc:
            raise ApiError(f"Unexpected upload response: {exc}") from exc

    async def check_task_status(self, task_id: str, access_token: str) -> TaskStatus:
        response = await self._request(
            "GET",
            f"/task-status/{task_id}",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        try:
            return TaskStatus.model_validate(self._json(response))
        except ValidationError as exc:
            raise ApiError(f"Unexpected task status for {task_id}: {exc}") from exc

    async def upload_with_retry(
        self,
        file_path: Path,
        user_email: str,
        access_token: str,
        max_retries: int = 3,
    ) -> UploadResponse:
        """Upload with up to ``max_retries`` attempts (delays 1s, 2s, 4s ... capped)."""
        last_error: ApiError | None = None
        for attempt in range(1, max_retries + 1):
            try:
                return await self.upload_pdf(file_path, user_email, access_token)
            except ApiError as exc:
                last_error = exc
                logger.warning(
                    "Upload attempt %d/%d failed: %s", attempt, max_retries, exc
                )
                if attempt < max_retries:
                    await self._sleep(
                        backoff_delay(
                            attempt - 1, self._backoff_base, self._upload_backoff_cap
                        )
                    )
        raise last_error or ApiError("Upload failed")

    async def poll_task_status(
        self,
        task_id: str,
        access_token: str,
        max_attempts: int = 40,
        on_progress: ProgressCallback | None = None,
    ) -> TaskStatus:
        """Poll until the task completes, fails, or ``max_attempts`` is reached.

        Raises:
            TaskFailedError: the task reported ``failed``.
            TaskTimeoutError: the attempt ceiling was reached first.
            ApiError: the last allowed status request itself failed.
        """
        attempt = 0
        while attempt < max_attempts:
            try:
                status = await self.check_task_status(task_id, access_token)
            except ApiError as exc:
                logger.warning("Task status poll %d failed: %s", attempt + 1, exc)
                if attempt >= max_attempts - 1:
                    raise
            else:
                if on_progress is not None:
                    on_progress(status)
                if status.status == TaskState.COMPLETED:
                    return status
                if status.status == TaskState.FAILED:
                    raise TaskFailedError(
                        status.error or f"Task {task_id} failed"
                    )

            await self._sleep(
                backoff_delay(attempt, self._backoff_base, self._poll_backoff_cap)
            )
            attempt += 1

        raise TaskTimeoutError(
            f"Task {task_id} did not finish after {max_attempts} polls"
        )
