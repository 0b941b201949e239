"""Models for the school-record upload and background task endpoints."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class TaskState(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class UploadResponse(BaseModel):
    success: bool
    task_id: Optional[str] = None
    total_records: Optional[int] = None


class TaskStatus(BaseModel):
    status: TaskState
    progress: Optional[float] = None
    current_step: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (TaskState.COMPLETED, TaskState.FAILED)
