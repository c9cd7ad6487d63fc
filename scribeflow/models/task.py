"""Transcription task (progress/state entity)."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class TaskStatus(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (TaskStatus.IDLE, TaskStatus.PROCESSING)


class TaskPhase(str, Enum):
    PREPARING = "preparing"
    TRANSCRIBING = "transcribing"
    POST_PROCESSING = "post_processing"
    SAVING = "saving"
    DONE = "done"


class PostProcessingStep(str, Enum):
    STARTING = "starting"
    PROCESSING = "processing"
    DONE = "done"


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _dt_to_iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


@dataclass
class TranscriptionTask:
    id: str
    status: TaskStatus = TaskStatus.IDLE
    phase: TaskPhase = TaskPhase.PREPARING
    total_chunks: int = 0
    completed_chunks: int = 0
    post_processing: bool = False
    post_processing_step: PostProcessingStep | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    unified_percentage: int = 0
    preview: str = ""
    model: str | None = None
    language: str | None = None
    message: str | None = None
    error_message: str | None = None

    def snapshot(self) -> "TranscriptionTask":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "phase": self.phase.value,
            "total_chunks": self.total_chunks,
            "completed_chunks": self.completed_chunks,
            "post_processing": self.post_processing,
            "post_processing_step": self.post_processing_step.value
            if self.post_processing_step
            else None,
            "start_time": _dt_to_iso(self.start_time),
            "end_time": _dt_to_iso(self.end_time),
            "unified_percentage": self.unified_percentage,
            "preview": self.preview,
            "model": self.model,
            "language": self.language,
            "message": self.message,
            "error_message": self.error_message,
        }
