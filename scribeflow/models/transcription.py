"""Transcription options and results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from scribeflow.error_codes import ErrorCode
from scribeflow.models.task import TaskStatus
from scribeflow.utils.cancellation import CancellationToken


class VADMode(str, Enum):
    LOCAL = "local"
    SERVER = "server"
    OFF = "off"


@dataclass(frozen=True)
class TranscriptionOptions:
    """Per-task configuration. A new task gets a new instance."""

    language: str = "auto"
    model: str | None = None
    vad_mode: VADMode | None = None
    start_s: float | None = None
    end_s: float | None = None
    filename: str | None = None
    post_processing: bool | None = None
    token: CancellationToken = field(default_factory=CancellationToken, compare=False)


@dataclass(frozen=True)
class TranscriptSegment:
    """Timestamped segment returned by providers that support it."""

    start: float
    end: float
    text: str


@dataclass
class ChunkResult:
    id: int
    text: str
    start_time: float
    end_time: float
    success: bool
    error: str | None = None
    error_code: ErrorCode | str | None = None
    attempts: int = 1
    segments: list[TranscriptSegment] = field(default_factory=list)


@dataclass(frozen=True)
class FailedChunk:
    id: int
    start_time: float | None
    end_time: float | None
    error: str

    def describe_range(self) -> str:
        if self.start_time is None or self.end_time is None:
            return f"chunk {self.id}"
        return f"chunk {self.id} ({_fmt_ts(self.start_time)}-{_fmt_ts(self.end_time)})"


@dataclass(frozen=True)
class MergeResult:
    text: str
    is_partial: bool
    failed_chunks: list[FailedChunk]
    succeeded: int
    total: int


@dataclass
class TranscriptionResult:
    """Structured outcome of one task; returned for every terminal state."""

    task_id: str
    status: TaskStatus
    text: str = ""
    raw_text: str = ""
    is_partial: bool = False
    failed_chunks: list[FailedChunk] = field(default_factory=list)
    chunk_results: list[ChunkResult] = field(default_factory=list)
    total_chunks: int = 0
    model: str | None = None
    error_code: ErrorCode | str | None = None
    error_message: str | None = None

    @property
    def failed_chunk_ids(self) -> list[int]:
        return [c.id for c in self.failed_chunks]

    def as_merge(self) -> MergeResult:
        return MergeResult(
            text=self.text,
            is_partial=self.is_partial,
            failed_chunks=list(self.failed_chunks),
            succeeded=self.total_chunks - len(self.failed_chunks),
            total=self.total_chunks,
        )

    def annotated_text(self) -> str:
        """Text with a partial-result header listing the missing ranges."""
        from scribeflow.pipeline.merger import format_partial_text

        return format_partial_text(self.as_merge())

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "status": self.status.value,
            "text": self.text,
            "is_partial": self.is_partial,
            "failed_chunks": [
                {
                    "id": c.id,
                    "start_time": c.start_time,
                    "end_time": c.end_time,
                    "error": c.error,
                }
                for c in self.failed_chunks
            ],
            "total_chunks": self.total_chunks,
            "model": self.model,
            "error_code": str(getattr(self.error_code, "value", self.error_code))
            if self.error_code is not None
            else None,
            "error_message": self.error_message,
        }


def _fmt_ts(seconds: float) -> str:
    total = int(round(max(0.0, seconds)))
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h:d}:{m:02d}:{s:02d}"
    return f"{m:02d}:{s:02d}"
