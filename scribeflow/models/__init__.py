"""Data models."""

from scribeflow.models.audio import AudioChunk, PCMAudio, Span, Timeline
from scribeflow.models.task import PostProcessingStep, TaskPhase, TaskStatus, TranscriptionTask
from scribeflow.models.transcription import (
    ChunkResult,
    FailedChunk,
    MergeResult,
    TranscriptionOptions,
    TranscriptionResult,
    TranscriptSegment,
    VADMode,
)

__all__ = [
    "AudioChunk",
    "ChunkResult",
    "FailedChunk",
    "MergeResult",
    "PCMAudio",
    "PostProcessingStep",
    "Span",
    "TaskPhase",
    "TaskStatus",
    "Timeline",
    "TranscriptSegment",
    "TranscriptionOptions",
    "TranscriptionResult",
    "TranscriptionTask",
    "VADMode",
]
