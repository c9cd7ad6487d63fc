"""Transcription pipeline.

Imports are lazy so `scribeflow.pipeline.progress` and friends can be used
without pulling in the engine's provider stack.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from scribeflow.pipeline.dispatcher import ChunkDispatcher
    from scribeflow.pipeline.engine import TranscriptionEngine
    from scribeflow.pipeline.progress import ProgressTracker

__all__ = ["ChunkDispatcher", "ProgressTracker", "TranscriptionEngine"]


def __getattr__(name: str) -> Any:
    if name == "TranscriptionEngine":
        from scribeflow.pipeline.engine import TranscriptionEngine

        return TranscriptionEngine
    if name == "ChunkDispatcher":
        from scribeflow.pipeline.dispatcher import ChunkDispatcher

        return ChunkDispatcher
    if name == "ProgressTracker":
        from scribeflow.pipeline.progress import ProgressTracker

        return ProgressTracker
    raise AttributeError(name)
