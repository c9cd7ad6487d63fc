"""ScribeFlow: chunked transcription of long recordings."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from scribeflow.config import Settings
    from scribeflow.models.transcription import TranscriptionOptions, TranscriptionResult
    from scribeflow.pipeline.engine import TranscriptionEngine

__all__ = ["Settings", "TranscriptionEngine", "TranscriptionOptions", "TranscriptionResult"]


def __getattr__(name: str) -> Any:
    if name == "Settings":
        from scribeflow.config import Settings

        return Settings
    if name == "TranscriptionEngine":
        from scribeflow.pipeline.engine import TranscriptionEngine

        return TranscriptionEngine
    if name in ("TranscriptionOptions", "TranscriptionResult"):
        from scribeflow.models import transcription

        return getattr(transcription, name)
    raise AttributeError(name)
