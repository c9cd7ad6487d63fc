"""Transcription provider abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from scribeflow.error_codes import ErrorCode
from scribeflow.exceptions import ValidationError
from scribeflow.models.audio import AudioChunk
from scribeflow.models.transcription import TranscriptSegment


@dataclass(frozen=True)
class ProviderLimits:
    max_file_size_bytes: int
    max_duration_s: float | None = None
    supported_formats: tuple[str, ...] = ("wav",)
    supports_prompt: bool = True

    def validate(self, chunk: AudioChunk) -> None:
        """Raise ValidationError if the chunk cannot be sent as-is."""
        size = len(chunk.data)
        if size > self.max_file_size_bytes:
            raise ValidationError(
                f"chunk {chunk.id} is {size} bytes, provider limit is {self.max_file_size_bytes}",
                error_code=ErrorCode.FILE_TOO_LARGE,
            )
        if self.max_duration_s is not None and chunk.duration > self.max_duration_s:
            raise ValidationError(
                f"chunk {chunk.id} lasts {chunk.duration:.1f}s, provider limit is "
                f"{self.max_duration_s:.0f}s",
                error_code=ErrorCode.FILE_TOO_LARGE,
            )
        ext = chunk.filename.rsplit(".", 1)[-1].lower()
        if ext not in self.supported_formats:
            raise ValidationError(f"unsupported chunk format: {ext}")


@dataclass(frozen=True)
class TranscriptionRequest:
    chunk: AudioChunk
    language: str = "auto"
    # Tail of the previous chunk's transcript; empty for the first chunk.
    previous_context: str = ""

    @property
    def is_first(self) -> bool:
        return self.chunk.id == 0 or not self.previous_context


@dataclass
class TranscriptionResponse:
    text: str
    segments: list[TranscriptSegment] = field(default_factory=list)


class ASRProvider(ABC):
    """Abstract base class for chunk transcription providers."""

    name: str = "asr"
    model: str = ""

    @property
    @abstractmethod
    def limits(self) -> ProviderLimits:
        raise NotImplementedError

    @abstractmethod
    def build_form(self, request: TranscriptionRequest) -> dict[str, str]:
        """Return the provider-specific form fields (everything except the file)."""
        raise NotImplementedError

    @abstractmethod
    async def transcribe(self, request: TranscriptionRequest) -> TranscriptionResponse:
        """Transcribe one chunk.

        Raises:
            ValidationError: chunk violates provider limits (never retried).
            NetworkError: timeout or connection failure.
            ProviderError: non-2xx response from the endpoint.
        """
        raise NotImplementedError

    @abstractmethod
    async def test_connection(self) -> bool:
        raise NotImplementedError

    async def close(self) -> None:  # pragma: no cover
        return None
