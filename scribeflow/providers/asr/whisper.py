"""OpenAI Whisper (`whisper-1`) provider."""

from __future__ import annotations

from typing import Any

from scribeflow.models.transcription import TranscriptSegment
from scribeflow.providers.asr.base import TranscriptionRequest, TranscriptionResponse
from scribeflow.providers.asr.openai_base import OpenAITranscriptionProvider


class WhisperProvider(OpenAITranscriptionProvider):
    """Whisper returns timestamped segments (verbose_json).

    Segment timestamps are chunk-relative on the wire and mapped to source
    time through the chunk timeline here.
    """

    name = "openai_whisper"

    def build_form(self, request: TranscriptionRequest) -> dict[str, str]:
        form = {
            "model": self.model,
            "response_format": self.profile.response_format,
            "temperature": "0",
        }
        if request.language and request.language != "auto":
            form["language"] = request.language
        if request.previous_context:
            form["prompt"] = request.previous_context
        if self.profile.response_format == "verbose_json":
            form["timestamp_granularities[]"] = "segment"
        return form

    def parse_response(self, request: TranscriptionRequest, payload: Any) -> TranscriptionResponse:
        if not isinstance(payload, dict):
            return super().parse_response(request, payload)

        segments: list[TranscriptSegment] = []
        for raw in payload.get("segments") or []:
            if not isinstance(raw, dict):
                continue
            text = str(raw.get("text") or "").strip()
            if not text:
                continue
            try:
                start = float(raw.get("start", 0.0))
                end = float(raw.get("end", 0.0))
            except (TypeError, ValueError):
                continue
            segments.append(
                TranscriptSegment(
                    start=request.chunk.to_source(start),
                    end=request.chunk.to_source(end, end=True),
                    text=text,
                )
            )

        text = str(payload.get("text") or "").strip()
        if not text and segments:
            text = " ".join(s.text for s in segments)
        return TranscriptionResponse(text=text, segments=segments)
