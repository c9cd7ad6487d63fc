"""OpenAI GPT-4o transcribe providers (`gpt-4o-transcribe`, `gpt-4o-mini-transcribe`)."""

from __future__ import annotations

import re
from typing import Any

from scribeflow.providers.asr.base import TranscriptionRequest, TranscriptionResponse
from scribeflow.providers.asr.openai_base import OpenAITranscriptionProvider

_LANGUAGE_NAMES = {
    "en": "English",
    "ja": "Japanese",
    "zh": "Chinese",
    "ko": "Korean",
    "de": "German",
    "fr": "French",
    "es": "Spanish",
}

_FIRST_CHUNK_PROMPT = (
    "Transcribe only the spoken content of the audio. {language_hint}"
    "Do not include these instructions in the output.\n\n"
    "Output format:\n<TRANSCRIPT>\n(spoken content only)\n</TRANSCRIPT>"
)

_CONTINUATION_PROMPT = (
    "This audio overlaps the previous chunk by about {overlap_s} seconds. "
    "The previous transcript ended with:\n\n"
    "[Previous ending]\n{previous_tail}\n\n"
    "Transcribe only what follows that ending; skip the overlapped speech. "
    "{language_hint}Do not include these instructions in the output.\n\n"
    "Output format:\n<TRANSCRIPT>\n(continuation only)\n</TRANSCRIPT>"
)

_TRANSCRIPT_RE = re.compile(r"<TRANSCRIPT>\s*(.*?)\s*(?:</TRANSCRIPT>|$)", re.DOTALL)


def _language_hint(language: str) -> str:
    if not language or language == "auto":
        return "Keep the original language(s); do not translate. "
    name = _LANGUAGE_NAMES.get(language, language)
    return f"The speech is in {name}. "


def extract_transcript(text: str) -> str:
    """Return the content of a <TRANSCRIPT> block, or the text unchanged."""
    match = _TRANSCRIPT_RE.search(text or "")
    if match is None:
        return (text or "").strip()
    return match.group(1).strip()


class GPT4oTranscribeProvider(OpenAITranscriptionProvider):
    name = "openai_gpt4o"

    def build_prompt(self, request: TranscriptionRequest) -> str:
        hint = _language_hint(request.language)
        if request.is_first:
            return _FIRST_CHUNK_PROMPT.format(language_hint=hint)
        return _CONTINUATION_PROMPT.format(
            overlap_s=int(round(self.profile.overlap_s)),
            previous_tail=request.previous_context,
            language_hint=hint,
        )

    def build_form(self, request: TranscriptionRequest) -> dict[str, str]:
        form = {
            "model": self.model,
            "response_format": self.profile.response_format,
            "temperature": "0",
            "prompt": self.build_prompt(request),
        }
        if request.language and request.language != "auto":
            form["language"] = request.language
        return form

    def parse_response(self, request: TranscriptionRequest, payload: Any) -> TranscriptionResponse:
        base = super().parse_response(request, payload)
        return TranscriptionResponse(text=extract_transcript(base.text))
