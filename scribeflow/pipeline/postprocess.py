"""Optional post-processing pass over the merged transcript."""

from __future__ import annotations

import logging
from typing import Protocol

from scribeflow.pipeline.continuity import split_sentences
from scribeflow.providers.llm.base import LLMProvider, Message
from scribeflow.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You proofread speech transcripts. Fix recognition errors, punctuation and "
    "obvious mis-hearings. Keep the wording, language and paragraph breaks of the "
    "original. Never summarize, translate or add content. Return only the corrected text."
)


class PostProcessor(Protocol):
    """Text in, corrected text out."""

    async def process(
        self, text: str, *, language: str, token: CancellationToken | None = None
    ) -> str: ...

    async def close(self) -> None: ...


def split_for_llm(text: str, max_chars: int) -> list[str]:
    """Split on paragraph, then sentence boundaries into pieces of <= max_chars."""
    units: list[tuple[str, str]] = []
    for paragraph in text.split("\n\n"):
        parts = [paragraph] if len(paragraph) <= max_chars else split_sentences(paragraph)
        for j, part in enumerate(parts):
            units.append(("\n\n" if j == 0 else "", part))

    pieces: list[str] = []
    current = ""
    for sep, unit in units:
        if current and len(current) + len(sep) + len(unit) > max_chars:
            pieces.append(current)
            current = unit
        else:
            current = f"{current}{sep}{unit}" if current else unit
    if current:
        pieces.append(current)
    return [p.strip() for p in pieces if p.strip()]


class LLMPostProcessor:
    def __init__(
        self,
        llm: LLMProvider,
        *,
        temperature: float = 0.0,
        max_segment_chars: int = 4000,
    ) -> None:
        self.llm = llm
        self.temperature = temperature
        self.max_segment_chars = max_segment_chars

    async def process(
        self, text: str, *, language: str, token: CancellationToken | None = None
    ) -> str:
        if not text.strip():
            return text
        segments = split_for_llm(text, self.max_segment_chars)
        corrected: list[str] = []
        for i, segment in enumerate(segments):
            hint = "" if language in ("", "auto") else f"Language: {language}\n\n"
            messages = [
                Message(role="system", content=_SYSTEM_PROMPT),
                Message(role="user", content=f"{hint}{segment}"),
            ]
            out = await self.llm.complete(messages, temperature=self.temperature, token=token)
            if not out.strip():
                logger.warning("post-processing returned empty text (segment=%d); keeping original", i)
                out = segment
            corrected.append(out.strip())
        return "\n\n".join(corrected)

    async def close(self) -> None:
        await self.llm.close()
