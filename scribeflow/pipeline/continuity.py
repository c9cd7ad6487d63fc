"""Continuation context (tail of the previous chunk's transcript)."""

from __future__ import annotations

import re

_SENTENCE_RE = re.compile(r"[^。.!?！？\n]*[。.!?！？\n]+|[^。.!?！？\n]+$")


def split_sentences(text: str) -> list[str]:
    """Split keeping terminators; ''.join(result) == text."""
    return [s for s in _SENTENCE_RE.findall(text or "") if s]


def build_continuation_context(previous_text: str, max_chars: int) -> str:
    """Return whole trailing sentences fitting `max_chars`, else the raw tail."""
    if max_chars <= 0:
        return ""
    text = (previous_text or "").strip()
    if len(text) <= max_chars:
        return text

    tail = ""
    for sentence in reversed(split_sentences(text)):
        candidate = sentence + tail
        if len(candidate.strip()) > max_chars:
            break
        tail = candidate
    tail = tail.strip()
    if not tail:
        return text[-max_chars:].strip()
    return tail
