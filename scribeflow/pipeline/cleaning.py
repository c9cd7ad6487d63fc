"""Per-chunk transcript cleanup.

Providers occasionally echo the continuation prompt back or fall into a
loop repeating the last sentence until the end of the audio. Both are
removed before the text is merged or used as the next chunk's context.
"""

from __future__ import annotations

import logging
import re

from scribeflow.pipeline.continuity import split_sentences

logger = logging.getLogger(__name__)

_INSTRUCTION_LINES = re.compile(
    r"^\s*(\[Previous ending\]|Output format:|</?TRANSCRIPT>|\(continuation only\)|"
    r"\(spoken content only\))\s*$",
    re.IGNORECASE | re.MULTILINE,
)
_NORMALIZE_RE = re.compile(r"[\W_]+", re.UNICODE)


def _normalize(sentence: str) -> str:
    return _NORMALIZE_RE.sub("", sentence.lower())


def strip_prompt_echo(text: str, previous_context: str = "") -> str:
    cleaned = _INSTRUCTION_LINES.sub("", text or "")
    context = (previous_context or "").strip()
    if context and cleaned.lstrip().startswith(context):
        cleaned = cleaned.lstrip()[len(context) :]
    return re.sub(r"\n{3,}", "\n\n", cleaned).strip()


def compress_tail_repeats(text: str, *, min_repeats: int = 3, max_unit: int = 6) -> str:
    """Collapse a block of 1..max_unit sentences repeated >= min_repeats times at the end."""
    sentences = split_sentences(text)
    if len(sentences) < min_repeats:
        return text
    for unit in range(1, max_unit + 1):
        if unit * min_repeats > len(sentences):
            break
        pattern = [_normalize(s) for s in sentences[-unit:]]
        if not any(pattern):
            continue
        count = 1
        pos = len(sentences) - unit
        while pos - unit >= 0 and [_normalize(s) for s in sentences[pos - unit : pos]] == pattern:
            count += 1
            pos -= unit
        if count >= min_repeats:
            logger.info("tail repeat compressed (unit=%d, repeats=%d)", unit, count)
            return "".join(sentences[: pos + unit]).strip()
    return text


def clean_chunk_text(text: str, previous_context: str = "") -> str:
    return compress_tail_repeats(strip_prompt_echo(text, previous_context))
