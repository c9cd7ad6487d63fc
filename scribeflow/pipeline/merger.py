"""Result merging and partial-result policy."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from scribeflow.models.audio import AudioChunk
from scribeflow.models.transcription import ChunkResult, FailedChunk, MergeResult

logger = logging.getLogger(__name__)

NOT_PROCESSED = "not processed"


def merge(
    results: Iterable[ChunkResult],
    *,
    total_chunks: int | None = None,
    chunks: Iterable[AudioChunk] | None = None,
    separator: str = "\n\n",
) -> MergeResult:
    """Concatenate successful chunk texts strictly by id.

    Completion order never matters. A chunk that is missing from `results`
    or failed makes the merge partial and is listed in `failed_chunks`.
    Overlapped speech is not de-duplicated here.
    """
    by_id: dict[int, ChunkResult] = {}
    for result in sorted(results, key=lambda r: r.id):
        by_id.setdefault(result.id, result)

    if total_chunks is None:
        total_chunks = (max(by_id) + 1) if by_id else 0
    ranges = {c.id: (c.start_time, c.end_time) for c in (chunks or [])}

    texts: list[str] = []
    failed: list[FailedChunk] = []
    for chunk_id in range(total_chunks):
        result = by_id.get(chunk_id)
        if result is None:
            start, end = ranges.get(chunk_id, (None, None))
            failed.append(FailedChunk(id=chunk_id, start_time=start, end_time=end, error=NOT_PROCESSED))
            continue
        if not result.success:
            failed.append(
                FailedChunk(
                    id=chunk_id,
                    start_time=result.start_time,
                    end_time=result.end_time,
                    error=result.error or "failed",
                )
            )
            continue
        text = result.text.strip()
        if text:
            texts.append(text)

    merged = MergeResult(
        text=separator.join(texts),
        is_partial=bool(failed),
        failed_chunks=failed,
        succeeded=total_chunks - len(failed),
        total=total_chunks,
    )
    if merged.is_partial:
        logger.info(
            "merge partial (succeeded=%d, total=%d, failed=%s)",
            merged.succeeded,
            merged.total,
            [c.id for c in failed],
        )
    return merged


def format_partial_text(merged: MergeResult) -> str:
    """Render `merged.text`, prefixed with the partial marker and missing ranges when partial."""
    if not merged.is_partial:
        return merged.text
    lines = [f"[Partial transcription: {merged.succeeded}/{merged.total} chunks]"]
    lines.extend(f"- missing {c.describe_range()}: {c.error}" for c in merged.failed_chunks)
    return "\n".join(lines) + "\n\n" + merged.text
