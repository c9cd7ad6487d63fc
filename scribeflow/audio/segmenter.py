"""Chunk segmentation with fixed overlap and silence-aware boundaries."""

from __future__ import annotations

import logging

from scribeflow.audio.decoder import encode_wav
from scribeflow.audio.trimmer import TrimmedAudio
from scribeflow.models.audio import AudioChunk, Timeline

logger = logging.getLogger(__name__)


def _snap_boundary(
    target: float,
    candidates: list[float],
    *,
    window: float,
    lower: float,
    upper: float,
) -> float:
    best: float | None = None
    for c in candidates:
        if c <= lower or c >= upper:
            continue
        if abs(c - target) > window:
            continue
        if best is None or abs(c - target) < abs(best - target):
            best = c
    return target if best is None else best


def compute_boundaries(
    total: float,
    duration_budget: float,
    overlap_s: float,
    *,
    candidates: list[float] | None = None,
    search_window_s: float = 0.0,
    min_chunk_s: float = 0.1,
) -> list[float]:
    """Return cut points [0, b1, ..., total] spaced by `duration_budget`.

    With candidates, each cut moves back to the nearest candidate within
    `search_window_s` before the strict position, so no chunk outgrows the
    budget.
    """
    if duration_budget <= 0:
        raise ValueError("duration_budget must be positive")
    if overlap_s < 0 or overlap_s >= duration_budget:
        raise ValueError("overlap must be in [0, duration_budget)")
    if total <= 0:
        return []

    cands = sorted(candidates or [])
    bounds = [0.0]
    while total - bounds[-1] > duration_budget:
        target = bounds[-1] + duration_budget
        cut = target
        if cands and search_window_s > 0:
            cut = _snap_boundary(
                target,
                cands,
                window=search_window_s,
                lower=bounds[-1] + overlap_s + min_chunk_s,
                upper=min(target, total - min_chunk_s),
            )
        bounds.append(cut)
    bounds.append(float(total))

    if len(bounds) > 2 and bounds[-1] - bounds[-2] < min_chunk_s:
        del bounds[-2]
    return bounds


def segment(
    audio: TrimmedAudio,
    duration_budget: float,
    overlap_s: float,
    *,
    search_window_s: float = 5.0,
    min_chunk_s: float = 0.1,
) -> list[AudioChunk]:
    """Divide the (optionally trimmed) timeline into ordered, overlapping chunks.

    Chunk i > 0 starts `overlap_s` before its strict boundary so consecutive
    chunks share audio. An empty timeline yields an empty list.
    """
    total = audio.duration
    bounds = compute_boundaries(
        total,
        duration_budget,
        overlap_s,
        candidates=audio.boundaries,
        search_window_s=search_window_s,
        min_chunk_s=min_chunk_s,
    )
    if not bounds:
        logger.info("segment skipped (empty timeline)")
        return []

    timeline: Timeline = audio.timeline
    sr = audio.sample_rate
    chunks: list[AudioChunk] = []
    for i in range(len(bounds) - 1):
        start = bounds[i] if i == 0 else max(0.0, bounds[i] - overlap_s)
        end = bounds[i + 1]
        a = int(round(start * sr))
        b = int(round(end * sr))
        chunks.append(
            AudioChunk(
                id=i,
                start_time=timeline.to_source(start),
                end_time=timeline.to_source(end, end=True),
                data=encode_wav(audio.samples[a:b], sr),
                timeline=timeline.slice(start, end),
            )
        )

    logger.info(
        "segment done (chunks=%d, duration_s=%.2f, budget_s=%.1f, overlap_s=%.1f)",
        len(chunks),
        total,
        duration_budget,
        overlap_s,
    )
    return chunks
