"""Silence trimming driven by VAD speech regions.

Trimming may drop audio from the timeline; the resulting `Timeline` maps
positions in the trimmed buffer back to absolute source seconds so chunk
times stay meaningful to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from scribeflow.models.audio import Span, Timeline
from scribeflow.providers.vad.base import SpeechRegion


@dataclass(frozen=True)
class TrimmedAudio:
    samples: np.ndarray
    sample_rate: int
    timeline: Timeline
    # Preferred cut points (trimmed seconds), e.g. midpoints of silence gaps.
    boundaries: list[float] = field(default_factory=list)

    @property
    def duration(self) -> float:
        return self.samples.size / float(self.sample_rate) if self.sample_rate else 0.0


def untrimmed(samples: np.ndarray, sample_rate: int, *, offset: float = 0.0) -> TrimmedAudio:
    mono = samples.reshape(-1)
    return TrimmedAudio(
        samples=mono,
        sample_rate=sample_rate,
        timeline=Timeline.identity(mono.size / float(sample_rate), offset),
    )


def _group_regions(
    regions: list[SpeechRegion], drop_interior_silence: bool, min_interior_silence_s: float
) -> list[list[SpeechRegion]]:
    if not drop_interior_silence:
        return [list(regions)]
    groups: list[list[SpeechRegion]] = [[regions[0]]]
    for region in regions[1:]:
        if region.start - groups[-1][-1].end >= min_interior_silence_s:
            groups.append([region])
        else:
            groups[-1].append(region)
    return groups


def trim_silence(
    samples: np.ndarray,
    sample_rate: int,
    regions: list[SpeechRegion],
    *,
    offset: float = 0.0,
    drop_interior_silence: bool = False,
    min_interior_silence_s: float = 2.0,
    min_boundary_gap_s: float = 0.5,
) -> TrimmedAudio:
    """Trim leading/trailing silence and optionally long interior silence.

    Returns an empty buffer when `regions` is empty; the caller reports
    that as "no speech detected".
    """
    mono = samples.reshape(-1)
    if not regions:
        return TrimmedAudio(
            samples=mono[:0],
            sample_rate=sample_rate,
            timeline=Timeline(spans=()),
        )

    pieces: list[np.ndarray] = []
    spans: list[Span] = []
    boundaries: list[float] = []
    cursor = 0.0
    for group in _group_regions(regions, drop_interior_silence, min_interior_silence_s):
        a = int(round(group[0].start * sample_rate))
        b = int(round(group[-1].end * sample_rate))
        piece = mono[a:b]
        if piece.size == 0:
            continue
        span = Span(
            trimmed_start=cursor,
            source_start=offset + a / float(sample_rate),
            duration=piece.size / float(sample_rate),
        )
        if spans:
            # Junction of two kept spans is a natural cut point.
            boundaries.append(cursor)
        for left, right in zip(group, group[1:]):
            gap = right.start - left.end
            if gap >= min_boundary_gap_s:
                midpoint = (left.end + right.start) / 2.0
                boundaries.append(cursor + (midpoint - a / float(sample_rate)))
        spans.append(span)
        pieces.append(piece)
        cursor += span.duration

    trimmed = np.concatenate(pieces) if pieces else mono[:0]
    return TrimmedAudio(
        samples=trimmed,
        sample_rate=sample_rate,
        timeline=Timeline(spans=tuple(spans)),
        boundaries=sorted(boundaries),
    )
