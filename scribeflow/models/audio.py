"""Audio buffer, timeline and chunk models."""

from __future__ import annotations

import bisect
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class PCMAudio:
    """Decoded float32 PCM, shape (frames, channels)."""

    samples: np.ndarray
    sample_rate: int
    channels: int = 1

    @property
    def num_frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.num_frames / float(self.sample_rate)

    def to_mono(self) -> np.ndarray:
        """Return a 1-D float32 mono view (channel mean)."""
        if self.samples.ndim == 1:
            return self.samples.astype(np.float32, copy=False)
        if self.samples.shape[1] == 1:
            return self.samples[:, 0].astype(np.float32, copy=False)
        return self.samples.mean(axis=1).astype(np.float32)


@dataclass(frozen=True)
class Span:
    trimmed_start: float
    source_start: float
    duration: float


@dataclass(frozen=True)
class Timeline:
    spans: tuple[Span, ...]

    @classmethod
    def identity(cls, duration: float, offset: float = 0.0) -> "Timeline":
        return cls(spans=(Span(0.0, float(offset), float(duration)),))

    @property
    def duration(self) -> float:
        if not self.spans:
            return 0.0
        last = self.spans[-1]
        return last.trimmed_start + last.duration

    def to_source(self, t: float, *, end: bool = False) -> float:
        """Map trimmed seconds to source seconds; `end` resolves junctions to the left span."""
        if not self.spans:
            return float(t)
        starts = [s.trimmed_start for s in self.spans]
        pos = bisect.bisect_left(starts, t) if end else bisect.bisect_right(starts, t)
        idx = max(0, pos - 1)
        span = self.spans[idx]
        local = min(max(0.0, t - span.trimmed_start), span.duration)
        return span.source_start + local

    def slice(self, start: float, end: float) -> "Timeline":
        """Sub-timeline for trimmed [start, end), re-based so `start` maps to 0."""
        spans: list[Span] = []
        for s in self.spans:
            lo = max(start, s.trimmed_start)
            hi = min(end, s.trimmed_start + s.duration)
            if hi <= lo:
                continue
            spans.append(Span(lo - start, s.source_start + (lo - s.trimmed_start), hi - lo))
        return Timeline(spans=tuple(spans))


@dataclass(frozen=True)
class AudioChunk:
    """One bounded-duration slice of the source, ready to upload.

    `data` is a 16-bit mono WAV payload. Times are absolute seconds within
    the source recording. `timeline` maps chunk-relative seconds to source
    seconds when trimming removed silence inside the chunk.
    """

    id: int
    start_time: float
    end_time: float
    data: bytes
    timeline: Timeline | None = None

    @property
    def duration(self) -> float:
        return max(0.0, self.end_time - self.start_time)

    @property
    def filename(self) -> str:
        return f"chunk_{self.id}.wav"

    def to_source(self, t: float, *, end: bool = False) -> float:
        if self.timeline is None or not self.timeline.spans:
            return self.start_time + t
        return self.timeline.to_source(t, end=end)
