"""VAD provider abstractions and frame-level speech region detection."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import numpy as np

from scribeflow.config import VADConfig
from scribeflow.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

# Yield to the event loop (and check cancellation) every N frames.
_CHECKPOINT_FRAMES = 500


class FrameLabel(str, Enum):
    SPEECH = "speech"
    SILENCE = "silence"


@dataclass(frozen=True)
class SpeechRegion:
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


class VADProvider(ABC):
    """Classifies fixed-size 16-bit mono PCM frames as speech or silence."""

    sample_rate: int = 16000
    frame_ms: int = 30
    # Provider-side VAD leaves trimming to the transcription service.
    trims_locally: bool = True

    @property
    def frame_samples(self) -> int:
        return self.sample_rate * self.frame_ms // 1000

    def load(self) -> None:
        """Load native resources; raises VADUnavailableError when they are missing."""
        return None

    @abstractmethod
    def classify(self, frame: bytes) -> FrameLabel:
        raise NotImplementedError

    async def close(self) -> None:  # pragma: no cover
        return None


def _frames_to_regions(flags: list[bool], frame_s: float) -> list[SpeechRegion]:
    regions: list[SpeechRegion] = []
    start: int | None = None
    for i, is_speech in enumerate(flags):
        if is_speech and start is None:
            start = i
        elif not is_speech and start is not None:
            regions.append(SpeechRegion(start * frame_s, i * frame_s))
            start = None
    if start is not None:
        regions.append(SpeechRegion(start * frame_s, len(flags) * frame_s))
    return regions


def postprocess_regions(
    regions: list[SpeechRegion],
    *,
    total_duration: float,
    min_speech_duration_s: float,
    max_silence_duration_s: float,
    speech_padding_s: float,
) -> list[SpeechRegion]:
    """Bridge short gaps, drop blips, pad, then re-merge overlaps."""
    merged: list[SpeechRegion] = []
    for region in regions:
        if merged and region.start - merged[-1].end < max_silence_duration_s:
            merged[-1] = SpeechRegion(merged[-1].start, region.end)
        else:
            merged.append(region)

    kept = [r for r in merged if r.duration >= min_speech_duration_s]

    padded: list[SpeechRegion] = []
    for region in kept:
        start = max(0.0, region.start - speech_padding_s)
        end = min(total_duration, region.end + speech_padding_s)
        if padded and start <= padded[-1].end:
            padded[-1] = SpeechRegion(padded[-1].start, max(padded[-1].end, end))
        else:
            padded.append(SpeechRegion(start, end))
    return padded


async def detect_speech_regions(
    samples: np.ndarray,
    sample_rate: int,
    provider: VADProvider,
    config: VADConfig,
    *,
    token: CancellationToken | None = None,
) -> list[SpeechRegion]:
    """Run `provider` over mono float32 samples and return padded speech regions."""
    if sample_rate != provider.sample_rate:
        raise ValueError(
            f"VAD expects {provider.sample_rate} Hz audio, got {sample_rate} Hz"
        )
    frame_len = provider.frame_samples
    pcm16 = (np.clip(samples.reshape(-1), -1.0, 1.0) * 32767.0).astype("<i2")
    n_frames = pcm16.size // frame_len
    total_duration = samples.size / float(sample_rate)

    flags: list[bool] = []
    for i in range(n_frames):
        if i % _CHECKPOINT_FRAMES == 0:
            if token is not None:
                token.raise_if_cancelled()
            await asyncio.sleep(0)
        frame = pcm16[i * frame_len : (i + 1) * frame_len].tobytes()
        flags.append(provider.classify(frame) == FrameLabel.SPEECH)

    raw = _frames_to_regions(flags, frame_len / float(sample_rate))
    regions = postprocess_regions(
        raw,
        total_duration=total_duration,
        min_speech_duration_s=config.min_speech_duration_s,
        max_silence_duration_s=config.max_silence_duration_s,
        speech_padding_s=config.speech_padding_s,
    )
    speech_s = sum(r.duration for r in regions)
    logger.info(
        "vad done (frames=%d, regions=%d, speech_s=%.2f, total_s=%.2f)",
        n_frames,
        len(regions),
        speech_s,
        total_duration,
    )
    return regions
