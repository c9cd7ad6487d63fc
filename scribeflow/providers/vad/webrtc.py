"""On-device VAD backed by the `webrtcvad` native module."""

from __future__ import annotations

from typing import Any

from scribeflow.exceptions import VADUnavailableError
from scribeflow.providers.vad.base import FrameLabel, VADProvider

SUPPORTED_SAMPLE_RATES = (8000, 16000, 32000, 48000)


def sensitivity_to_mode(sensitivity: float) -> int:
    """Map 0..1 sensitivity onto webrtcvad aggressiveness 0..3."""
    if sensitivity <= 0.25:
        return 0
    if sensitivity <= 0.5:
        return 1
    if sensitivity <= 0.75:
        return 2
    return 3


class WebRTCVADProvider(VADProvider):
    def __init__(self, sensitivity: float = 0.7, frame_ms: int = 30, sample_rate: int = 16000):
        if frame_ms not in (10, 20, 30):
            raise ValueError("webrtcvad supports 10/20/30 ms frames only")
        self.sensitivity = float(sensitivity)
        self.frame_ms = int(frame_ms)
        self.sample_rate = int(sample_rate)
        self.mode = sensitivity_to_mode(self.sensitivity)
        self._vad: Any | None = None

    def _ensure_loaded(self) -> Any:
        if self._vad is not None:
            return self._vad
        try:
            import webrtcvad
        except Exception as exc:
            raise VADUnavailableError(
                "On-device VAD requires the `webrtcvad` module. "
                "Install it with `pip install scribeflow[vad]`."
            ) from exc
        self._vad = webrtcvad.Vad(self.mode)
        return self._vad

    def load(self) -> None:
        self._ensure_loaded()
        if self.sample_rate not in SUPPORTED_SAMPLE_RATES:
            raise VADUnavailableError(
                f"webrtcvad cannot process {self.sample_rate} Hz audio "
                f"(supported: {', '.join(str(r) for r in SUPPORTED_SAMPLE_RATES)})"
            )

    def classify(self, frame: bytes) -> FrameLabel:
        vad = self._ensure_loaded()
        if vad.is_speech(frame, self.sample_rate):
            return FrameLabel.SPEECH
        return FrameLabel.SILENCE

    async def close(self) -> None:
        self._vad = None
