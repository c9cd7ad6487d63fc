from scribeflow.providers.vad.base import (
    FrameLabel,
    SpeechRegion,
    VADProvider,
    detect_speech_regions,
)

__all__ = ["FrameLabel", "SpeechRegion", "VADProvider", "detect_speech_regions"]
