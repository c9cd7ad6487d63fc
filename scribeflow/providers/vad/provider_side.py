"""Provider-side VAD: silence handling is left to the transcription service."""

from __future__ import annotations

from scribeflow.providers.vad.base import FrameLabel, VADProvider


class ProviderSideVADProvider(VADProvider):
    trims_locally = False

    def classify(self, frame: bytes) -> FrameLabel:  # noqa: ARG002
        return FrameLabel.SPEECH
