from scribeflow.providers.asr.base import (
    ASRProvider,
    ProviderLimits,
    TranscriptionRequest,
    TranscriptionResponse,
)

__all__ = ["ASRProvider", "ProviderLimits", "TranscriptionRequest", "TranscriptionResponse"]
