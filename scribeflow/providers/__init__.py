"""Provider interfaces and factories."""

from scribeflow.providers.registry import get_asr_provider, get_llm_provider, get_vad_provider

__all__ = ["get_asr_provider", "get_llm_provider", "get_vad_provider"]
