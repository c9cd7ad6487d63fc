"""Provider factory and registry."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from scribeflow.config import ModelProfile
from scribeflow.exceptions import ConfigurationError
from scribeflow.providers.asr.base import ASRProvider
from scribeflow.providers.llm.base import LLMProvider
from scribeflow.providers.vad.base import VADProvider
from scribeflow.utils.retry import RetryPolicy


def get_asr_provider(config: Mapping[str, Any], profile: ModelProfile) -> ASRProvider:
    """Get the transcription provider for `profile.model`."""
    provider_type = str(config.get("provider", "openai")).strip().lower()
    if provider_type not in ("openai", "openai_compat"):
        raise ConfigurationError(f"Unknown ASR provider: {provider_type}")

    kwargs = {
        "profile": profile,
        "api_key": str(config.get("api_key") or ""),
        "base_url": config.get("base_url"),
        "timeout": float(config.get("timeout", 300.0)),
    }
    match profile.model:
        case "whisper-1":
            from scribeflow.providers.asr.whisper import WhisperProvider

            return WhisperProvider(**kwargs)
        case "gpt-4o-transcribe" | "gpt-4o-mini-transcribe":
            from scribeflow.providers.asr.gpt4o import GPT4oTranscribeProvider

            return GPT4oTranscribeProvider(**kwargs)
        case _:
            raise ConfigurationError(f"Unknown transcription model: {profile.model}")


def get_vad_provider(config: Mapping[str, Any]) -> VADProvider | None:
    """Return the VAD strategy for `config["mode"]`, or None when VAD is off."""
    mode = str(config.get("mode", "local")).strip().lower()

    match mode:
        case "local" | "webrtc":
            from scribeflow.providers.vad.webrtc import WebRTCVADProvider

            return WebRTCVADProvider(
                sensitivity=float(config.get("sensitivity", 0.7)),
                frame_ms=int(config.get("frame_ms", 30)),
                sample_rate=int(config.get("sample_rate", 16000)),
            )
        case "server" | "provider":
            from scribeflow.providers.vad.provider_side import ProviderSideVADProvider

            return ProviderSideVADProvider()
        case "off" | "none":
            return None
        case _:
            raise ConfigurationError(f"Unknown VAD mode: {mode}")


def get_llm_provider(
    config: Mapping[str, Any], retry_policy: RetryPolicy | None = None
) -> LLMProvider:
    """Get the chat provider used for post-processing."""
    provider_type = str(config.get("provider", "openai")).strip().lower()

    match provider_type:
        case "openai" | "openai_compat":
            from scribeflow.providers.llm.openai_compat import OpenAICompatProvider

            return OpenAICompatProvider(
                api_key=str(config.get("api_key") or ""),
                model=str(config.get("model") or "gpt-4.1-mini"),
                base_url=config.get("base_url"),
                provider=provider_type,
                timeout=float(config.get("timeout", 120.0)),
                retry_policy=retry_policy,
            )
        case _:
            raise ConfigurationError(f"Unknown LLM provider: {provider_type}")
