"""Configuration management using pydantic-settings."""

from __future__ import annotations

from dataclasses import dataclass, replace

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from scribeflow.exceptions import ConfigurationError

_ENV_FILES = (".env", "../.env")

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
MB = 1024 * 1024


@dataclass(frozen=True)
class ModelProfile:
    """Per-model chunking and request limits."""

    model: str
    chunk_duration_s: float
    overlap_s: float
    context_chars: int
    max_concurrent_chunks: int
    max_file_size_bytes: int = 25 * MB
    max_duration_s: float | None = None
    response_format: str = "json"
    supports_prompt: bool = True

    @property
    def continuation_enabled(self) -> bool:
        return self.supports_prompt and self.context_chars > 0


MODEL_PROFILES: dict[str, ModelProfile] = {
    "whisper-1": ModelProfile(
        model="whisper-1",
        chunk_duration_s=25.0,
        overlap_s=5.0,
        context_chars=0,
        max_concurrent_chunks=2,
        response_format="verbose_json",
    ),
    "gpt-4o-transcribe": ModelProfile(
        model="gpt-4o-transcribe",
        chunk_duration_s=300.0,
        overlap_s=30.0,
        context_chars=500,
        max_concurrent_chunks=1,
        max_duration_s=1500.0,
    ),
    "gpt-4o-mini-transcribe": ModelProfile(
        model="gpt-4o-mini-transcribe",
        chunk_duration_s=240.0,
        overlap_s=30.0,
        context_chars=500,
        max_concurrent_chunks=1,
        max_duration_s=1500.0,
    ),
}


class ASRConfig(BaseSettings):
    """Transcription provider configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ASR_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    provider: str = "openai"
    base_url: str = DEFAULT_OPENAI_BASE_URL
    api_key: str = ""
    model: str = "gpt-4o-transcribe"
    timeout: float = Field(default=300.0, gt=0)  # per request (seconds)
    max_concurrent: int | None = Field(default=None, ge=1)


class RetryConfig(BaseSettings):
    """Per-chunk retry policy."""

    model_config = SettingsConfigDict(
        env_prefix="RETRY_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    max_retries: int = Field(default=3, ge=0)
    base_delay_s: float = Field(default=1.0, ge=0)
    max_delay_s: float = Field(default=30.0, ge=0)
    rate_limit_base_delay_s: float = Field(default=2.0, ge=0)

    @model_validator(mode="after")
    def _check_delays(self) -> "RetryConfig":
        if self.max_delay_s < self.base_delay_s:
            raise ValueError("max_delay_s must be >= base_delay_s")
        return self


class ChunkingConfig(BaseSettings):
    """Overrides for the model profile's chunking parameters."""

    model_config = SettingsConfigDict(
        env_prefix="CHUNK_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    duration_s: float | None = Field(default=None, gt=0)
    overlap_s: float | None = Field(default=None, ge=0)
    context_chars: int | None = Field(default=None, ge=0)
    # Boundaries snap to a silence gap within this window.
    boundary_search_s: float = Field(default=5.0, ge=0)
    min_chunk_s: float = Field(default=0.1, ge=0)


class VADConfig(BaseSettings):
    """VAD configuration."""

    model_config = SettingsConfigDict(
        env_prefix="VAD_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    mode: str = "local"  # local | server | off
    sensitivity: float = Field(default=0.7, ge=0, le=1)
    frame_ms: int = 30
    min_speech_duration_s: float = Field(default=0.3, ge=0)
    max_silence_duration_s: float = Field(default=0.5, ge=0)
    speech_padding_s: float = Field(default=0.2, ge=0)
    drop_interior_silence: bool = False
    min_interior_silence_s: float = Field(default=2.0, gt=0)
    min_boundary_gap_s: float = Field(default=0.5, ge=0)

    @model_validator(mode="after")
    def _check(self) -> "VADConfig":
        if self.frame_ms not in (10, 20, 30):
            raise ValueError("frame_ms must be one of 10, 20, 30")
        self.mode = str(self.mode or "off").strip().lower()
        if self.mode not in ("local", "server", "off"):
            raise ValueError(f"unknown VAD mode: {self.mode}")
        return self


class AudioConfig(BaseSettings):
    """Audio decoding configuration."""

    model_config = SettingsConfigDict(
        env_prefix="AUDIO_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    target_sample_rate: int = Field(default=16000, gt=0)
    max_input_mb: float = Field(default=500.0, gt=0)
    audio_extensions: tuple[str, ...] = ("mp3", "m4a", "wav", "flac", "ogg", "aac")
    video_extensions: tuple[str, ...] = ("mp4", "m4v", "mov", "avi", "mkv", "webm")

    @property
    def supported_extensions(self) -> tuple[str, ...]:
        return self.audio_extensions + self.video_extensions


class PostProcessingConfig(BaseSettings):
    """Optional LLM pass over the merged transcript."""

    model_config = SettingsConfigDict(
        env_prefix="POST_PROCESSING_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enabled: bool = False
    provider: str = "openai"
    base_url: str | None = None
    api_key: str = ""
    model: str = "gpt-4.1-mini"
    temperature: float = Field(default=0.0, ge=0, le=2)
    timeout: float = Field(default=120.0, gt=0)


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s - %(message)s"
    datefmt: str = "%Y-%m-%d %H:%M:%S"
    console: bool = True
    file: str | None = None
    max_bytes: int = Field(default=10 * MB, ge=1024)
    backup_count: int = Field(default=5, ge=0)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    asr: ASRConfig = Field(default_factory=ASRConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    vad: VADConfig = Field(default_factory=VADConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    post_processing: PostProcessingConfig = Field(default_factory=PostProcessingConfig)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    log_dir: str = "./logs"
    history_max_items: int = Field(default=50, ge=1)
    preview_chars: int = Field(default=50, ge=1)

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        duration = self.chunking.duration_s
        overlap = self.chunking.overlap_s
        if duration is not None and overlap is not None and overlap >= duration:
            raise ValueError(
                f"CHUNK_OVERLAP_S ({overlap}) must be shorter than CHUNK_DURATION_S ({duration})"
            )
        return self

    def profile_for(self, model: str | None = None) -> ModelProfile:
        """Resolve the model profile with chunking overrides applied."""
        name = str(model or self.asr.model).strip()
        base = MODEL_PROFILES.get(name)
        if base is None:
            raise ConfigurationError(f"Unknown transcription model: {name}")

        overrides: dict[str, object] = {}
        if self.chunking.duration_s is not None:
            overrides["chunk_duration_s"] = float(self.chunking.duration_s)
        if self.chunking.overlap_s is not None:
            overrides["overlap_s"] = float(self.chunking.overlap_s)
        if self.chunking.context_chars is not None:
            overrides["context_chars"] = int(self.chunking.context_chars)
        if self.asr.max_concurrent is not None:
            overrides["max_concurrent_chunks"] = int(self.asr.max_concurrent)
        profile = replace(base, **overrides) if overrides else base

        if profile.overlap_s >= profile.chunk_duration_s:
            raise ConfigurationError(
                f"overlap ({profile.overlap_s}s) must be shorter than chunk duration "
                f"({profile.chunk_duration_s}s)"
            )
        # Chunks after the first also carry the overlap.
        longest = profile.chunk_duration_s + profile.overlap_s
        if profile.max_duration_s is not None and longest > profile.max_duration_s:
            raise ConfigurationError(
                f"chunk duration {profile.chunk_duration_s}s plus overlap {profile.overlap_s}s "
                f"exceeds {name} limit of {profile.max_duration_s}s"
            )
        return profile
