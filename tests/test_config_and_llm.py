from __future__ import annotations

import json
import logging

import httpx
import pytest

from scribeflow.cli import _parse_args
from scribeflow.config import ChunkingConfig, LoggingSettings, Settings
from scribeflow.error_codes import ErrorCode
from scribeflow.exceptions import ConfigurationError, ProviderError
from scribeflow.pipeline.postprocess import LLMPostProcessor
from scribeflow.providers.llm.base import Message
from scribeflow.providers.llm.openai_compat import OpenAICompatProvider
from scribeflow.utils.logging_setup import setup_logging
from scribeflow.utils.retry import RetryPolicy

_FAST = RetryPolicy(max_retries=2, base_delay_s=0, max_delay_s=0, rate_limit_base_delay_s=0)


def test_profile_defaults_per_model(settings: Settings) -> None:
    whisper = settings.profile_for("whisper-1")
    assert (whisper.chunk_duration_s, whisper.overlap_s, whisper.context_chars) == (25.0, 5.0, 0)
    assert whisper.continuation_enabled is False
    assert whisper.max_concurrent_chunks == 2

    gpt4o = settings.profile_for("gpt-4o-transcribe")
    assert (gpt4o.chunk_duration_s, gpt4o.overlap_s, gpt4o.context_chars) == (300.0, 30.0, 500)
    assert gpt4o.continuation_enabled is True

    mini = settings.profile_for("gpt-4o-mini-transcribe")
    assert mini.chunk_duration_s == 240.0


def test_profile_overrides_are_validated(settings: Settings) -> None:
    settings.chunking = ChunkingConfig(duration_s=60.0, overlap_s=10.0)
    profile = settings.profile_for("gpt-4o-transcribe")
    assert (profile.chunk_duration_s, profile.overlap_s) == (60.0, 10.0)

    settings.chunking = ChunkingConfig(duration_s=10.0, overlap_s=10.0)
    with pytest.raises(ConfigurationError):
        settings.profile_for("gpt-4o-transcribe")

    settings.chunking = ChunkingConfig(duration_s=2000.0)
    with pytest.raises(ConfigurationError):
        settings.profile_for("gpt-4o-transcribe")


def test_unknown_model_is_rejected(settings: Settings) -> None:
    with pytest.raises(ConfigurationError):
        settings.profile_for("no-such-model")


def test_profile_limit_counts_the_overlap(settings: Settings) -> None:
    settings.chunking = ChunkingConfig(duration_s=1490.0, overlap_s=30.0)
    with pytest.raises(ConfigurationError):
        settings.profile_for("gpt-4o-transcribe")

    settings.chunking = ChunkingConfig(duration_s=1470.0, overlap_s=30.0)
    assert settings.profile_for("gpt-4o-transcribe").chunk_duration_s == 1470.0


def test_settings_reject_overlap_not_shorter_than_duration() -> None:
    with pytest.raises(ValueError, match="CHUNK_OVERLAP_S"):
        Settings(chunking=ChunkingConfig(duration_s=20.0, overlap_s=20.0))
    Settings(chunking=ChunkingConfig(duration_s=20.0, overlap_s=5.0))


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ASR_MODEL", "whisper-1")
    monkeypatch.setenv("VAD_MODE", "OFF")
    monkeypatch.setenv("RETRY_MAX_RETRIES", "5")
    settings = Settings()
    assert settings.asr.model == "whisper-1"
    assert settings.vad.mode == "off"
    assert settings.retry.max_retries == 5


def _sse(*events: object) -> bytes:
    lines = [f"data: {json.dumps(e)}\n\n" for e in events]
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


@pytest.mark.asyncio
async def test_llm_streams_and_joins_deltas() -> None:
    captured: dict[str, object] = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        body = _sse(
            {"choices": [{"delta": {"content": "Hello"}}]},
            {"choices": [{"delta": {"content": " world."}}]},
            {"choices": [], "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}},
        )
        return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

    provider = OpenAICompatProvider(api_key="k", model="gpt-4.1-mini", retry_policy=_FAST)
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    try:
        out = await provider.complete([Message(role="user", content="hi")])
    finally:
        await provider.close()

    assert out == "Hello world."
    assert captured["model"] == "gpt-4.1-mini"
    assert captured["stream"] is True


@pytest.mark.asyncio
async def test_llm_retries_server_errors_then_succeeds() -> None:
    calls = 0

    def _handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        nonlocal calls
        calls += 1
        if calls == 1:
            return httpx.Response(503, text="overloaded")
        return httpx.Response(200, content=_sse({"choices": [{"delta": {"content": "ok"}}]}))

    provider = OpenAICompatProvider(api_key="k", retry_policy=_FAST)
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    try:
        assert await provider.complete([Message(role="user", content="hi")]) == "ok"
    finally:
        await provider.close()
    assert calls == 2


@pytest.mark.asyncio
async def test_llm_stream_error_event_raises() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(200, content=_sse({"error": {"message": "context too long"}}))

    provider = OpenAICompatProvider(api_key="k", retry_policy=_FAST)
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    try:
        with pytest.raises(ProviderError) as exc_info:
            await provider.complete([Message(role="user", content="hi")])
    finally:
        await provider.close()
    assert exc_info.value.error_code == ErrorCode.POST_PROCESSING_FAILED


class _EchoLLM:
    def __init__(self, reply: str | None = None) -> None:
        self.reply = reply
        self.calls: list[list[Message]] = []

    async def complete(self, messages, temperature=0.0, max_tokens=None, *, token=None):  # noqa: ANN001, ARG002
        self.calls.append(messages)
        return self.reply if self.reply is not None else messages[-1].content.upper()

    async def close(self) -> None:
        return None


@pytest.mark.asyncio
async def test_post_processor_corrects_each_segment() -> None:
    llm = _EchoLLM()
    processor = LLMPostProcessor(llm, max_segment_chars=30)  # type: ignore[arg-type]
    out = await processor.process("first paragraph.\n\nsecond paragraph.", language="auto")
    assert out == "FIRST PARAGRAPH.\n\nSECOND PARAGRAPH."
    assert len(llm.calls) == 2
    assert llm.calls[0][0].role == "system"


@pytest.mark.asyncio
async def test_post_processor_keeps_segment_on_empty_reply() -> None:
    processor = LLMPostProcessor(_EchoLLM(reply="  "))  # type: ignore[arg-type]
    out = await processor.process("keep me.", language="en")
    assert out == "keep me."


def test_setup_logging_writes_to_log_dir(settings: Settings, tmp_path) -> None:  # noqa: ANN001
    settings.logging = LoggingSettings(file="scribeflow.log", console=False, level="debug")
    logger = setup_logging(settings, force=True)
    try:
        assert logger.name == "scribeflow"
        assert logger.level == logging.DEBUG
        assert (tmp_path / "logs" / "scribeflow.log").exists()
        # Second call without force keeps the existing handlers.
        handlers = list(logger.handlers)
        assert setup_logging(settings) is logger
        assert logger.handlers == handlers
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
        setattr(logger, "_scribeflow_configured", False)


def test_cli_arguments() -> None:
    args = _parse_args(["talk.mp4", "--model", "whisper-1", "--vad", "off", "--start-s", "5"])
    assert args.media == "talk.mp4"
    assert args.model == "whisper-1"
    assert args.vad == "off"
    assert args.start_s == 5.0
    assert args.post_process is False
