from __future__ import annotations

import json

import httpx
import pytest

from scribeflow.config import MODEL_PROFILES
from scribeflow.error_codes import ErrorCode
from scribeflow.exceptions import NetworkError, ProviderError, ValidationError
from scribeflow.models.audio import AudioChunk, Span, Timeline
from scribeflow.providers.asr.base import TranscriptionRequest
from scribeflow.providers.asr.gpt4o import GPT4oTranscribeProvider, extract_transcript
from scribeflow.providers.asr.whisper import WhisperProvider
from scribeflow.providers.registry import get_asr_provider

_BASE_URL = "https://api.test/v1"


def _chunk(chunk_id: int = 0, start: float = 0.0, end: float = 25.0) -> AudioChunk:
    return AudioChunk(id=chunk_id, start_time=start, end_time=end, data=b"RIFF....WAVE")


def _form_fields(request: httpx.Request) -> dict[str, str]:
    """Tiny multipart reader: returns the non-file fields of the request body."""
    content_type = request.headers["content-type"]
    boundary = content_type.split("boundary=", 1)[1].encode()
    fields: dict[str, str] = {}
    for part in request.content.split(b"--" + boundary):
        head, _, body = part.partition(b"\r\n\r\n")
        if b"filename=" in head or b'name="' not in head:
            continue
        name = head.split(b'name="', 1)[1].split(b'"', 1)[0].decode()
        fields[name] = body.rstrip(b"\r\n").decode()
    return fields


@pytest.mark.asyncio
async def test_whisper_sends_verbose_json_and_offsets_segments() -> None:
    captured: dict[str, object] = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("authorization")
        captured["fields"] = _form_fields(request)
        captured["has_file"] = b'filename="chunk_1.wav"' in request.content
        return httpx.Response(
            200,
            json={
                "text": "hello there",
                "segments": [
                    {"start": 1.0, "end": 2.5, "text": " hello"},
                    {"start": 2.5, "end": 4.0, "text": " there"},
                ],
            },
        )

    provider = WhisperProvider(MODEL_PROFILES["whisper-1"], api_key="sk-test", base_url=_BASE_URL)
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    try:
        response = await provider.transcribe(
            TranscriptionRequest(chunk=_chunk(1, 20.0, 45.0), language="ja")
        )
    finally:
        await provider.close()

    assert captured["url"] == f"{_BASE_URL}/audio/transcriptions"
    assert captured["auth"] == "Bearer sk-test"
    assert captured["has_file"] is True
    fields = captured["fields"]
    assert isinstance(fields, dict)
    assert fields["model"] == "whisper-1"
    assert fields["response_format"] == "verbose_json"
    assert fields["language"] == "ja"
    assert "prompt" not in fields
    assert response.text == "hello there"
    assert [(s.start, s.end) for s in response.segments] == [(21.0, 22.5), (22.5, 24.0)]


def test_whisper_segments_follow_chunk_timeline_across_dropped_silence() -> None:
    # Chunk audio is 5s from source 20s followed by 20s from source 60s.
    timeline = Timeline(spans=(Span(0.0, 20.0, 5.0), Span(5.0, 60.0, 20.0)))
    chunk = AudioChunk(id=2, start_time=20.0, end_time=80.0, data=b"", timeline=timeline)
    provider = WhisperProvider(MODEL_PROFILES["whisper-1"], api_key="sk-test", base_url=_BASE_URL)

    response = provider.parse_response(
        TranscriptionRequest(chunk=chunk),
        {
            "text": "one two three",
            "segments": [
                {"start": 1.0, "end": 4.0, "text": "one"},
                {"start": 4.0, "end": 7.0, "text": "two"},
                {"start": 6.0, "end": 8.0, "text": "three"},
            ],
        },
    )

    assert [(s.start, s.end) for s in response.segments] == [
        (21.0, 24.0),
        (24.0, 62.0),
        (61.0, 63.0),
    ]


@pytest.mark.asyncio
async def test_gpt4o_continuation_prompt_and_transcript_extraction() -> None:
    captured: dict[str, str] = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        captured.update(_form_fields(request))
        return httpx.Response(200, json={"text": "<TRANSCRIPT>\nand then we left.\n</TRANSCRIPT>"})

    provider = GPT4oTranscribeProvider(
        MODEL_PROFILES["gpt-4o-transcribe"], api_key="sk-test", base_url=_BASE_URL
    )
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    try:
        response = await provider.transcribe(
            TranscriptionRequest(
                chunk=_chunk(1, 270.0, 600.0),
                previous_context="We arrived late.",
            )
        )
    finally:
        await provider.close()

    assert captured["model"] == "gpt-4o-transcribe"
    assert captured["response_format"] == "json"
    assert "language" not in captured
    assert "We arrived late." in captured["prompt"]
    assert "30 seconds" in captured["prompt"]
    assert response.text == "and then we left."


def test_gpt4o_first_chunk_prompt_has_no_previous_ending() -> None:
    provider = GPT4oTranscribeProvider(MODEL_PROFILES["gpt-4o-mini-transcribe"], api_key="k")
    form = provider.build_form(TranscriptionRequest(chunk=_chunk(0), language="en"))
    assert "[Previous ending]" not in form["prompt"]
    assert "English" in form["prompt"]
    assert form["language"] == "en"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("<TRANSCRIPT>\nhi\n</TRANSCRIPT>", "hi"),
        ("<TRANSCRIPT> unterminated", "unterminated"),
        ("plain text", "plain text"),
    ],
)
def test_extract_transcript(raw: str, expected: str) -> None:
    assert extract_transcript(raw) == expected


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "code"),
    [
        (401, ErrorCode.UNAUTHORIZED),
        (429, ErrorCode.RATE_LIMITED),
        (500, ErrorCode.PROVIDER_FAILED),
    ],
)
async def test_http_errors_map_to_provider_error(status: int, code: ErrorCode) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(status, json={"error": {"message": "nope"}})

    provider = WhisperProvider(MODEL_PROFILES["whisper-1"], api_key="k", base_url=_BASE_URL)
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    try:
        with pytest.raises(ProviderError) as exc_info:
            await provider.transcribe(TranscriptionRequest(chunk=_chunk()))
    finally:
        await provider.close()

    assert exc_info.value.status_code == status
    assert exc_info.value.error_code == code
    assert "nope" in str(exc_info.value)


@pytest.mark.asyncio
async def test_payload_too_large_is_a_validation_error() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        return httpx.Response(413, text="too large")

    provider = WhisperProvider(MODEL_PROFILES["whisper-1"], api_key="k", base_url=_BASE_URL)
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    try:
        with pytest.raises(ValidationError) as exc_info:
            await provider.transcribe(TranscriptionRequest(chunk=_chunk()))
    finally:
        await provider.close()
    assert exc_info.value.error_code == ErrorCode.FILE_TOO_LARGE


@pytest.mark.asyncio
async def test_timeout_maps_to_network_error() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    provider = WhisperProvider(MODEL_PROFILES["whisper-1"], api_key="k", base_url=_BASE_URL)
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    try:
        with pytest.raises(NetworkError) as exc_info:
            await provider.transcribe(TranscriptionRequest(chunk=_chunk()))
    finally:
        await provider.close()
    assert exc_info.value.timeout is True
    assert exc_info.value.error_code == ErrorCode.TIMEOUT


@pytest.mark.asyncio
async def test_chunk_over_duration_limit_is_rejected_before_upload() -> None:
    calls = 0

    def _handler(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"text": ""})

    provider = GPT4oTranscribeProvider(MODEL_PROFILES["gpt-4o-transcribe"], api_key="k")
    provider._client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    try:
        with pytest.raises(ValidationError):
            await provider.transcribe(TranscriptionRequest(chunk=_chunk(0, 0.0, 1600.0)))
    finally:
        await provider.close()
    assert calls == 0


@pytest.mark.asyncio
async def test_connection_check() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        if request.headers.get("authorization") == "Bearer good":
            return httpx.Response(200, content=json.dumps({"data": []}))
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    good = WhisperProvider(MODEL_PROFILES["whisper-1"], api_key="good", base_url=_BASE_URL)
    bad = WhisperProvider(MODEL_PROFILES["whisper-1"], api_key="bad", base_url=_BASE_URL)
    for provider in (good, bad):
        provider._client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    try:
        assert await good.test_connection() is True
        assert await bad.test_connection() is False
    finally:
        await good.close()
        await bad.close()


def test_registry_picks_provider_by_model() -> None:
    config = {"provider": "openai", "api_key": "k"}
    whisper = get_asr_provider(config, MODEL_PROFILES["whisper-1"])
    gpt4o = get_asr_provider(config, MODEL_PROFILES["gpt-4o-mini-transcribe"])
    assert isinstance(whisper, WhisperProvider)
    assert isinstance(gpt4o, GPT4oTranscribeProvider)
    assert gpt4o.limits.max_duration_s == 1500.0
    assert whisper.limits.max_file_size_bytes == 25 * 1024 * 1024
