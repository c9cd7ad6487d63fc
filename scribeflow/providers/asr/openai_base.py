"""Shared HTTP plumbing for OpenAI-style `/audio/transcriptions` endpoints."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from scribeflow.config import DEFAULT_OPENAI_BASE_URL, ModelProfile
from scribeflow.error_codes import ErrorCode
from scribeflow.exceptions import NetworkError, ProviderError, ValidationError
from scribeflow.providers.asr.base import (
    ASRProvider,
    ProviderLimits,
    TranscriptionRequest,
    TranscriptionResponse,
)

logger = logging.getLogger(__name__)


def format_http_error(response: httpx.Response) -> str:
    status = response.status_code
    reason = response.reason_phrase
    detail = ""
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        detail = str(payload["error"].get("message") or "").strip()
    if not detail:
        detail = response.text.strip()
    if detail:
        if len(detail) > 2000:
            detail = detail[:2000] + "…"
        return f"HTTP {status} {reason}: {detail}"
    return f"HTTP {status} {reason}"


class OpenAITranscriptionProvider(ASRProvider):
    """Base for providers speaking the OpenAI transcription wire format.

    Subclasses supply the form fields and response parsing; this class owns
    the pooled client, limit checks and HTTP error mapping.
    """

    name = "openai"

    def __init__(
        self,
        profile: ModelProfile,
        api_key: str,
        base_url: str | None = None,
        timeout: float = 300.0,
    ) -> None:
        self.profile = profile
        self.model = profile.model
        self.api_key = api_key
        resolved = str(base_url or "").strip()
        self.base_url = (resolved or DEFAULT_OPENAI_BASE_URL).rstrip("/")
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def limits(self) -> ProviderLimits:
        return ProviderLimits(
            max_file_size_bytes=self.profile.max_file_size_bytes,
            max_duration_s=self.profile.max_duration_s,
            supports_prompt=self.profile.supports_prompt,
        )

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create connection-pooled HTTP client."""
        if self._client is None:
            concurrency = max(1, self.profile.max_concurrent_chunks)
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(
                    max_connections=concurrency,
                    max_keepalive_connections=concurrency,
                ),
            )
        return self._client

    def parse_response(self, request: TranscriptionRequest, payload: Any) -> TranscriptionResponse:
        text = ""
        if isinstance(payload, dict):
            text = str(payload.get("text") or "")
        elif isinstance(payload, str):
            text = payload
        return TranscriptionResponse(text=text.strip())

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        message = format_http_error(response)
        if status == 413:
            raise ValidationError(message, error_code=ErrorCode.FILE_TOO_LARGE)
        raise ProviderError(self.name, message, status_code=status)

    async def transcribe(self, request: TranscriptionRequest) -> TranscriptionResponse:
        chunk = request.chunk
        self.limits.validate(chunk)

        client = await self._get_client()
        files = {"file": (chunk.filename, chunk.data, "audio/wav")}
        data = self.build_form(request)
        started = time.perf_counter()
        try:
            response = await client.post(
                f"{self.base_url}/audio/transcriptions",
                headers=self._headers(),
                files=files,
                data=data,
            )
        except httpx.TimeoutException as exc:
            logger.warning("asr request timeout (chunk=%d): %s", chunk.id, exc)
            raise NetworkError(self.name, f"request timed out: {exc}", timeout=True) from exc
        except httpx.TransportError as exc:
            logger.warning("asr request failed (chunk=%d): %s", chunk.id, exc)
            raise NetworkError(self.name, str(exc) or exc.__class__.__name__) from exc

        self._raise_for_status(response)
        if data.get("response_format") == "text":
            payload: Any = response.text
        else:
            try:
                payload = response.json()
            except ValueError as exc:
                raise ProviderError(
                    self.name,
                    f"invalid JSON response: {response.text[:200]!r}",
                    status_code=response.status_code,
                ) from exc

        result = self.parse_response(request, payload)
        logger.info(
            "asr call (provider=%s, model=%s, chunk=%d, latency_ms=%d, chars=%d)",
            self.name,
            self.model,
            chunk.id,
            int((time.perf_counter() - started) * 1000),
            len(result.text),
        )
        return result

    async def test_connection(self) -> bool:
        client = await self._get_client()
        try:
            response = await client.get(f"{self.base_url}/models", headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("asr connection test failed: %s", exc)
            return False
        if response.status_code != 200:
            logger.warning("asr connection test failed: %s", format_http_error(response))
            return False
        return True

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "OpenAITranscriptionProvider":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()
