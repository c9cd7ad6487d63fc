"""Streaming chat-completions client for OpenAI-compatible endpoints, used by the proofreading pass."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator

import httpx

from scribeflow.config import DEFAULT_OPENAI_BASE_URL
from scribeflow.error_codes import ErrorCode
from scribeflow.exceptions import NetworkError, ProviderError
from scribeflow.providers.llm.base import LLMProvider, LLMUsage, Message
from scribeflow.utils.cancellation import CancellationToken
from scribeflow.utils.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)


async def _iter_sse_data(response: httpx.Response) -> AsyncIterator[str]:
    data_lines: list[str] = []
    async for line in response.aiter_lines():
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
    if data_lines:
        yield "\n".join(data_lines)


def _parse_usage(event: object) -> LLMUsage | None:
    if not isinstance(event, dict):
        return None
    usage = event.get("usage")
    if not isinstance(usage, dict):
        return None
    values = [usage.get(k) for k in ("prompt_tokens", "completion_tokens", "total_tokens")]
    if not any(isinstance(v, int) for v in values):
        return None
    prompt, completion, total = (int(v) if isinstance(v, int) else None for v in values)
    return LLMUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


def _delta_content(event: object) -> str:
    if not isinstance(event, dict):
        return ""
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


class OpenAICompatProvider(LLMProvider):
    """OpenAI-compatible API provider (works with OpenAI, vLLM, etc.)."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4.1-mini",
        base_url: str | None = None,
        provider: str = "openai",
        timeout: float = 120.0,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.provider = provider
        resolved = str(base_url or "").strip()
        self.base_url = (resolved or DEFAULT_OPENAI_BASE_URL).rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self._client: httpx.AsyncClient | None = None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _chat_completions(
        self,
        messages: list[Message],
        temperature: float,
        max_tokens: int | None,
    ) -> str:
        payload: dict[str, object] = {
            "model": self.model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "stream": True,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        client = await self._get_client()
        started = time.perf_counter()
        text_chunks: list[str] = []
        last_event: object | None = None
        try:
            async with client.stream(
                "POST",
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json=payload,
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    detail = body.decode("utf-8", errors="replace").strip()[:2000]
                    raise ProviderError(
                        self.provider,
                        f"HTTP {response.status_code} {response.reason_phrase}: {detail}",
                        status_code=response.status_code,
                    )

                async for data in _iter_sse_data(response):
                    if data.strip() == "[DONE]":
                        break
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        logger.debug("llm stream non-json data: %r", data[:200])
                        continue
                    last_event = event
                    if isinstance(event, dict) and isinstance(event.get("error"), dict):
                        error_msg = str(event["error"].get("message") or "unknown error")
                        raise ProviderError(
                            self.provider, error_msg, error_code=ErrorCode.POST_PROCESSING_FAILED
                        )
                    content = _delta_content(event)
                    if content:
                        text_chunks.append(content)
        except httpx.TimeoutException as exc:
            raise NetworkError(self.provider, str(exc), timeout=True) from exc
        except httpx.TransportError as exc:
            raise NetworkError(self.provider, str(exc)) from exc

        usage = _parse_usage(last_event)
        logger.info(
            "llm call (provider=%s, model=%s, latency_ms=%s, prompt_tokens=%s, completion_tokens=%s)",
            self.provider,
            self.model,
            int((time.perf_counter() - started) * 1000),
            getattr(usage, "prompt_tokens", None),
            getattr(usage, "completion_tokens", None),
        )
        return "".join(text_chunks)

    async def complete(
        self,
        messages: list[Message],
        temperature: float = 0.0,
        max_tokens: int | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> str:
        async def _attempt() -> str:
            work = self._chat_completions(messages, temperature, max_tokens)
            return await token.run(work) if token is not None else await work

        return await run_with_retry(
            _attempt,
            self.retry_policy,
            token=token,
            label=f"llm {self.provider}/{self.model}",
            log=logger,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
