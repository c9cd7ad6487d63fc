"""Chunk dispatch: ordered provider calls with retry, cancellation and continuity."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from scribeflow.error_codes import ErrorCode
from scribeflow.exceptions import CancelledError, ScribeFlowError
from scribeflow.models.audio import AudioChunk
from scribeflow.models.transcription import ChunkResult
from scribeflow.pipeline.cleaning import clean_chunk_text
from scribeflow.pipeline.continuity import build_continuation_context
from scribeflow.providers.asr.base import ASRProvider, TranscriptionRequest
from scribeflow.utils.cancellation import CancellationToken
from scribeflow.utils.retry import RetryPolicy, run_with_retry

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[ChunkResult], None]


@dataclass
class DispatchOutcome:
    results: list[ChunkResult] = field(default_factory=list)
    cancelled: bool = False
    # Set when a task-wide failure (e.g. rejected credentials) stopped dispatch.
    aborted_by: ChunkResult | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)


def _is_task_wide(result: ChunkResult) -> bool:
    return not result.success and result.error_code == ErrorCode.UNAUTHORIZED


class ChunkDispatcher:
    """Drive chunks through a provider in id order.

    With continuation enabled chunk i+1 is only requested after chunk i's
    transcript is available. Without it, up to `max_concurrency` chunks are
    in flight; results are still reported in id order.
    """

    def __init__(
        self,
        provider: ASRProvider,
        policy: RetryPolicy,
        *,
        context_chars: int = 0,
        max_concurrency: int = 1,
        on_chunk_done: ChunkCallback | None = None,
        clean_text: bool = True,
    ) -> None:
        self.provider = provider
        self.policy = policy
        self.context_chars = max(0, int(context_chars))
        self.max_concurrency = max(1, int(max_concurrency))
        self.on_chunk_done = on_chunk_done
        self.clean_text = clean_text

    @property
    def continuation_enabled(self) -> bool:
        return self.context_chars > 0 and self.provider.limits.supports_prompt

    def _notify(self, result: ChunkResult) -> None:
        if self.on_chunk_done is not None:
            self.on_chunk_done(result)

    async def transcribe_chunk(
        self,
        chunk: AudioChunk,
        *,
        language: str,
        previous_context: str,
        token: CancellationToken,
    ) -> ChunkResult:
        """Transcribe one chunk under the retry policy.

        Returns a failed ChunkResult once retries are exhausted; only
        cancellation propagates.
        """
        request = TranscriptionRequest(
            chunk=chunk, language=language, previous_context=previous_context
        )
        attempts = 0

        async def _attempt():
            nonlocal attempts
            attempts += 1
            logger.debug("chunk dispatch (chunk=%d, attempt=%d)", chunk.id, attempts)
            return await token.run(self.provider.transcribe(request))

        try:
            response = await run_with_retry(
                _attempt,
                self.policy,
                token=token,
                label=f"chunk {chunk.id}",
                log=logger,
            )
        except CancelledError:
            raise
        except ScribeFlowError as exc:
            logger.warning(
                "chunk failed (chunk=%d, attempts=%d, error=%s)", chunk.id, attempts, exc
            )
            return ChunkResult(
                id=chunk.id,
                text="",
                start_time=chunk.start_time,
                end_time=chunk.end_time,
                success=False,
                error=str(exc),
                error_code=exc.error_code,
                attempts=attempts,
            )
        except Exception as exc:
            logger.exception("chunk failed unexpectedly (chunk=%d)", chunk.id)
            return ChunkResult(
                id=chunk.id,
                text="",
                start_time=chunk.start_time,
                end_time=chunk.end_time,
                success=False,
                error=f"{exc.__class__.__name__}: {exc}",
                error_code=ErrorCode.UNKNOWN,
                attempts=attempts,
            )

        text = response.text
        if self.clean_text:
            text = clean_chunk_text(text, previous_context)
        return ChunkResult(
            id=chunk.id,
            text=text,
            start_time=chunk.start_time,
            end_time=chunk.end_time,
            success=True,
            attempts=attempts,
            segments=list(response.segments),
        )

    async def dispatch(
        self,
        chunks: list[AudioChunk],
        *,
        language: str,
        token: CancellationToken,
    ) -> DispatchOutcome:
        ordered = sorted(chunks, key=lambda c: c.id)
        logger.info(
            "dispatch start (chunks=%d, continuation=%s, max_concurrency=%d)",
            len(ordered),
            self.continuation_enabled,
            self.max_concurrency,
        )
        if self.continuation_enabled or self.max_concurrency == 1:
            outcome = await self._dispatch_sequential(ordered, language=language, token=token)
        else:
            outcome = await self._dispatch_windowed(ordered, language=language, token=token)
        outcome.results.sort(key=lambda r: r.id)
        logger.info(
            "dispatch done (succeeded=%d, processed=%d, total=%d, cancelled=%s)",
            outcome.succeeded,
            len(outcome.results),
            len(ordered),
            outcome.cancelled,
        )
        return outcome

    async def _dispatch_sequential(
        self, chunks: list[AudioChunk], *, language: str, token: CancellationToken
    ) -> DispatchOutcome:
        outcome = DispatchOutcome()
        previous_text = ""
        for chunk in chunks:
            if token.cancelled:
                outcome.cancelled = True
                break
            context = ""
            if self.continuation_enabled and chunk.id > 0:
                context = build_continuation_context(previous_text, self.context_chars)
            try:
                result = await self.transcribe_chunk(
                    chunk, language=language, previous_context=context, token=token
                )
            except CancelledError:
                logger.info("dispatch cancelled (chunk=%d)", chunk.id)
                outcome.cancelled = True
                break

            outcome.results.append(result)
            self._notify(result)
            # A failed chunk leaves no transcript to continue from.
            previous_text = result.text if result.success else ""
            if _is_task_wide(result):
                outcome.aborted_by = result
                break
        return outcome

    async def _dispatch_windowed(
        self, chunks: list[AudioChunk], *, language: str, token: CancellationToken
    ) -> DispatchOutcome:
        outcome = DispatchOutcome()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _one(chunk: AudioChunk) -> None:
            async with semaphore:
                if outcome.aborted_by is not None:
                    return
                token.raise_if_cancelled()
                result = await self.transcribe_chunk(
                    chunk, language=language, previous_context="", token=token
                )
                outcome.results.append(result)
                self._notify(result)
                if _is_task_wide(result) and outcome.aborted_by is None:
                    outcome.aborted_by = result

        tasks = [asyncio.create_task(_one(c)) for c in chunks]
        try:
            gathered = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        for item in gathered:
            if isinstance(item, CancelledError):
                outcome.cancelled = True
            elif isinstance(item, BaseException):
                raise item
        return outcome
