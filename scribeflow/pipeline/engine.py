"""Transcription engine: the single entry point for one task at a time."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from scribeflow.audio import decoder
from scribeflow.audio.segmenter import segment
from scribeflow.audio.trimmer import TrimmedAudio, trim_silence, untrimmed
from scribeflow.config import ModelProfile, Settings
from scribeflow.error_codes import ErrorCode
from scribeflow.exceptions import (
    CancelledError,
    NoSpeechError,
    ScribeFlowError,
    StageExecutionError,
    TaskActiveError,
    VADUnavailableError,
)
from scribeflow.models.audio import AudioChunk, PCMAudio
from scribeflow.models.task import PostProcessingStep, TaskPhase, TaskStatus
from scribeflow.models.transcription import (
    ChunkResult,
    MergeResult,
    TranscriptionOptions,
    TranscriptionResult,
    VADMode,
)
from scribeflow.pipeline.dispatcher import ChunkDispatcher, DispatchOutcome
from scribeflow.pipeline.merger import merge
from scribeflow.pipeline.postprocess import LLMPostProcessor, PostProcessor
from scribeflow.pipeline.progress import ProgressTracker, TaskListener
from scribeflow.providers.asr.base import ASRProvider
from scribeflow.providers.registry import get_asr_provider, get_llm_provider, get_vad_provider
from scribeflow.providers.vad.base import VADProvider, detect_speech_regions
from scribeflow.utils.cancellation import CancellationToken
from scribeflow.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

DecodeFn = Callable[..., Awaitable[PCMAudio]]
ProviderFactory = Callable[[ModelProfile], ASRProvider]
VADFactory = Callable[[Mapping[str, Any]], VADProvider | None]
PostProcessorFactory = Callable[[], PostProcessor]


@dataclass
class _TaskRun:
    task_id: str
    model: str
    options: TranscriptionOptions
    post_processing: bool
    audio_bytes: bytes = field(default=b"", repr=False)
    chunks: list[AudioChunk] = field(default_factory=list)
    results: list[ChunkResult] = field(default_factory=list)


def _infer_error_code(exc: BaseException) -> ErrorCode | str:
    if isinstance(exc, ScribeFlowError) and exc.error_code is not None:
        return exc.error_code
    return ErrorCode.UNKNOWN


def _infer_error_message(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    return str(message or exc or exc.__class__.__name__)


class TranscriptionEngine:
    """Runs decode → VAD → segment → dispatch → merge → post-process.

    `start_transcription` never raises for task failures: every terminal
    state is reported as a `TranscriptionResult`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        tracker: ProgressTracker | None = None,
        provider_factory: ProviderFactory | None = None,
        vad_factory: VADFactory | None = None,
        post_processor_factory: PostProcessorFactory | None = None,
        decode: DecodeFn | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.tracker = tracker or ProgressTracker(
            history_max_items=self.settings.history_max_items,
            preview_chars=self.settings.preview_chars,
        )
        self.retry_policy = RetryPolicy.from_config(self.settings.retry)
        self._provider_factory = provider_factory or self._default_provider
        self._vad_factory = vad_factory or get_vad_provider
        self._post_processor_factory = post_processor_factory or self._default_post_processor
        self._decode = decode or decoder.decode
        self._token: CancellationToken | None = None

    def _default_provider(self, profile: ModelProfile) -> ASRProvider:
        return get_asr_provider(self.settings.asr.model_dump(), profile)

    def _default_post_processor(self) -> PostProcessor:
        cfg = self.settings.post_processing
        llm = get_llm_provider(cfg.model_dump(), self.retry_policy)
        return LLMPostProcessor(llm, temperature=cfg.temperature)

    @property
    def is_running(self) -> bool:
        return self.tracker.is_active

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        return self.tracker.subscribe(listener)

    def cancel(self, reason: str = "cancelled by user") -> bool:
        """Signal the active task's cancellation token. Returns False when idle."""
        token = self._token
        if token is None or token.cancelled:
            return False
        logger.info("cancel requested (reason=%s)", reason)
        token.cancel(reason)
        return True

    async def test_connection(self, model: str | None = None) -> bool:
        provider = self._provider_factory(self.settings.profile_for(model))
        try:
            return await provider.test_connection()
        finally:
            await provider.close()

    async def start_transcription(
        self, audio_bytes: bytes, options: TranscriptionOptions | None = None
    ) -> TranscriptionResult:
        options = options or TranscriptionOptions()
        model = options.model or self.settings.asr.model
        post_processing = (
            self.settings.post_processing.enabled
            if options.post_processing is None
            else bool(options.post_processing)
        )
        try:
            task = self.tracker.start_task(
                model=model, language=options.language, post_processing=post_processing
            )
        except TaskActiveError as exc:
            logger.warning("start rejected: %s", exc)
            return TranscriptionResult(
                task_id="",
                status=TaskStatus.ERROR,
                model=model,
                error_code=exc.error_code,
                error_message=str(exc),
            )

        run = _TaskRun(
            task_id=task.id,
            model=model,
            options=options,
            post_processing=post_processing,
            audio_bytes=audio_bytes,
        )
        self._token = options.token
        logger.info(
            "task start (task_id=%s, model=%s, language=%s, bytes=%d)",
            task.id,
            model,
            options.language,
            len(audio_bytes),
        )
        try:
            return await self._run(run)
        except asyncio.CancelledError:
            # The caller's coroutine was cancelled: close the task record, then propagate.
            if self.tracker.is_active:
                self.tracker.finish(TaskStatus.CANCELLED, error_message="aborted")
            raise
        except Exception as exc:
            return self._finish_with_failure(run, exc)
        finally:
            self._token = None

    async def _run(self, run: _TaskRun) -> TranscriptionResult:
        token = run.options.token
        profile = self.settings.profile_for(run.model)

        provider = self._provider_factory(profile)
        try:
            run.chunks = await self._prepare_chunks(run, provider, profile, token)
            self.tracker.set_total_chunks(len(run.chunks))
            outcome = await self._dispatch(run, provider, profile, token)
        finally:
            await provider.close()

        merged = merge(run.results, total_chunks=len(run.chunks), chunks=run.chunks)
        status = self._resolve_status(merged, outcome)

        error_code: ErrorCode | str | None = None
        error_message: str | None = None
        if status == TaskStatus.ERROR:
            first = outcome.aborted_by or next((r for r in run.results if not r.success), None)
            error_code = first.error_code if first is not None else ErrorCode.UNKNOWN
            error_message = first.error if first is not None else "no chunk succeeded"
        elif outcome.cancelled:
            # Cancelled after some chunks finished: their text is kept as a partial result.
            error_code = ErrorCode.CANCELLED
            error_message = token.reason
        elif outcome.aborted_by is not None:
            error_code = outcome.aborted_by.error_code
            error_message = outcome.aborted_by.error

        text = merged.text
        if (
            run.post_processing
            and text.strip()
            and not token.cancelled
            and status in (TaskStatus.COMPLETED, TaskStatus.PARTIAL)
        ):
            text, pp_error = await self._post_process(text, run.options.language, token)
            if pp_error is not None and error_code is None:
                error_code = pp_error.error_code
                error_message = pp_error.message

        self.tracker.set_phase(TaskPhase.SAVING)
        self.tracker.finish(status, text=text, error_message=error_message)
        return TranscriptionResult(
            task_id=run.task_id,
            status=status,
            text=text,
            raw_text=merged.text,
            is_partial=status == TaskStatus.PARTIAL,
            failed_chunks=merged.failed_chunks,
            chunk_results=sorted(run.results, key=lambda r: r.id),
            total_chunks=merged.total,
            model=run.model,
            error_code=error_code,
            error_message=error_message,
        )

    async def _prepare_chunks(
        self,
        run: _TaskRun,
        provider: ASRProvider,
        profile: ModelProfile,
        token: CancellationToken,
    ) -> list[AudioChunk]:
        """Decode, trim and segment. Every failure here happens before any network call."""
        options = run.options
        audio_cfg = self.settings.audio

        decoder.validate_input(run.audio_bytes, options.filename, audio_cfg)
        self.tracker.set_phase(TaskPhase.PREPARING, "decoding")
        suffix = Path(options.filename).suffix if options.filename else ""
        pcm = await self._decode(run.audio_bytes, audio_cfg, token=token, suffix=suffix)
        token.raise_if_cancelled()
        pcm, offset = decoder.crop(pcm, options.start_s, options.end_s)
        mono = decoder.resample(pcm, audio_cfg.target_sample_rate)

        self.tracker.set_phase(TaskPhase.PREPARING, "detecting speech")
        timeline = await self._apply_vad(mono, offset, options.vad_mode, token)
        if timeline.duration <= 0:
            raise NoSpeechError("no speech detected")

        chunks = segment(
            timeline,
            profile.chunk_duration_s,
            profile.overlap_s,
            search_window_s=self.settings.chunking.boundary_search_s,
            min_chunk_s=self.settings.chunking.min_chunk_s,
        )
        if not chunks:
            raise NoSpeechError("no speech detected")
        for chunk in chunks:
            provider.limits.validate(chunk)
        return chunks

    async def _apply_vad(
        self,
        mono: PCMAudio,
        offset: float,
        mode: VADMode | None,
        token: CancellationToken,
    ) -> TrimmedAudio:
        vad_cfg = self.settings.vad
        mode = mode or VADMode(vad_cfg.mode)
        samples = mono.samples.reshape(-1)
        sr = mono.sample_rate
        if mode == VADMode.OFF:
            return untrimmed(samples, sr, offset=offset)

        provider = self._vad_factory({**vad_cfg.model_dump(), "mode": mode.value, "sample_rate": sr})
        if provider is None:
            return untrimmed(samples, sr, offset=offset)
        try:
            if not provider.trims_locally:
                logger.info("vad delegated to provider (mode=%s)", mode.value)
                return untrimmed(samples, sr, offset=offset)
            try:
                provider.load()
            except VADUnavailableError as exc:
                logger.warning("vad unavailable, continuing without vad: %s", exc)
                return untrimmed(samples, sr, offset=offset)
            regions = await detect_speech_regions(samples, sr, provider, vad_cfg, token=token)
        finally:
            await provider.close()

        return trim_silence(
            samples,
            sr,
            regions,
            offset=offset,
            drop_interior_silence=vad_cfg.drop_interior_silence,
            min_interior_silence_s=vad_cfg.min_interior_silence_s,
            min_boundary_gap_s=vad_cfg.min_boundary_gap_s,
        )

    async def _dispatch(
        self,
        run: _TaskRun,
        provider: ASRProvider,
        profile: ModelProfile,
        token: CancellationToken,
    ) -> DispatchOutcome:
        def _on_chunk_done(result: ChunkResult) -> None:
            run.results.append(result)
            self.tracker.mark_chunk_processed()

        dispatcher = ChunkDispatcher(
            provider,
            self.retry_policy,
            context_chars=profile.context_chars,
            max_concurrency=profile.max_concurrent_chunks,
            on_chunk_done=_on_chunk_done,
        )
        return await dispatcher.dispatch(run.chunks, language=run.options.language, token=token)

    @staticmethod
    def _resolve_status(merged: MergeResult, outcome: DispatchOutcome) -> TaskStatus:
        if merged.total > 0 and merged.succeeded == merged.total:
            return TaskStatus.COMPLETED
        if merged.succeeded > 0:
            return TaskStatus.PARTIAL
        if outcome.cancelled:
            return TaskStatus.CANCELLED
        return TaskStatus.ERROR

    async def _post_process(
        self, text: str, language: str, token: CancellationToken
    ) -> tuple[str, StageExecutionError | None]:
        """Run the post-processor; on failure keep `text` and report the error."""
        processor: PostProcessor | None = None
        try:
            self.tracker.set_post_processing_step(PostProcessingStep.STARTING)
            processor = self._post_processor_factory()
            self.tracker.set_post_processing_step(PostProcessingStep.PROCESSING)
            corrected = await processor.process(text, language=language, token=token)
            self.tracker.set_post_processing_step(PostProcessingStep.DONE)
            return (corrected.strip() or text), None
        except ScribeFlowError as exc:
            logger.warning("post-processing failed, keeping transcript: %s", exc)
            code = (
                ErrorCode.CANCELLED
                if isinstance(exc, CancelledError)
                else ErrorCode.POST_PROCESSING_FAILED
            )
            return text, StageExecutionError(
                "post_processing", _infer_error_message(exc), error_code=code
            )
        finally:
            if processor is not None:
                await processor.close()

    def _finish_with_failure(self, run: _TaskRun, exc: BaseException) -> TranscriptionResult:
        if isinstance(exc, ScribeFlowError):
            logger.warning("task failed (task_id=%s): %s", run.task_id, exc)
        else:
            logger.exception("task failed unexpectedly (task_id=%s)", run.task_id, exc_info=exc)

        merged = (
            merge(run.results, total_chunks=len(run.chunks), chunks=run.chunks)
            if run.chunks
            else None
        )
        if merged is not None and merged.succeeded > 0:
            status = TaskStatus.PARTIAL if merged.is_partial else TaskStatus.COMPLETED
        elif isinstance(exc, CancelledError):
            status = TaskStatus.CANCELLED
        else:
            status = TaskStatus.ERROR

        text = merged.text if merged is not None and merged.succeeded > 0 else ""
        message = _infer_error_message(exc)
        if self.tracker.is_active:
            self.tracker.finish(status, text=text, error_message=message)
        return TranscriptionResult(
            task_id=run.task_id,
            status=status,
            text=text,
            raw_text=text,
            is_partial=status == TaskStatus.PARTIAL,
            failed_chunks=merged.failed_chunks if merged is not None else [],
            chunk_results=sorted(run.results, key=lambda r: r.id),
            total_chunks=len(run.chunks),
            model=run.model,
            error_code=_infer_error_code(exc),
            error_message=message,
        )
