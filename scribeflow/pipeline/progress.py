"""Unified progress model and task tracker.

`percentage()` maps task state onto one 0..100 scale:

    preparing        0
    transcribing     10 .. 70 (10 .. 90 without post-processing),
                     rounded to 10-point steps
    post-processing  70 / 80 / 90 (starting / processing / done)
    saving           90
    terminal         100
"""

from __future__ import annotations

import logging
import math
import uuid
from collections import deque
from collections.abc import Callable

from scribeflow.exceptions import TaskActiveError
from scribeflow.models.task import (
    PostProcessingStep,
    TaskPhase,
    TaskStatus,
    TranscriptionTask,
    utcnow,
)

logger = logging.getLogger(__name__)

PREPARATION_END = 10
TRANSCRIPTION_END_WITH_POST = 70
TRANSCRIPTION_END = 90
SAVING = 90
COMPLETE = 100

_POST_PROCESSING_PROGRESS = {
    PostProcessingStep.STARTING: 70,
    PostProcessingStep.PROCESSING: 80,
    PostProcessingStep.DONE: 90,
}

TaskListener = Callable[[TranscriptionTask | None], None]


def _round_to_step(value: float, step: int = 10) -> int:
    return int(math.floor(value / step + 0.5) * step)


def transcription_percentage(completed: int, total: int, *, post_processing: bool) -> int:
    end = TRANSCRIPTION_END_WITH_POST if post_processing else TRANSCRIPTION_END
    if total <= 0:
        return PREPARATION_END
    ratio = min(max(completed, 0) / total, 1.0)
    band = end - PREPARATION_END
    return min(end, _round_to_step(PREPARATION_END + math.floor(ratio * band)))


def percentage(task: TranscriptionTask) -> int:
    """Pure function of task state; never exceeds 100."""
    if task.status.is_terminal:
        return COMPLETE
    match task.phase:
        case TaskPhase.PREPARING:
            return 0
        case TaskPhase.TRANSCRIBING:
            return transcription_percentage(
                task.completed_chunks, task.total_chunks, post_processing=task.post_processing
            )
        case TaskPhase.POST_PROCESSING:
            step = task.post_processing_step or PostProcessingStep.STARTING
            return _POST_PROCESSING_PROGRESS[step]
        case TaskPhase.SAVING:
            return SAVING
        case _:
            return COMPLETE


def make_preview(text: str, limit: int = 50) -> str:
    flat = (text or "").replace("\r", "").replace("\n", "")
    if len(flat) <= limit:
        return flat
    return flat[:limit] + "..."


class ProgressTracker:
    """Owns the current task record and notifies subscribed listeners.

    Only the engine mutates task state; listeners receive snapshots.
    """

    def __init__(self, *, history_max_items: int = 50, preview_chars: int = 50) -> None:
        self._task: TranscriptionTask | None = None
        self._history: deque[TranscriptionTask] = deque(maxlen=max(1, history_max_items))
        self._listeners: list[TaskListener] = []
        self._preview_chars = preview_chars

    @property
    def current(self) -> TranscriptionTask | None:
        return self._task.snapshot() if self._task is not None else None

    @property
    def history(self) -> list[TranscriptionTask]:
        """Finished tasks, newest first."""
        return [t.snapshot() for t in self._history]

    @property
    def is_active(self) -> bool:
        return self._task is not None and self._task.status == TaskStatus.PROCESSING

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        """Register `listener`, call it now with the current state, return an unsubscribe."""
        self._listeners.append(listener)
        self._call(listener, self.current)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def start_task(
        self,
        task_id: str | None = None,
        *,
        model: str | None = None,
        language: str | None = None,
        post_processing: bool = False,
    ) -> TranscriptionTask:
        if self.is_active:
            assert self._task is not None
            raise TaskActiveError(f"task {self._task.id} is still processing")
        self._task = TranscriptionTask(
            id=task_id or uuid.uuid4().hex,
            status=TaskStatus.PROCESSING,
            phase=TaskPhase.PREPARING,
            post_processing=post_processing,
            start_time=utcnow(),
            model=model,
            language=language,
        )
        self._emit()
        return self._task.snapshot()

    def _require_active(self) -> TranscriptionTask:
        if self._task is None or self._task.status != TaskStatus.PROCESSING:
            raise RuntimeError("no active task")
        return self._task

    def set_phase(self, phase: TaskPhase, message: str | None = None) -> None:
        task = self._require_active()
        task.phase = phase
        if message is not None:
            task.message = message
        self._emit()

    def set_total_chunks(self, total: int) -> None:
        task = self._require_active()
        if task.total_chunks and task.total_chunks != total:
            raise RuntimeError(
                f"chunk count already fixed at {task.total_chunks} (got {total})"
            )
        task.total_chunks = int(total)
        task.phase = TaskPhase.TRANSCRIBING
        self._emit()

    def mark_chunk_processed(self) -> None:
        task = self._require_active()
        task.completed_chunks = min(task.total_chunks, task.completed_chunks + 1)
        self._emit()

    def set_post_processing_step(self, step: PostProcessingStep) -> None:
        task = self._require_active()
        task.phase = TaskPhase.POST_PROCESSING
        task.post_processing_step = step
        self._emit()

    def finish(
        self,
        status: TaskStatus,
        *,
        text: str = "",
        error_message: str | None = None,
    ) -> TranscriptionTask:
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        task = self._require_active()
        task.status = status
        task.phase = TaskPhase.DONE
        task.end_time = utcnow()
        task.preview = make_preview(text, self._preview_chars)
        task.error_message = error_message
        self._emit()
        self._history.appendleft(task.snapshot())
        logger.info(
            "task finished (task_id=%s, status=%s, chunks=%d/%d)",
            task.id,
            status.value,
            task.completed_chunks,
            task.total_chunks,
        )
        return task.snapshot()

    def _emit(self) -> None:
        task = self._task
        if task is None:
            return
        pct = min(COMPLETE, percentage(task))
        # Monotonic within a task.
        task.unified_percentage = max(task.unified_percentage, pct)
        snapshot = task.snapshot()
        for listener in list(self._listeners):
            self._call(listener, snapshot)

    @staticmethod
    def _call(listener: TaskListener, snapshot: TranscriptionTask | None) -> None:
        try:
            listener(snapshot)
        except Exception:
            logger.exception("progress listener failed")
