from __future__ import annotations

import pytest

from scribeflow.exceptions import TaskActiveError
from scribeflow.models.task import (
    PostProcessingStep,
    TaskPhase,
    TaskStatus,
    TranscriptionTask,
)
from scribeflow.pipeline.progress import (
    ProgressTracker,
    make_preview,
    percentage,
    transcription_percentage,
)


def test_transcription_band_without_post_processing() -> None:
    values = [transcription_percentage(i, 5, post_processing=False) for i in range(6)]
    assert values[0] == 10
    assert values[-1] == 90
    assert values == sorted(values)
    assert all(v % 10 == 0 for v in values)


def test_transcription_band_with_post_processing_ends_at_70() -> None:
    assert transcription_percentage(0, 4, post_processing=True) == 10
    assert transcription_percentage(2, 4, post_processing=True) == 40
    assert transcription_percentage(4, 4, post_processing=True) == 70


def test_percentage_by_phase() -> None:
    task = TranscriptionTask(id="t", status=TaskStatus.PROCESSING, post_processing=True)
    assert percentage(task) == 0

    task.phase = TaskPhase.POST_PROCESSING
    task.post_processing_step = PostProcessingStep.STARTING
    assert percentage(task) == 70
    task.post_processing_step = PostProcessingStep.PROCESSING
    assert percentage(task) == 80
    task.post_processing_step = PostProcessingStep.DONE
    assert percentage(task) == 90

    task.phase = TaskPhase.SAVING
    assert percentage(task) == 90

    task.status = TaskStatus.PARTIAL
    assert percentage(task) == 100


def test_make_preview_truncates_and_flattens() -> None:
    assert make_preview("short\ntext") == "shorttext"
    long = "x" * 60
    assert make_preview(long) == "x" * 50 + "..."


def test_tracker_lifecycle_emits_monotonic_snapshots() -> None:
    tracker = ProgressTracker()
    seen: list[TranscriptionTask | None] = []
    tracker.subscribe(seen.append)
    assert seen == [None]

    tracker.start_task("t1", model="whisper-1", post_processing=False)
    tracker.set_total_chunks(3)
    for _ in range(3):
        tracker.mark_chunk_processed()
    tracker.set_phase(TaskPhase.SAVING)
    final = tracker.finish(TaskStatus.COMPLETED, text="hello world")

    snapshots = [s for s in seen if s is not None]
    percentages = [s.unified_percentage for s in snapshots]
    assert percentages == sorted(percentages)
    assert percentages[-1] == 100
    assert snapshots[-1].status == TaskStatus.COMPLETED
    assert final.preview == "hello world"
    assert final.completed_chunks == 3
    assert tracker.is_active is False


def test_tracker_total_chunks_is_fixed_once_set() -> None:
    tracker = ProgressTracker()
    tracker.start_task("t1")
    tracker.set_total_chunks(3)
    tracker.set_total_chunks(3)
    with pytest.raises(RuntimeError):
        tracker.set_total_chunks(4)


def test_tracker_completed_never_exceeds_total() -> None:
    tracker = ProgressTracker()
    tracker.start_task("t1")
    tracker.set_total_chunks(2)
    for _ in range(5):
        tracker.mark_chunk_processed()
    assert tracker.current is not None
    assert tracker.current.completed_chunks == 2


def test_tracker_rejects_second_active_task() -> None:
    tracker = ProgressTracker()
    tracker.start_task("t1")
    with pytest.raises(TaskActiveError):
        tracker.start_task("t2")
    tracker.finish(TaskStatus.CANCELLED)
    tracker.start_task("t2")
    assert tracker.current is not None
    assert tracker.current.id == "t2"


def test_tracker_history_is_bounded_and_newest_first() -> None:
    tracker = ProgressTracker(history_max_items=2)
    for i in range(3):
        tracker.start_task(f"t{i}")
        tracker.finish(TaskStatus.COMPLETED, text=f"text {i}")
    assert [t.id for t in tracker.history] == ["t2", "t1"]


def test_tracker_finish_requires_terminal_status() -> None:
    tracker = ProgressTracker()
    tracker.start_task("t1")
    with pytest.raises(ValueError):
        tracker.finish(TaskStatus.PROCESSING)


def test_listener_failure_does_not_break_tracker() -> None:
    tracker = ProgressTracker()

    def _boom(task: TranscriptionTask | None) -> None:  # noqa: ARG001
        raise RuntimeError("listener bug")

    seen: list[TranscriptionTask | None] = []
    tracker.subscribe(_boom)
    unsubscribe = tracker.subscribe(seen.append)
    tracker.start_task("t1")
    assert seen[-1] is not None and seen[-1].id == "t1"

    unsubscribe()
    count = len(seen)
    tracker.set_total_chunks(1)
    assert len(seen) == count


def test_listeners_receive_snapshots_not_live_state() -> None:
    tracker = ProgressTracker()
    seen: list[TranscriptionTask | None] = []
    tracker.subscribe(seen.append)
    tracker.start_task("t1")
    first = seen[-1]
    assert first is not None
    first.completed_chunks = 99
    tracker.set_total_chunks(2)
    assert tracker.current is not None
    assert tracker.current.completed_chunks == 0
