from __future__ import annotations

from scribeflow.models.audio import AudioChunk
from scribeflow.models.task import TaskStatus
from scribeflow.models.transcription import ChunkResult, TranscriptionResult
from scribeflow.pipeline.merger import NOT_PROCESSED, format_partial_text, merge


def _ok(chunk_id: int, text: str) -> ChunkResult:
    return ChunkResult(
        id=chunk_id,
        text=text,
        start_time=chunk_id * 270.0,
        end_time=chunk_id * 270.0 + 300.0,
        success=True,
    )


def _failed(chunk_id: int, error: str = "HTTP 500") -> ChunkResult:
    return ChunkResult(
        id=chunk_id,
        text="",
        start_time=chunk_id * 270.0,
        end_time=chunk_id * 270.0 + 300.0,
        success=False,
        error=error,
    )


def test_merge_orders_by_id_regardless_of_completion_order() -> None:
    merged = merge([_ok(2, "three"), _ok(0, "one"), _ok(1, "two")], total_chunks=3)
    assert merged.text == "one\n\ntwo\n\nthree"
    assert merged.is_partial is False
    assert merged.failed_chunks == []
    assert merged.succeeded == 3


def test_merge_is_idempotent() -> None:
    results = [_ok(1, "b"), _ok(0, "a")]
    assert merge(results, total_chunks=2) == merge(results, total_chunks=2)


def test_merge_partial_lists_failed_chunk_with_range() -> None:
    merged = merge([_ok(0, "A"), _failed(1), _ok(2, "C")], total_chunks=3)
    assert merged.text == "A\n\nC"
    assert merged.is_partial is True
    assert [c.id for c in merged.failed_chunks] == [1]
    assert merged.failed_chunks[0].error == "HTTP 500"
    assert merged.failed_chunks[0].start_time == 270.0
    assert merged.succeeded == 2
    assert merged.total == 3


def test_merge_reports_unprocessed_chunks() -> None:
    chunks = [
        AudioChunk(id=0, start_time=0.0, end_time=300.0, data=b""),
        AudioChunk(id=1, start_time=270.0, end_time=600.0, data=b""),
        AudioChunk(id=2, start_time=570.0, end_time=720.0, data=b""),
    ]
    merged = merge([_ok(0, "A")], total_chunks=3, chunks=chunks)
    assert [c.id for c in merged.failed_chunks] == [1, 2]
    assert all(c.error == NOT_PROCESSED for c in merged.failed_chunks)
    assert merged.failed_chunks[1].start_time == 570.0
    assert merged.failed_chunks[1].end_time == 720.0


def test_merge_skips_empty_successful_text() -> None:
    merged = merge([_ok(0, "A"), _ok(1, "   "), _ok(2, "C")], total_chunks=3)
    assert merged.text == "A\n\nC"
    assert merged.is_partial is False


def test_merge_with_no_results_is_empty() -> None:
    merged = merge([], total_chunks=0)
    assert merged.text == ""
    assert merged.is_partial is False
    assert merged.total == 0


def test_annotated_text_lists_missing_ranges() -> None:
    merged = merge([_ok(0, "A"), _failed(1, "timeout"), _ok(2, "C")], total_chunks=3)
    result = TranscriptionResult(
        task_id="t1",
        status=TaskStatus.PARTIAL,
        text=merged.text,
        is_partial=merged.is_partial,
        failed_chunks=merged.failed_chunks,
        total_chunks=merged.total,
    )
    annotated = result.annotated_text()
    assert annotated.startswith("[Partial transcription: 2/3 chunks]\n")
    assert "- missing chunk 1 (04:30-09:30): timeout" in annotated
    assert annotated.endswith("A\n\nC")
    assert result.failed_chunk_ids == [1]
    assert result.to_dict()["failed_chunks"][0]["id"] == 1


def test_format_partial_text_marks_missing_chunks() -> None:
    chunks = [
        AudioChunk(id=i, start_time=i * 270.0, end_time=i * 270.0 + 300.0, data=b"")
        for i in range(3)
    ]
    merged = merge([_ok(0, "A")], total_chunks=3, chunks=chunks)

    assert format_partial_text(merged) == (
        "[Partial transcription: 1/3 chunks]\n"
        f"- missing chunk 1 (04:30-09:30): {NOT_PROCESSED}\n"
        f"- missing chunk 2 (09:00-14:00): {NOT_PROCESSED}\n"
        "\n"
        "A"
    )
    assert format_partial_text(merged) == format_partial_text(merged)


def test_format_partial_text_leaves_complete_merge_untouched() -> None:
    merged = merge([_ok(1, "B"), _ok(0, "A")], total_chunks=2)
    assert format_partial_text(merged) == "A\n\nB"
