from __future__ import annotations

from scribeflow.pipeline.cleaning import clean_chunk_text, compress_tail_repeats, strip_prompt_echo
from scribeflow.pipeline.continuity import build_continuation_context, split_sentences
from scribeflow.pipeline.postprocess import split_for_llm


def test_split_sentences_round_trips_text() -> None:
    text = "First one. Second one! 三つ目。Tail without stop"
    parts = split_sentences(text)
    assert "".join(parts) == text
    assert len(parts) == 4


def test_continuation_context_keeps_whole_trailing_sentences() -> None:
    text = "Alpha sentence here. Beta sentence here. Gamma here."
    assert build_continuation_context(text, 35) == "Beta sentence here. Gamma here."
    assert build_continuation_context(text, 20) == "Gamma here."
    assert build_continuation_context(text, 500) == text
    assert build_continuation_context(text, 0) == ""


def test_continuation_context_falls_back_to_raw_tail() -> None:
    text = "a" * 100
    assert build_continuation_context(text, 10) == "a" * 10


def test_compress_tail_repeats_collapses_loops() -> None:
    text = "Intro. Thanks for watching. Thanks for watching. Thanks for watching."
    assert compress_tail_repeats(text) == "Intro. Thanks for watching."


def test_compress_tail_repeats_leaves_normal_text() -> None:
    text = "One. Two. Three. Four."
    assert compress_tail_repeats(text) == text


def test_strip_prompt_echo_removes_instruction_lines_and_context() -> None:
    raw = "<TRANSCRIPT>\nWe arrived late. And then we left.\n</TRANSCRIPT>"
    assert strip_prompt_echo(raw, "We arrived late.") == "And then we left."


def test_clean_chunk_text_combines_both() -> None:
    raw = "Output format:\nHello. Bye. Bye. Bye."
    assert clean_chunk_text(raw) == "Hello. Bye."


def test_split_for_llm_respects_limit_and_paragraphs() -> None:
    text = "Para one is short.\n\n" + "Sentence. " * 30 + "\n\nPara three."
    pieces = split_for_llm(text, 80)
    assert all(len(p) <= 80 for p in pieces)
    assert pieces[0].startswith("Para one is short.")
    assert pieces[-1].endswith("Para three.")
