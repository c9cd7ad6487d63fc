"""Command-line entry point: transcribe a local media file."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path

from scribeflow.config import MODEL_PROFILES, Settings
from scribeflow.models.task import TranscriptionTask
from scribeflow.models.transcription import TranscriptionOptions, VADMode
from scribeflow.pipeline.engine import TranscriptionEngine
from scribeflow.utils.logging_setup import setup_logging


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Transcribe a local audio/video file with ScribeFlow.")
    parser.add_argument("media", help="Path to local video/audio file")
    parser.add_argument("--model", choices=sorted(MODEL_PROFILES), default=None, help="Transcription model")
    parser.add_argument("--language", default="auto", help="Language code (default: auto-detect)")
    parser.add_argument(
        "--vad",
        choices=[m.value for m in VADMode],
        default=None,
        help="VAD mode (default: VAD_MODE setting)",
    )
    parser.add_argument("--start-s", type=float, default=None, help="Only transcribe from this second")
    parser.add_argument("--end-s", type=float, default=None, help="Only transcribe up to this second")
    parser.add_argument("--post-process", action="store_true", help="Run the LLM proofreading pass")
    parser.add_argument("--output", default=None, help="Write the transcript here instead of stdout")
    parser.add_argument("--json", action="store_true", help="Print the structured result as JSON")
    parser.add_argument("--test-connection", action="store_true", help="Only check API credentials")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def _print_progress(task: TranscriptionTask | None) -> None:
    if task is None:
        return
    print(
        f"\r[{task.unified_percentage:3d}%] {task.status.value} "
        f"{task.completed_chunks}/{task.total_chunks} chunks",
        end="",
        file=sys.stderr,
        flush=True,
    )


async def _run(args: argparse.Namespace) -> int:
    settings = Settings()
    if args.verbose:
        settings.logging.level = "DEBUG"
    setup_logging(settings, force=args.verbose)

    engine = TranscriptionEngine(settings)
    if args.test_connection:
        ok = await engine.test_connection(args.model)
        print("connection ok" if ok else "connection failed")
        return 0 if ok else 1

    media_path = Path(args.media)
    if not media_path.exists():
        raise SystemExit(f"Media not found: {media_path}")

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, engine.cancel)
    except NotImplementedError:  # pragma: no cover
        pass

    engine.subscribe(_print_progress)
    options = TranscriptionOptions(
        language=args.language,
        model=args.model,
        vad_mode=VADMode(args.vad) if args.vad else None,
        start_s=args.start_s,
        end_s=args.end_s,
        filename=media_path.name,
        post_processing=True if args.post_process else None,
    )
    result = await engine.start_transcription(media_path.read_bytes(), options)
    print(file=sys.stderr)

    if args.json:
        output = json.dumps(result.to_dict(), ensure_ascii=False, indent=2)
    elif result.text:
        output = result.annotated_text()
    else:
        output = ""

    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
    elif output:
        print(output)

    if result.error_message and not args.json:
        print(f"{result.status.value}: {result.error_message}", file=sys.stderr)
    return 0 if result.text else 1


def main(argv: list[str] | None = None) -> int:
    return asyncio.run(_run(_parse_args(argv)))


if __name__ == "__main__":
    raise SystemExit(main())
