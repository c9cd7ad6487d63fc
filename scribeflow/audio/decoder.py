"""Audio decoding and resampling (ffmpeg + numpy)."""

from __future__ import annotations

import asyncio
import io
import json
import logging
import os
import tempfile
import wave
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from scribeflow.config import AudioConfig
from scribeflow.error_codes import ErrorCode
from scribeflow.exceptions import DecodeError, ValidationError
from scribeflow.models.audio import PCMAudio
from scribeflow.utils.cancellation import CancellationToken
from scribeflow.utils.ffmpeg import resolve_ffmpeg_bin, resolve_ffprobe_bin

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamInfo:
    sample_rate: int
    channels: int
    codec: str | None = None
    duration_s: float | None = None


def validate_input(data: bytes, filename: str | None, cfg: AudioConfig) -> None:
    """Reject empty/oversized input and unsupported extensions before decoding."""
    if not data:
        raise ValidationError("input is empty", error_code=ErrorCode.INVALID_MEDIA)
    max_bytes = int(cfg.max_input_mb * 1024 * 1024)
    if len(data) > max_bytes:
        raise ValidationError(
            f"input is {len(data) / 1024 / 1024:.1f} MB, limit is {cfg.max_input_mb:.0f} MB",
            error_code=ErrorCode.FILE_TOO_LARGE,
        )
    if filename:
        ext = Path(filename).suffix.lower().lstrip(".")
        if ext not in cfg.supported_extensions:
            raise ValidationError(
                f"unsupported file extension: .{ext or '?'}",
                error_code=ErrorCode.UNSUPPORTED_FORMAT,
            )


async def _run_process(args: list[str], token: CancellationToken | None) -> tuple[int, bytes, bytes]:
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise DecodeError(
            f"binary not found: {args[0]}. Install ffmpeg and ensure it is in PATH "
            "(or set AUDIO_FFMPEG_BIN / AUDIO_FFPROBE_BIN)."
        ) from exc

    try:
        if token is not None:
            stdout, stderr = await token.run(process.communicate())
        else:
            stdout, stderr = await process.communicate()
    finally:
        if process.returncode is None:
            process.kill()
            await process.wait()
    return int(process.returncode or 0), stdout, stderr


async def probe(path: str, cfg: AudioConfig, token: CancellationToken | None = None) -> StreamInfo:
    ffmpeg_bin = resolve_ffmpeg_bin(cfg.ffmpeg_bin)
    ffprobe_bin = resolve_ffprobe_bin(cfg.ffprobe_bin, ffmpeg_bin)
    rc, stdout, stderr = await _run_process(
        [
            ffprobe_bin,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_streams",
            "-show_format",
            path,
        ],
        token,
    )
    if rc != 0:
        raise DecodeError(
            f"unsupported or corrupt media: {stderr.decode(errors='ignore').strip()[:500]}"
        )
    try:
        payload = json.loads(stdout.decode("utf-8", errors="replace") or "{}")
    except json.JSONDecodeError as exc:
        raise DecodeError(f"unreadable ffprobe output: {exc}") from exc

    streams = payload.get("streams") or []
    audio = [s for s in streams if isinstance(s, dict) and s.get("codec_type") == "audio"]
    if not audio:
        raise DecodeError("media contains no audio track", no_audio_track=True)

    first = audio[0]
    duration = first.get("duration") or (payload.get("format") or {}).get("duration")
    try:
        return StreamInfo(
            sample_rate=int(first.get("sample_rate") or 0),
            channels=int(first.get("channels") or 0),
            codec=first.get("codec_name"),
            duration_s=float(duration) if duration is not None else None,
        )
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"invalid audio stream metadata: {first!r}") from exc


async def decode(
    data: bytes,
    cfg: AudioConfig,
    *,
    token: CancellationToken | None = None,
    suffix: str = "",
) -> PCMAudio:
    """Decode container bytes to float32 PCM at the source rate and channel count.

    The temp file and any running ffmpeg/ffprobe process are released on
    every exit path, including cancellation.
    """
    fd, tmp_path = tempfile.mkstemp(prefix="scribeflow_", suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)

        info = await probe(tmp_path, cfg, token)
        if info.sample_rate <= 0 or info.channels <= 0:
            raise DecodeError(f"unsupported audio stream (codec={info.codec})")

        ffmpeg_bin = resolve_ffmpeg_bin(cfg.ffmpeg_bin)
        rc, stdout, stderr = await _run_process(
            [
                ffmpeg_bin,
                "-nostdin",
                "-v",
                "error",
                "-i",
                tmp_path,
                "-vn",
                "-map",
                "0:a:0",
                "-f",
                "f32le",
                "-acodec",
                "pcm_f32le",
                "-ac",
                str(info.channels),
                "-ar",
                str(info.sample_rate),
                "pipe:1",
            ],
            token,
        )
        if rc != 0:
            raise DecodeError(
                f"audio decode failed (codec={info.codec}, code={rc}): "
                f"{stderr.decode(errors='ignore').strip()[:500]}"
            )
    finally:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass

    samples = np.frombuffer(stdout, dtype=np.float32)
    usable = samples.size - samples.size % info.channels
    samples = samples[:usable].reshape(-1, info.channels)
    logger.info(
        "decoded audio (codec=%s, sample_rate=%d, channels=%d, duration_s=%.2f)",
        info.codec,
        info.sample_rate,
        info.channels,
        samples.shape[0] / float(info.sample_rate),
    )
    return PCMAudio(samples=samples, sample_rate=info.sample_rate, channels=info.channels)


def resample(pcm: PCMAudio, target_rate: int) -> PCMAudio:
    """Downmix to mono and linearly resample to `target_rate`."""
    mono = pcm.to_mono()
    if pcm.sample_rate == target_rate or mono.size == 0:
        return PCMAudio(samples=mono.reshape(-1, 1), sample_rate=target_rate, channels=1)

    duration = mono.size / float(pcm.sample_rate)
    out_len = int(round(duration * target_rate))
    src_t = np.arange(mono.size, dtype=np.float64) / pcm.sample_rate
    dst_t = np.arange(out_len, dtype=np.float64) / target_rate
    out = np.interp(dst_t, src_t, mono).astype(np.float32)
    return PCMAudio(samples=out.reshape(-1, 1), sample_rate=target_rate, channels=1)


def crop(pcm: PCMAudio, start_s: float | None, end_s: float | None) -> tuple[PCMAudio, float]:
    """Restrict to [start_s, end_s]; returns the cropped audio and its source offset."""
    if start_s is None and end_s is None:
        return pcm, 0.0
    duration = pcm.duration
    start = max(0.0, float(start_s or 0.0))
    end = duration if end_s is None else min(duration, float(end_s))
    if start >= duration:
        raise ValidationError(
            f"start {start:.2f}s is beyond media duration {duration:.2f}s",
            error_code=ErrorCode.INVALID_MEDIA,
        )
    if end <= start:
        raise ValidationError(
            f"invalid time range: end ({end:.2f}s) must be after start ({start:.2f}s)",
            error_code=ErrorCode.INVALID_MEDIA,
        )
    a = int(round(start * pcm.sample_rate))
    b = int(round(end * pcm.sample_rate))
    return PCMAudio(samples=pcm.samples[a:b], sample_rate=pcm.sample_rate, channels=pcm.channels), start


def to_int16(samples: np.ndarray) -> np.ndarray:
    clipped = np.clip(samples.reshape(-1), -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2")


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Encode mono float32 samples as a 16-bit PCM WAV file."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(int(sample_rate))
        wav.writeframes(to_int16(samples).tobytes())
    return buf.getvalue()
