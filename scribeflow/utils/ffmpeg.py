"""FFmpeg/ffprobe binary resolution helpers.

Order: explicit path, then `PATH`, then the ffmpeg bundled with
`imageio-ffmpeg`. The bundle ships no ffprobe, so ffprobe is looked up next
to the resolved ffmpeg instead.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def _find_binary(name: str) -> str | None:
    if Path(name).exists():
        return name
    return shutil.which(name)


def resolve_ffmpeg_bin(ffmpeg_bin: str = "ffmpeg") -> str:
    name = (ffmpeg_bin or "ffmpeg").strip()
    found = _find_binary(name)
    if found:
        return found

    try:
        import imageio_ffmpeg

        return str(imageio_ffmpeg.get_ffmpeg_exe())
    except Exception as exc:
        logger.warning("bundled ffmpeg unavailable (%s); using %r as-is", exc, name)
        return name


def resolve_ffprobe_bin(ffprobe_bin: str = "ffprobe", ffmpeg_bin: str | None = None) -> str:
    name = (ffprobe_bin or "ffprobe").strip()
    found = _find_binary(name)
    if found:
        return found

    if ffmpeg_bin:
        sibling = Path(ffmpeg_bin).with_name("ffprobe" + Path(ffmpeg_bin).suffix)
        if sibling.exists():
            return str(sibling)

    logger.warning("ffprobe not found; using %r as-is", name)
    return name
