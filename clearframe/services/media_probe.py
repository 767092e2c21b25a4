"""
Media probe - Reads the intrinsic decoded dimensions of an uploaded video.
"""

import asyncio
import json
import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Optional

from clearframe.config import get_settings

logger = logging.getLogger(__name__)


class MediaProbeError(Exception):
    """Raised when an upload cannot be probed as a video."""
    pass


@dataclass
class VideoInfo:
    """Video stream properties needed for region mapping."""

    width: int
    height: int
    duration_seconds: float = 0.0
    codec: Optional[str] = None


def parse_ffprobe_output(raw: bytes) -> VideoInfo:
    """
    Pick the first video stream out of `ffprobe -print_format json` output.

    Raises:
        MediaProbeError: If there is no video stream with usable dimensions
    """
    try:
        info = json.loads(raw.decode())
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MediaProbeError(f"Unreadable ffprobe output: {e}") from e

    video_stream = None
    for stream in info.get("streams", []):
        if stream.get("codec_type") == "video":
            video_stream = stream
            break

    if video_stream is None:
        raise MediaProbeError("No video stream found")

    try:
        width = int(video_stream.get("width", 0))
        height = int(video_stream.get("height", 0))
    except (TypeError, ValueError) as e:
        raise MediaProbeError(f"Invalid video dimensions: {e}") from e
    if width <= 0 or height <= 0:
        raise MediaProbeError(f"Invalid video dimensions: {width}x{height}")

    format_info = info.get("format", {})
    try:
        duration = float(format_info.get("duration", 0) or 0)
    except ValueError:
        duration = 0.0

    return VideoInfo(
        width=width,
        height=height,
        duration_seconds=duration,
        codec=video_stream.get("codec_name"),
    )


async def probe_video(data: bytes, suffix: str = ".mp4") -> VideoInfo:
    """
    Probe raw video bytes with ffprobe.

    The bytes are written to a temporary file since ffprobe needs a seekable input.
    """
    settings = get_settings()
    fd, path = tempfile.mkstemp(suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)

        cmd = [
            settings.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            path,
        ]

        # Use run_in_executor for Windows compatibility
        loop = asyncio.get_event_loop()
        try:
            result = await loop.run_in_executor(
                None,
                lambda: subprocess.run(
                    cmd, capture_output=True, timeout=settings.probe_timeout_seconds
                ),
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise MediaProbeError(f"ffprobe could not run: {e}") from e

        if result.returncode != 0:
            raise MediaProbeError(
                f"ffprobe failed: {result.stderr.decode(errors='replace')[:200]}"
            )

        video_info = parse_ffprobe_output(result.stdout)
        logger.info(f"Probed video: {video_info.width}x{video_info.height}, {video_info.duration_seconds:.1f}s")
        return video_info
    finally:
        if os.path.exists(path):
            os.remove(path)
