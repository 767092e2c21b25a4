"""
Transcode Engine - Long-lived FFmpeg adapter shared by every editing session.

The orchestrator only depends on the TranscodeEngine protocol:
load, write_file, exec, read_file, delete_file, a progress subscription
and an exclusive() guard. FFmpegEngine implements it on top of the ffmpeg/ffprobe
binaries with a working directory as its file storage.

Lifecycle: UNLOADED -> LOADING -> READY | LOAD_FAILED (load() may be retried).
"""

import asyncio
import logging
import os
import shutil
import subprocess
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Callable, Optional, Protocol, Sequence

from clearframe.config import get_settings

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class EngineState(str, Enum):
    """Initialization state of the transcoding engine."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    LOAD_FAILED = "load_failed"


class EngineError(Exception):
    """Base exception for transcoding engine failures."""
    pass


class EngineLoadError(EngineError):
    """Raised when the engine binaries cannot be found or initialized."""
    pass


class EngineExecError(EngineError):
    """Raised when an ffmpeg invocation exits with a non-zero status."""
    pass


class TranscodeEngine(Protocol):
    """Capability set the orchestrator needs from a transcoding engine."""

    @property
    def state(self) -> EngineState:
        ...

    async def load(self) -> None:
        ...

    def on_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        """Subscribe to fractional progress (0.0-1.0). Returns an unsubscribe callable."""
        ...

    async def write_file(self, name: str, data: bytes) -> None:
        ...

    async def exec(self, args: Sequence[str]) -> None:
        ...

    async def read_file(self, name: str) -> bytes:
        ...

    async def delete_file(self, name: str) -> None:
        """Remove a staged file. Missing files are ignored."""
        ...

    def exclusive(self):
        """Async context manager serializing job use of the engine."""
        ...


class FFmpegEngine:
    """
    FFmpeg-backed transcoding engine.

    Features:
    - Explicit load lifecycle with retry after failure
    - Staged files kept in a private working directory
    - Fractional progress parsed from `-progress pipe:1`
    - asyncio.Lock so only one job drives ffmpeg at a time
    """

    def __init__(
        self,
        working_directory: Optional[str] = None,
        ffmpeg_path: Optional[str] = None,
        ffprobe_path: Optional[str] = None,
    ):
        settings = get_settings()
        self.working_directory = working_directory or os.path.join(
            settings.workspace_directory, "engine"
        )
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.ffprobe_path = ffprobe_path or settings.ffprobe_path

        self._state = EngineState.UNLOADED
        self._ffmpeg: Optional[str] = None
        self._ffprobe: Optional[str] = None
        self._listeners: list[ProgressCallback] = []
        self._lock = asyncio.Lock()
        self._load_lock = asyncio.Lock()
        self.last_error: Optional[str] = None

    @property
    def state(self) -> EngineState:
        return self._state

    def is_ready(self) -> bool:
        return self._state == EngineState.READY

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """
        Resolve and verify the ffmpeg/ffprobe binaries.

        Concurrent callers share one attempt: whoever waits on the load lock
        returns as soon as the first caller has made the engine ready.

        Raises:
            EngineLoadError: If a binary is missing or fails to start
        """
        async with self._load_lock:
            if self._state == EngineState.READY:
                return
            await self._load()

    async def _load(self) -> None:
        self._state = EngineState.LOADING
        logger.info("Loading FFmpeg engine...")

        try:
            ffmpeg = shutil.which(self.ffmpeg_path)
            ffprobe = shutil.which(self.ffprobe_path)
            if not ffmpeg:
                raise EngineLoadError(f"ffmpeg not found: {self.ffmpeg_path}")
            if not ffprobe:
                raise EngineLoadError(f"ffprobe not found: {self.ffprobe_path}")

            returncode, _, stderr = await self._run_sync([ffmpeg, "-hide_banner", "-version"])
            if returncode != 0:
                raise EngineLoadError(
                    f"ffmpeg failed to start: {stderr.decode(errors='replace')[:200]}"
                )

            os.makedirs(self.working_directory, exist_ok=True)
        except EngineLoadError as e:
            self._state = EngineState.LOAD_FAILED
            self.last_error = str(e)
            logger.error(f"FFmpeg engine failed to load: {e}")
            raise
        except OSError as e:
            self._state = EngineState.LOAD_FAILED
            self.last_error = str(e)
            logger.error(f"FFmpeg engine failed to load: {e}")
            raise EngineLoadError(str(e)) from e

        self._ffmpeg = ffmpeg
        self._ffprobe = ffprobe
        self.last_error = None
        self._state = EngineState.READY
        logger.info(f"FFmpeg engine ready (ffmpeg={ffmpeg}, workdir={self.working_directory})")

    def close(self) -> None:
        """Remove the working directory and return to UNLOADED."""
        if os.path.isdir(self.working_directory):
            try:
                shutil.rmtree(self.working_directory)
            except OSError as e:
                logger.warning(f"Failed to clean up engine workdir: {e}")
        self._state = EngineState.UNLOADED

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._lock:
            yield

    # ------------------------------------------------------------------
    # Progress subscription
    # ------------------------------------------------------------------

    def on_progress(self, callback: ProgressCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _emit_progress(self, fraction: float) -> None:
        for listener in list(self._listeners):
            try:
                listener(fraction)
            except Exception as e:
                logger.warning(f"Progress listener failed: {e}")

    # ------------------------------------------------------------------
    # Working storage
    # ------------------------------------------------------------------

    def _path_for(self, name: str) -> str:
        if not name or os.path.basename(name) != name or name in (".", ".."):
            raise ValueError(f"Invalid engine file name: {name!r}")
        return os.path.join(self.working_directory, name)

    def _require_ready(self) -> None:
        if self._state != EngineState.READY:
            raise EngineError(f"Engine not ready (state={self._state.value})")

    async def write_file(self, name: str, data: bytes) -> None:
        self._require_ready()
        path = self._path_for(name)
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, _write_bytes, path, data)
        logger.debug(f"Staged {name} ({len(data)} bytes)")

    async def read_file(self, name: str) -> bytes:
        self._require_ready()
        path = self._path_for(name)
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, _read_bytes, path)

    async def delete_file(self, name: str) -> None:
        path = self._path_for(name)
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, _remove_file, path)
        logger.debug(f"Removed {name}")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def exec(self, args: Sequence[str]) -> None:
        """
        Run ffmpeg with the given arguments inside the working directory.

        Progress is reported to subscribers as a fraction of the input
        duration, and 1.0 once ffmpeg signals the end of the stream.

        Raises:
            EngineExecError: If ffmpeg exits with a non-zero status
        """
        self._require_ready()
        args = list(args)

        duration_seconds = await self._probe_input_duration(args)

        cmd = [
            self._ffmpeg,
            "-hide_banner",
            "-nostdin",
            "-y",
            "-progress", "pipe:1",
            "-nostats",
            *args,
        ]
        logger.debug(f"Running: {' '.join(cmd[:12])}...")

        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=self.working_directory,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        # Drain stderr concurrently so a chatty ffmpeg never blocks on a full pipe
        stderr_task = asyncio.ensure_future(proc.stderr.read())

        async for raw_line in proc.stdout:
            fraction = parse_progress_line(
                raw_line.decode("utf-8", errors="replace"), duration_seconds
            )
            if fraction is not None:
                self._emit_progress(fraction)

        stderr_output = await stderr_task
        await proc.wait()

        if proc.returncode != 0:
            error_msg = stderr_output.decode(errors="replace")[-1000:] if stderr_output else "Unknown error"
            raise EngineExecError(f"FFmpeg failed ({proc.returncode}): {error_msg}")

    async def _probe_input_duration(self, args: list[str]) -> Optional[float]:
        """Duration in seconds of the `-i` input, or None if unknown."""
        try:
            input_name = args[args.index("-i") + 1]
        except (ValueError, IndexError):
            return None

        cmd = [
            self._ffprobe,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            self._path_for(input_name),
        ]
        returncode, stdout, stderr = await self._run_sync(cmd)
        if returncode != 0:
            logger.warning(f"ffprobe duration failed: {stderr.decode(errors='replace')[:200]}")
            return None
        try:
            duration = float(stdout.decode().strip())
        except ValueError:
            return None
        return duration if duration > 0 else None

    async def _run_sync(self, cmd: list[str]) -> tuple[int, bytes, bytes]:
        """Run a short command in the default executor."""
        loop = asyncio.get_event_loop()
        result = await loop.run_in_executor(
            None,
            lambda: subprocess.run(cmd, capture_output=True)
        )
        return result.returncode, result.stdout, result.stderr


def parse_progress_line(line: str, duration_seconds: Optional[float]) -> Optional[float]:
    """
    Convert one `-progress` key=value line into a 0.0-1.0 fraction.

    Returns None for lines that carry no usable progress.
    """
    line = line.strip()
    if line == "progress=end":
        return 1.0
    if not duration_seconds or not line.startswith("out_time_us="):
        return None
    try:
        time_us = int(line.split("=", 1)[1])
    except ValueError:
        # ffmpeg prints N/A before the first frame is encoded
        return None
    fraction = (time_us / 1_000_000) / duration_seconds
    return max(0.0, min(1.0, fraction))


def _write_bytes(path: str, data: bytes) -> None:
    with open(path, "wb") as f:
        f.write(data)


def _read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def _remove_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
