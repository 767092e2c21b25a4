"""
Transcode Job Orchestrator - Runs one watermark-removal job at a time.

This service orchestrates a single job:
1. Validate input (regions, source, dimensions) before touching the engine
2. Build the delogo filter chain in native video pixels
3. Stage the source in the engine (extension preserved)
4. Execute ffmpeg with the chain, audio copied through
5. Read back the output and wrap it as a media object
6. Remove the staged input and output from engine storage

Job states: IDLE -> RUNNING -> SUCCEEDED | FAILED
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence

from clearframe.config import get_settings
from clearframe.services.filter_pipeline import (
    Dimensions,
    build_exec_args,
    build_pipeline,
    compose_filter_chain,
    round_half_up,
)
from clearframe.services.region_capture import Rectangle
from clearframe.services.transcode_engine import (
    EngineLoadError,
    EngineState,
    TranscodeEngine,
)

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    """State of a transcode job."""

    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class InvalidInputError(Exception):
    """Raised when a job is requested without regions, source or valid dimensions."""
    pass


class BusyError(Exception):
    """Raised when a job is requested while another is still running."""
    pass


class ProcessingError(Exception):
    """Raised when the engine fails while staging, executing or reading back."""
    pass


@dataclass
class SourceMedia:
    """An uploaded video and its intrinsic decoded dimensions."""

    filename: Optional[str]
    data: bytes
    mime_type: Optional[str] = None
    native_width: Optional[int] = None
    native_height: Optional[int] = None

    @property
    def extension(self) -> str:
        """Extension after the last dot, falling back to the default container."""
        name = self.filename or ""
        if "." in name:
            ext = name.rsplit(".", 1)[1]
            if ext:
                return ext
        return get_settings().default_extension

    @property
    def native_dimensions(self) -> Optional[Dimensions]:
        if self.native_width is None or self.native_height is None:
            return None
        return Dimensions(self.native_width, self.native_height)


@dataclass
class MediaObject:
    """Processed output ready for download."""

    data: bytes
    mime_type: str
    filename: str

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass
class TranscodeJob:
    """One invocation of "process"."""

    job_id: str
    state: JobState = JobState.IDLE
    progress_percent: int = 0
    region_count: int = 0
    filter_chain: Optional[str] = None
    output: Optional[MediaObject] = None
    error: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    completed_at: Optional[str] = None

    # Execution plan, set by begin()
    source: Optional[SourceMedia] = field(default=None, repr=False)
    input_name: Optional[str] = None
    output_name: Optional[str] = None
    exec_args: list[str] = field(default_factory=list)


def progress_to_percent(fraction: float) -> int:
    """Map an engine progress fraction to an integer percent in 0..100."""
    if math.isnan(fraction):
        return 0
    return max(0, min(100, round_half_up(fraction * 100)))


class TranscodeJobOrchestrator:
    """
    Owns the current job for one editing session and drives the shared engine.

    begin() validates and moves the job to RUNNING synchronously, so callers
    can reject bad requests before scheduling run() in the background.
    process() is begin() + run() for callers that simply await the result.
    """

    def __init__(self, engine: TranscodeEngine, output_prefix: Optional[str] = None):
        self.settings = get_settings()
        self.engine = engine
        self.output_prefix = (
            output_prefix if output_prefix is not None else self.settings.download_prefix
        )
        self._job: Optional[TranscodeJob] = None

    @property
    def job(self) -> Optional[TranscodeJob]:
        return self._job

    @property
    def state(self) -> JobState:
        return self._job.state if self._job else JobState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state == JobState.RUNNING

    def output_filename(self, source: SourceMedia) -> str:
        return f"{self.output_prefix}{source.filename or self.settings.default_video_name}"

    def begin(
        self,
        source: Optional[SourceMedia],
        regions: Sequence[Rectangle],
        native: Optional[Dimensions],
        rendered: Optional[Dimensions],
    ) -> TranscodeJob:
        """
        Validate the request and start a new job.

        Raises:
            BusyError: If a job is already running
            InvalidInputError: If regions/source/dimensions are missing or invalid
            EngineLoadError: If the engine failed to load and has not been reloaded
        """
        if self.is_running:
            raise BusyError("A job is already running")

        if not regions:
            raise InvalidInputError("Select at least one region to remove")
        if source is None or not source.data:
            raise InvalidInputError("No source video loaded")
        if native is None or not native.is_positive:
            raise InvalidInputError(f"Invalid native video dimensions: {native}")
        if rendered is None or not rendered.is_positive:
            raise InvalidInputError(f"Invalid rendered viewport dimensions: {rendered}")

        if self.engine.state == EngineState.LOAD_FAILED:
            raise EngineLoadError(self.settings.engine_load_error_message)

        operations = build_pipeline(regions, native, rendered)
        filter_chain = compose_filter_chain(operations)

        job_id = uuid.uuid4().hex
        ext = source.extension
        input_name = f"input_{job_id}.{ext}"
        output_name = f"output_{job_id}.{ext}"

        job = TranscodeJob(
            job_id=job_id,
            state=JobState.RUNNING,
            region_count=len(operations),
            filter_chain=filter_chain,
            source=source,
            input_name=input_name,
            output_name=output_name,
            exec_args=build_exec_args(input_name, filter_chain, output_name),
        )
        # Replaces any terminal job; its output is released with it
        self._job = job

        logger.info(
            f"Job {job_id} started: {len(operations)} region(s), "
            f"native={int(native.width)}x{int(native.height)}, "
            f"rendered={rendered.width}x{rendered.height}, chain={filter_chain}"
        )
        return job

    async def run(self, job: TranscodeJob) -> TranscodeJob:
        """
        Drive the engine through load -> write -> exec -> read for a started job.

        Staged files are removed afterwards; the output lives on in job.output.

        Never raises: any failure ends the job in FAILED with a guidance message.
        """
        def on_progress(fraction: float) -> None:
            # Last value wins; a superseded job stops receiving updates
            if job.state == JobState.RUNNING:
                job.progress_percent = progress_to_percent(fraction)
                logger.debug(f"Job {job.job_id}: {job.progress_percent}%")

        try:
            async with self.engine.exclusive():
                if self.engine.state != EngineState.READY:
                    await self.engine.load()

                try:
                    await self.engine.write_file(job.input_name, job.source.data)

                    unsubscribe = self.engine.on_progress(on_progress)
                    try:
                        await self.engine.exec(job.exec_args)
                    finally:
                        unsubscribe()

                    data = await self.engine.read_file(job.output_name)
                finally:
                    await self._discard_staged(job)

            if not data:
                raise ProcessingError("Engine produced an empty output file")

            job.output = MediaObject(
                data=data,
                mime_type=job.source.mime_type or self.settings.default_mime_type,
                filename=self.output_filename(job.source),
            )
            job.progress_percent = 100
            job.state = JobState.SUCCEEDED
            logger.info(
                f"Job {job.job_id} completed: {job.output.filename} "
                f"({job.output.size_bytes / 1024 / 1024:.1f} MB)"
            )

        except Exception as e:
            logger.exception(f"Job {job.job_id} failed: {e}")
            job.output = None
            job.error = self.settings.processing_error_message
            job.state = JobState.FAILED

        finally:
            job.completed_at = datetime.utcnow().isoformat()

        return job

    async def _discard_staged(self, job: TranscodeJob) -> None:
        """Remove the job's input and output from engine storage."""
        for name in (job.input_name, job.output_name):
            try:
                await self.engine.delete_file(name)
            except Exception as e:
                logger.warning(f"Job {job.job_id}: failed to remove staged file {name}: {e}")

    async def process(
        self,
        source: Optional[SourceMedia],
        regions: Sequence[Rectangle],
        native: Optional[Dimensions],
        rendered: Optional[Dimensions],
    ) -> TranscodeJob:
        """
        Run a complete job and return it once it succeeded.

        Raises:
            BusyError, InvalidInputError, EngineLoadError: Before the engine is used
            ProcessingError: If the job failed inside the engine
        """
        job = self.begin(source, regions, native, rendered)
        await self.run(job)
        if job.state == JobState.FAILED:
            raise ProcessingError(job.error)
        return job

    def reset(self) -> None:
        """Forget the current job (and its output)."""
        if self.is_running:
            raise BusyError("Cannot reset while a job is running")
        self._job = None
