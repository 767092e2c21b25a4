"""
Editing sessions - One user's source video, drawn regions and current job.

Sessions live in memory only (no persistence across restarts).
"""

import logging
import uuid
from datetime import datetime
from typing import Optional

from clearframe.config import Settings, get_settings
from clearframe.services.filter_pipeline import Dimensions
from clearframe.services.region_capture import RegionCaptureModel
from clearframe.services.transcode_engine import TranscodeEngine
from clearframe.services.transcode_orchestrator import (
    BusyError,
    SourceMedia,
    TranscodeJob,
    TranscodeJobOrchestrator,
)

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised when a session id is unknown."""
    pass


class EditingSession:
    """A source video, its region set and the orchestrator that processes it."""

    def __init__(
        self,
        engine: TranscodeEngine,
        session_id: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.session_id = session_id or uuid.uuid4().hex
        self.created_at = datetime.utcnow().isoformat()
        self.source: Optional[SourceMedia] = None
        self.regions = RegionCaptureModel(min_region_size=self.settings.min_region_size)
        self.orchestrator = TranscodeJobOrchestrator(
            engine, output_prefix=self.settings.download_prefix
        )

    @property
    def job(self) -> Optional[TranscodeJob]:
        return self.orchestrator.job

    @property
    def can_process(self) -> bool:
        """Whether the "process" trigger should be enabled."""
        return (
            self.source is not None
            and len(self.regions) > 0
            and not self.orchestrator.is_running
        )

    @property
    def download_name(self) -> str:
        name = self.source.filename if self.source and self.source.filename else None
        return f"{self.settings.download_prefix}{name or self.settings.default_video_name}"

    def load_video(self, source: SourceMedia) -> None:
        """Replace the source video; regions and job belong to the old one."""
        if self.orchestrator.is_running:
            raise BusyError("Cannot replace the video while a job is running")
        self.orchestrator.reset()
        self.regions.clear_all()
        self.source = source
        logger.info(
            f"Session {self.session_id}: loaded {source.filename or 'unnamed video'} "
            f"({source.native_width}x{source.native_height})"
        )

    def reset(self) -> None:
        """Start over: drop the source, regions and job."""
        if self.orchestrator.is_running:
            raise BusyError("Cannot reset while a job is running")
        self.orchestrator.reset()
        self.regions.clear_all()
        self.source = None
        logger.info(f"Session {self.session_id}: reset")

    def begin_job(
        self,
        rendered: Dimensions,
        native: Optional[Dimensions] = None,
    ) -> TranscodeJob:
        """Start a job over the current regions using the probed native size unless overridden."""
        if native is None and self.source is not None:
            native = self.source.native_dimensions
        return self.orchestrator.begin(self.source, self.regions.regions, native, rendered)

    async def process(
        self,
        rendered: Dimensions,
        native: Optional[Dimensions] = None,
    ) -> TranscodeJob:
        if native is None and self.source is not None:
            native = self.source.native_dimensions
        return await self.orchestrator.process(
            self.source, self.regions.regions, native, rendered
        )


class SessionStore:
    """In-memory session registry keyed by session id."""

    def __init__(self, engine: TranscodeEngine, settings: Optional[Settings] = None):
        self.engine = engine
        self.settings = settings or get_settings()
        self._sessions: dict[str, EditingSession] = {}

    def create(self, source: Optional[SourceMedia] = None) -> EditingSession:
        session = EditingSession(self.engine, settings=self.settings)
        if source is not None:
            session.load_video(source)
        self._sessions[session.session_id] = session
        logger.info(f"Session {session.session_id} created")
        return session

    def get(self, session_id: str) -> EditingSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def delete(self, session_id: str) -> None:
        session = self.get(session_id)
        if session.orchestrator.is_running:
            raise BusyError("Cannot delete a session while its job is running")
        del self._sessions[session_id]
        logger.info(f"Session {session_id} deleted")

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
