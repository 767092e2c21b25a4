"""
Services for ClearFrame.

Includes:
- Region capture (viewport-space drawing state)
- Filter pipeline (coordinate mapping, clamping, delogo chain)
- Transcoding engine and job orchestration
- Editing sessions
"""

from clearframe.services.filter_pipeline import (
    CoordinateTransform,
    DelogoOperation,
    Dimensions,
    VideoRegion,
    build_pipeline,
    compose_filter_chain,
)
from clearframe.services.media_probe import MediaProbeError, VideoInfo, probe_video
from clearframe.services.region_capture import Point, Rectangle, RegionCaptureModel
from clearframe.services.session import EditingSession, SessionNotFoundError, SessionStore
from clearframe.services.transcode_engine import (
    EngineError,
    EngineExecError,
    EngineLoadError,
    EngineState,
    FFmpegEngine,
    TranscodeEngine,
)
from clearframe.services.transcode_orchestrator import (
    BusyError,
    InvalidInputError,
    JobState,
    MediaObject,
    ProcessingError,
    SourceMedia,
    TranscodeJob,
    TranscodeJobOrchestrator,
)

__all__ = [
    # Region capture
    "Point",
    "Rectangle",
    "RegionCaptureModel",
    # Filter pipeline
    "Dimensions",
    "VideoRegion",
    "CoordinateTransform",
    "DelogoOperation",
    "build_pipeline",
    "compose_filter_chain",
    # Engine
    "TranscodeEngine",
    "FFmpegEngine",
    "EngineState",
    "EngineError",
    "EngineLoadError",
    "EngineExecError",
    # Jobs
    "TranscodeJobOrchestrator",
    "TranscodeJob",
    "JobState",
    "SourceMedia",
    "MediaObject",
    "InvalidInputError",
    "BusyError",
    "ProcessingError",
    # Sessions
    "EditingSession",
    "SessionStore",
    "SessionNotFoundError",
    # Probe
    "probe_video",
    "VideoInfo",
    "MediaProbeError",
]
