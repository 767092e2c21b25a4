"""
Response schemas for the session API.
"""

from typing import Optional

from pydantic import BaseModel, Field


class RegionResponse(BaseModel):
    """A finalized viewport-space rectangle."""

    id: str = Field(..., description="Region identifier")
    label: str = Field(..., description="Display label in selection order, e.g. 'Area 1'")
    x: float = Field(..., description="X coordinate of top-left corner")
    y: float = Field(..., description="Y coordinate of top-left corner")
    width: float = Field(..., description="Width in viewport pixels")
    height: float = Field(..., description="Height in viewport pixels")


class DraftResponse(BaseModel):
    """The rectangle currently being drawn."""

    x: float
    y: float
    width: float
    height: float


class DraftEndResponse(BaseModel):
    """Result of closing a draft."""

    region: Optional[RegionResponse] = Field(
        default=None, description="The finalized region, or null if the draft was discarded"
    )


class SourceResponse(BaseModel):
    """Uploaded source video."""

    filename: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: int
    native_width: Optional[int] = None
    native_height: Optional[int] = None


class JobResponse(BaseModel):
    """Transcode job status."""

    job_id: Optional[str] = None
    status: str = Field(..., description="idle, running, succeeded or failed")
    progress_percent: int = Field(0, ge=0, le=100)
    region_count: int = 0
    filter_chain: Optional[str] = None
    error: Optional[str] = None
    output_filename: Optional[str] = None
    output_size_bytes: Optional[int] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


class SessionResponse(BaseModel):
    """Full editing session state."""

    session_id: str
    created_at: str
    source: Optional[SourceResponse] = None
    regions: list[RegionResponse] = Field(default_factory=list)
    draft: Optional[DraftResponse] = None
    job: JobResponse
    can_process: bool
    download_name: str


class EngineResponse(BaseModel):
    """Transcoding engine status."""

    state: str
    ready: bool
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Service version")


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool = Field(..., description="Whether service is ready for requests")
    engine: str = Field(..., description="Transcoding engine state")
    sessions: int = Field(0, description="Number of active sessions")
