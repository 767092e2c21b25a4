"""
Pydantic schemas for request/response models.
"""

from clearframe.schemas.requests import PointRequest, ProcessRequest, RegionCreateRequest
from clearframe.schemas.responses import (
    DraftEndResponse,
    DraftResponse,
    EngineResponse,
    HealthResponse,
    JobResponse,
    ReadinessResponse,
    RegionResponse,
    SessionResponse,
    SourceResponse,
)

__all__ = [
    "PointRequest",
    "RegionCreateRequest",
    "ProcessRequest",
    "RegionResponse",
    "DraftResponse",
    "DraftEndResponse",
    "SourceResponse",
    "JobResponse",
    "SessionResponse",
    "EngineResponse",
    "HealthResponse",
    "ReadinessResponse",
]
