"""
Health check endpoints for ClearFrame.
"""

from fastapi import APIRouter, Request

from clearframe.schemas.responses import HealthResponse, ReadinessResponse
from clearframe.services.transcode_engine import EngineState

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if the service is running.
    """
    return HealthResponse(
        status="healthy",
        version="1.0.0",
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request):
    """
    Readiness check endpoint.

    The service can process videos only once the transcoding engine is loaded.
    """
    engine = getattr(request.app.state, "engine", None)
    sessions = getattr(request.app.state, "sessions", None)

    engine_state = engine.state if engine is not None else EngineState.UNLOADED

    return ReadinessResponse(
        ready=engine_state == EngineState.READY,
        engine=engine_state.value,
        sessions=len(sessions) if sessions is not None else 0,
    )
