"""
Engine endpoints - Inspect and (re)load the shared transcoding engine.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from clearframe.auth import verify_api_key
from clearframe.config import get_settings
from clearframe.schemas.responses import EngineResponse
from clearframe.services.transcode_engine import EngineLoadError, EngineState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/engine", tags=["Engine"])


def get_engine(request: Request):
    """Get the transcoding engine from app state (created at startup)."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Transcoding engine not initialized",
        )
    return engine


def _engine_response(engine) -> EngineResponse:
    return EngineResponse(
        state=engine.state.value,
        ready=engine.state == EngineState.READY,
        error=getattr(engine, "last_error", None),
    )


@router.get("", response_model=EngineResponse)
async def engine_status(engine=Depends(get_engine)) -> EngineResponse:
    return _engine_response(engine)


@router.post("/load", response_model=EngineResponse)
async def load_engine(
    engine=Depends(get_engine),
    _: None = Depends(verify_api_key),
) -> EngineResponse:
    """
    Load the engine, e.g. to retry after a failed startup load.

    A no-op when the engine is already ready.
    """
    try:
        await engine.load()
    except EngineLoadError as e:
        logger.error(f"Engine reload failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=get_settings().engine_load_error_message,
        )
    return _engine_response(engine)
