"""
FastAPI application entry point for ClearFrame.

ClearFrame removes user-selected watermark regions from videos:
1. Upload a video and draw rectangles over its preview
2. Regions are mapped to native video pixels and erased with FFmpeg delogo
3. Audio is copied through untouched
"""

import logging
import os
import shutil
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clearframe.config import get_settings
from clearframe.routers import engine, health, sessions
from clearframe.services.session import SessionStore
from clearframe.services.transcode_engine import EngineLoadError, FFmpegEngine

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for startup and shutdown events.
    Loads the transcoding engine once on startup and cleans up on shutdown.
    """
    settings = get_settings()
    logger.info("Starting ClearFrame...")

    os.makedirs(settings.workspace_directory, exist_ok=True)
    logger.info(f"Workspace directory: {settings.workspace_directory}")

    _verify_external_tools()

    transcode_engine = FFmpegEngine()
    try:
        await transcode_engine.load()
    except EngineLoadError as e:
        # Keep serving; processing stays blocked until POST /engine/load succeeds
        logger.error(f"{settings.engine_load_error_message} ({e})")

    app.state.engine = transcode_engine
    app.state.sessions = SessionStore(transcode_engine, settings=settings)

    logger.info(f"ClearFrame ready (engine={transcode_engine.state.value})")

    yield

    # Cleanup on shutdown
    logger.info("Shutting down ClearFrame...")
    transcode_engine.close()
    app.state.sessions = None
    app.state.engine = None

    if os.path.isdir(settings.workspace_directory):
        try:
            shutil.rmtree(settings.workspace_directory)
        except OSError as e:
            logger.warning(f"Failed to clean up workspace directory: {e}")

    logger.info("Shutdown complete")


def _verify_external_tools():
    """Verify that required external tools are available."""
    settings = get_settings()
    tools = {
        settings.ffmpeg_path: "FFmpeg for watermark removal",
        settings.ffprobe_path: "FFprobe for video analysis",
    }

    for tool, description in tools.items():
        if shutil.which(tool):
            logger.info(f"✓ {description} available")
        else:
            logger.warning(f"✗ {description} NOT FOUND - processing will not work")


# Create FastAPI application
app = FastAPI(
    title="ClearFrame",
    description="""
ClearFrame - watermark removal for videos.

## Usage

1. Upload a video: `POST /sessions`
2. Draw regions over the preview: `POST /sessions/{id}/draft/begin|update|end`
   (or add complete rectangles with `POST /sessions/{id}/regions`)
3. Process: `POST /sessions/{id}/process` with the preview's rendered size
4. Poll: `GET /sessions/{id}/job`
5. Download: `GET /sessions/{id}/download`
    """,
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict to specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(engine.router)
app.include_router(sessions.router)


@app.get("/")
async def root():
    """Root endpoint with basic info."""
    return {
        "service": settings.app_name,
        "version": "1.0.0",
        "status": "running",
        "features": {
            "removal": "FFmpeg delogo (spatial interpolation)",
            "audio": "passthrough",
        },
        "docs": "/docs",
    }
