"""
Sessions API Router - Upload, region drawing, processing and download.

A session stands in for one open editor: it owns the uploaded video, the
regions drawn over its preview and the most recent transcode job.
"""

import logging
import os
from typing import Optional
from urllib.parse import quote

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    HTTPException,
    Request,
    Response,
    UploadFile,
    status,
)

from clearframe.auth import verify_api_key
from clearframe.config import get_settings
from clearframe.schemas.requests import PointRequest, ProcessRequest, RegionCreateRequest
from clearframe.schemas.responses import (
    DraftEndResponse,
    DraftResponse,
    JobResponse,
    RegionResponse,
    SessionResponse,
    SourceResponse,
)
from clearframe.services.filter_pipeline import Dimensions
from clearframe.services.media_probe import MediaProbeError, probe_video
from clearframe.services.region_capture import Point, Rectangle
from clearframe.services.session import EditingSession, SessionNotFoundError, SessionStore
from clearframe.services.transcode_engine import EngineLoadError
from clearframe.services.transcode_orchestrator import (
    BusyError,
    InvalidInputError,
    JobState,
    SourceMedia,
    TranscodeJob,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])


# ============================================================================
# Dependencies
# ============================================================================


def get_session_store(request: Request) -> SessionStore:
    """Get the session store from app state (initialized at startup)."""
    store = getattr(request.app.state, "sessions", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session store not initialized",
        )
    return store


def get_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> EditingSession:
    try:
        return store.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session not found: {session_id}",
        )


# ============================================================================
# Response builders
# ============================================================================


def _region_response(session: EditingSession, region: Rectangle) -> RegionResponse:
    return RegionResponse(
        id=region.id,
        label=session.regions.label_for(region.id) or "",
        x=region.x,
        y=region.y,
        width=region.width,
        height=region.height,
    )


def _job_response(job: Optional[TranscodeJob]) -> JobResponse:
    if job is None:
        return JobResponse(status=JobState.IDLE.value)
    return JobResponse(
        job_id=job.job_id,
        status=job.state.value,
        progress_percent=job.progress_percent,
        region_count=job.region_count,
        filter_chain=job.filter_chain,
        error=job.error,
        output_filename=job.output.filename if job.output else None,
        output_size_bytes=job.output.size_bytes if job.output else None,
        created_at=job.created_at,
        completed_at=job.completed_at,
    )


def _session_response(session: EditingSession) -> SessionResponse:
    source = None
    if session.source is not None:
        source = SourceResponse(
            filename=session.source.filename,
            mime_type=session.source.mime_type,
            size_bytes=len(session.source.data),
            native_width=session.source.native_width,
            native_height=session.source.native_height,
        )

    draft = session.regions.draft
    return SessionResponse(
        session_id=session.session_id,
        created_at=session.created_at,
        source=source,
        regions=[_region_response(session, r) for r in session.regions.regions],
        draft=(
            DraftResponse(x=draft.x, y=draft.y, width=draft.width, height=draft.height)
            if draft is not None
            else None
        ),
        job=_job_response(session.job),
        can_process=session.can_process,
        download_name=session.download_name,
    )


def _content_disposition(filename: str) -> str:
    """
    Attachment header for an arbitrary (possibly non-ASCII) file name.

    Headers are sent as latin-1, so the plain `filename` is an ASCII
    fallback and the real name goes in RFC 5987 `filename*`.
    """
    fallback = "".join(
        c if 32 <= ord(c) < 127 and c not in '"\\' else "_" for c in filename
    )
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def _busy(e: BusyError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


async def _read_upload(file: UploadFile) -> SourceMedia:
    """Read and probe an uploaded video."""
    settings = get_settings()
    data = await file.read()

    if not data:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded file is empty",
        )
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload exceeds {settings.max_upload_mb} MB",
        )

    suffix = os.path.splitext(file.filename or "")[1] or f".{settings.default_extension}"
    try:
        info = await probe_video(data, suffix=suffix)
    except MediaProbeError as e:
        logger.warning(f"Rejected upload {file.filename}: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Not a readable video: {e}",
        )

    return SourceMedia(
        filename=file.filename or None,
        data=data,
        mime_type=file.content_type or None,
        native_width=info.width,
        native_height=info.height,
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    file: UploadFile = File(...),
    store: SessionStore = Depends(get_session_store),
    _: None = Depends(verify_api_key),
) -> SessionResponse:
    """Upload a video and open an editing session for it."""
    source = await _read_upload(file)
    session = store.create(source)
    return _session_response(session)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session_state(session: EditingSession = Depends(get_session)) -> SessionResponse:
    return _session_response(session)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
    _: None = Depends(verify_api_key),
) -> None:
    try:
        store.delete(session_id)
    except SessionNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session not found: {session_id}",
        )
    except BusyError as e:
        raise _busy(e)


@router.put("/{session_id}/video", response_model=SessionResponse)
async def replace_video(
    file: UploadFile = File(...),
    session: EditingSession = Depends(get_session),
    _: None = Depends(verify_api_key),
) -> SessionResponse:
    """Load a different video; existing regions and output are discarded."""
    source = await _read_upload(file)
    try:
        session.load_video(source)
    except BusyError as e:
        raise _busy(e)
    return _session_response(session)


@router.post("/{session_id}/reset", response_model=SessionResponse)
async def reset_session(
    session: EditingSession = Depends(get_session),
    _: None = Depends(verify_api_key),
) -> SessionResponse:
    try:
        session.reset()
    except BusyError as e:
        raise _busy(e)
    return _session_response(session)


# ----------------------------------------------------------------------------
# Drawing
# ----------------------------------------------------------------------------


@router.post("/{session_id}/draft/begin", response_model=SessionResponse)
async def begin_draft(
    point: PointRequest,
    session: EditingSession = Depends(get_session),
    _: None = Depends(verify_api_key),
) -> SessionResponse:
    """Pointer down over the preview."""
    session.regions.begin_draft(Point(point.x, point.y))
    return _session_response(session)


@router.post("/{session_id}/draft/update", response_model=SessionResponse)
async def update_draft(
    point: PointRequest,
    session: EditingSession = Depends(get_session),
    _: None = Depends(verify_api_key),
) -> SessionResponse:
    """Pointer move while drawing."""
    session.regions.update_draft(Point(point.x, point.y))
    return _session_response(session)


@router.post("/{session_id}/draft/end", response_model=DraftEndResponse)
async def end_draft(
    session: EditingSession = Depends(get_session),
    _: None = Depends(verify_api_key),
) -> DraftEndResponse:
    """Pointer up (or leaving the preview)."""
    region = session.regions.end_draft()
    if region is None:
        return DraftEndResponse(region=None)
    return DraftEndResponse(region=_region_response(session, region))


@router.post(
    "/{session_id}/regions",
    response_model=RegionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_region(
    body: RegionCreateRequest,
    session: EditingSession = Depends(get_session),
    _: None = Depends(verify_api_key),
) -> RegionResponse:
    """Add a rectangle drawn client-side, subject to the same size threshold."""
    regions = session.regions
    if regions.is_drawing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A draft is already open",
        )

    regions.begin_draft(Point(body.x, body.y))
    regions.update_draft(Point(body.x + body.width, body.y + body.height))
    region = regions.end_draft()
    if region is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=(
                f"Region must be larger than {regions.min_region_size:g}px "
                f"in both width and height"
            ),
        )
    return _region_response(session, region)


@router.delete("/{session_id}/regions/{region_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_region(
    region_id: str,
    session: EditingSession = Depends(get_session),
    _: None = Depends(verify_api_key),
) -> None:
    """Remove a region. Unknown ids succeed so retries are harmless."""
    session.regions.remove_region(region_id)


@router.delete("/{session_id}/regions", status_code=status.HTTP_204_NO_CONTENT)
async def clear_regions(
    session: EditingSession = Depends(get_session),
    _: None = Depends(verify_api_key),
) -> None:
    session.regions.clear_all()


# ----------------------------------------------------------------------------
# Processing
# ----------------------------------------------------------------------------


@router.post(
    "/{session_id}/process",
    response_model=JobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def process_session(
    body: ProcessRequest,
    background_tasks: BackgroundTasks,
    session: EditingSession = Depends(get_session),
    _: None = Depends(verify_api_key),
) -> JobResponse:
    """
    Remove all selected regions from the video.

    The job runs in the background; poll GET /sessions/{id}/job for progress.
    """
    rendered = Dimensions(body.rendered_width, body.rendered_height)
    native = None
    if body.native_width is not None and body.native_height is not None:
        native = Dimensions(body.native_width, body.native_height)

    try:
        job = session.begin_job(rendered, native)
    except InvalidInputError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except BusyError as e:
        raise _busy(e)
    except EngineLoadError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    background_tasks.add_task(session.orchestrator.run, job)
    return _job_response(job)


@router.get("/{session_id}/job", response_model=JobResponse)
async def get_job_status(session: EditingSession = Depends(get_session)) -> JobResponse:
    return _job_response(session.job)


@router.get("/{session_id}/download")
async def download_output(session: EditingSession = Depends(get_session)) -> Response:
    """Download the processed video as cleaned_<original name>."""
    job = session.job
    if job is None or job.state != JobState.SUCCEEDED or job.output is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No processed video available",
        )

    return Response(
        content=job.output.data,
        media_type=job.output.mime_type,
        headers={"Content-Disposition": _content_disposition(job.output.filename)},
    )
