"""Recording upload, management and processing routes."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from studly.auth.security import CurrentUser, require_subscriber, require_user
from studly.config import get_settings
from studly.db.models import RecordingStatus
from studly.db.session import get_db
from studly.errors import TranscriptionError
from studly.middleware.rate_limit import rate_limit_general, rate_limit_uploads
from studly.schemas.schemas import (
    AudioUrlResponse,
    ProcessingStatusResponse,
    ProcessStartResponse,
    RecordingListResponse,
    RecordingResponse,
    RecordingUploadResponse,
    normalize_exam_board,
    normalize_subject,
)
from studly.services.pipeline import pipeline_service
from studly.services.recording_service import recording_service
from studly.services.storage import storage_service
from studly.services.usage import usage_service
from studly.worker import enqueue_processing

router = APIRouter(prefix="/v1/recordings", tags=["Recordings"])

settings = get_settings()

logger = logging.getLogger(__name__)


async def _get_owned_recording(db: AsyncSession, recording_id: str, user: CurrentUser):
    recording = await recording_service.get_recording(db, recording_id, user.id)
    if not recording:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Recording {recording_id} not found",
        )
    return recording


@router.post(
    "",
    response_model=RecordingUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a recording",
    description="Upload a recorded lecture. The recording's length counts against the monthly plan quota.",
)
@rate_limit_uploads()
async def upload_recording(
    request: Request,
    audio: UploadFile = File(..., description="Recorded audio blob"),
    title: Optional[str] = Form(None),
    subject: Optional[str] = Form(None),
    exam_board: Optional[str] = Form(None),
    duration: Optional[int] = Form(None, ge=0, description="Length in seconds"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_subscriber),
):
    """
    Store the audio and create a recording in the "uploaded" state.

    - **audio**: The recording (webm, wav, mp3, m4a, ogg, flac)
    - **title**: Lecture title
    - **subject** / **exam_board**: Tags used when generating notes
    - **duration**: Length in seconds as measured by the recorder
    """
    content = await audio.read()
    if not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No audio file provided",
        )
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Audio file exceeds {settings.max_upload_bytes // (1024 * 1024)} MB",
        )

    await usage_service.check_quota(db, user.id, duration)

    content_type = audio.content_type or "audio/webm"
    audio_path = await asyncio.to_thread(
        storage_service.upload_recording, content, user.id, content_type
    )

    recording = await recording_service.create_recording(
        db,
        user_id=user.id,
        audio_path=audio_path,
        title=title,
        filename=audio.filename,
        file_size=len(content),
        content_type=content_type,
        duration=duration,
        subject=normalize_subject(subject),
        exam_board=normalize_exam_board(exam_board),
    )
    await db.commit()

    logger.info(f"Uploaded recording {recording.id} for user {user.id} ({len(content)} bytes)")

    return RecordingUploadResponse(
        recording_id=recording.id,
        audio_path=recording.audio_path,
        status=recording.status.value,
        created_at=recording.created_at,
    )


@router.get(
    "",
    response_model=RecordingListResponse,
    summary="List recordings",
    description="Get a paginated list of the user's recordings, newest first.",
)
async def list_recordings(
    status_filter: Optional[str] = Query(
        None,
        alias="status",
        description="Filter by status (uploaded, pending, processing, completed, failed)",
    ),
    search: Optional[str] = Query(None, description="Match on title or subject"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    """List the signed-in user's recordings."""
    status_enum = None
    if status_filter:
        try:
            status_enum = RecordingStatus(status_filter)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status: {status_filter}",
            )

    recordings, total = await recording_service.list_recordings(
        db, user.id, status_enum, search, page, page_size
    )

    total_pages = (total + page_size - 1) // page_size

    return RecordingListResponse(
        recordings=[recording_service.recording_to_response(r) for r in recordings],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@router.get(
    "/{recording_id}",
    response_model=RecordingResponse,
    summary="Get a recording",
)
async def get_recording(
    recording_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    recording = await _get_owned_recording(db, recording_id, user)
    return recording_service.recording_to_response(recording)


@router.delete(
    "/{recording_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a recording",
    description="Delete a recording together with its processing jobs, notes and stored audio.",
)
async def delete_recording(
    recording_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    recording = await _get_owned_recording(db, recording_id, user)
    audio_path = recording.audio_path

    await recording_service.delete_recording(db, recording)
    await db.commit()

    await asyncio.to_thread(storage_service.delete_recording, audio_path)
    logger.info(f"Deleted recording {recording_id} for user {user.id}")


@router.post(
    "/{recording_id}/process",
    response_model=ProcessStartResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start processing",
    description="Submit the recording for transcription. Notes are generated once the transcript is ready.",
)
@rate_limit_uploads()
async def process_recording(
    request: Request,
    recording_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_subscriber),
):
    """Start the pipeline for an uploaded (or previously failed) recording."""
    recording = await recording_service.get_recording(
        db, recording_id, user.id, for_update=True
    )
    if not recording:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Recording {recording_id} not found",
        )

    try:
        job = await pipeline_service.start_processing(db, recording)
    except TranscriptionError:
        # Keep the failed job and recording
        await db.commit()
        raise

    await db.commit()

    try:
        enqueue_processing(recording.id)
    except Exception as e:
        # Status polls still advance the recording without the worker
        logger.warning(f"Could not enqueue background processing for {recording.id}: {e}")

    return ProcessStartResponse(
        job_id=job.id,
        transcript_id=job.transcript_id,
    )


@router.get(
    "/{recording_id}/status",
    response_model=ProcessingStatusResponse,
    summary="Get processing status",
    description="Poll the pipeline. Each poll moves the recording forward when the next step is ready.",
)
@rate_limit_general()
async def get_processing_status(
    request: Request,
    recording_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    state = await pipeline_service.advance(db, recording_id, user.id)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Recording {recording_id} not found",
        )
    await db.commit()

    return ProcessingStatusResponse(
        status=state.status,
        step=state.step,
        message=state.message,
        error=state.error,
        result=recording_service.notes_to_response(state.notes) if state.notes else None,
    )


@router.get(
    "/{recording_id}/audio",
    response_model=AudioUrlResponse,
    summary="Get a playback URL",
    description="Get a short-lived URL for streaming the recording's audio.",
)
async def get_audio_url(
    recording_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    recording = await _get_owned_recording(db, recording_id, user)
    url = await asyncio.to_thread(
        storage_service.generate_presigned_url,
        recording.audio_path,
        settings.audio_url_expiry_seconds,
    )
    return AudioUrlResponse(url=url, expires_in=settings.audio_url_expiry_seconds)
