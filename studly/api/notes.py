"""Study notes and transcript routes."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from studly.auth.security import CurrentUser, require_subscriber, require_user
from studly.db.session import get_db
from studly.middleware.rate_limit import rate_limit_generation
from studly.schemas.schemas import (
    GeneratedNotesResponse,
    GenerateNotesRequest,
    StudyNotesListResponse,
    StudyNotesResponse,
    TranscriptResponse,
)
from studly.services.notes import note_service
from studly.services.recording_service import recording_service
from studly.services.transcription import transcription_service

router = APIRouter(prefix="/v1", tags=["Notes"])


@router.get(
    "/notes",
    response_model=StudyNotesListResponse,
    summary="List study notes",
)
async def list_notes(
    limit: int = Query(100, ge=1, le=500, description="Maximum number of notes"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    """List the user's study notes, newest first."""
    notes = await recording_service.list_notes(db, user.id, limit)
    return StudyNotesListResponse(
        notes=[recording_service.notes_to_response(n) for n in notes],
        total=len(notes),
    )


@router.get(
    "/notes/{notes_id}",
    response_model=StudyNotesResponse,
    summary="Get study notes",
    description="Get notes with flashcards, exam tips and the full transcription.",
)
async def get_notes(
    notes_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    notes = await recording_service.get_notes(db, notes_id, user.id)
    if not notes:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Notes {notes_id} not found",
        )
    return recording_service.notes_to_response(notes)


@router.post(
    "/notes/generate",
    response_model=GeneratedNotesResponse,
    summary="Generate notes from text",
    description="Generate structured study notes from an existing transcription. Nothing is stored.",
)
@rate_limit_generation()
async def generate_notes(
    request: Request,
    body: GenerateNotesRequest,
    user: CurrentUser = Depends(require_subscriber),
):
    if not body.transcription_text.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing transcription text",
        )

    generated = await note_service.generate(
        body.transcription_text, body.subject, body.exam_board
    )
    return GeneratedNotesResponse(**generated.to_dict())


@router.get(
    "/transcripts/{transcript_id}",
    response_model=TranscriptResponse,
    summary="Get a transcript",
    description="Look up a transcript from the speech-to-text provider for one of the user's jobs.",
)
async def get_transcript(
    transcript_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    job = await recording_service.get_job_by_transcript(db, transcript_id, user.id)
    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Transcript {transcript_id} not found",
        )

    transcript = await transcription_service.get(transcript_id)
    return TranscriptResponse(**transcript.to_dict())
