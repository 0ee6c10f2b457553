"""Recording and study-notes data access."""

from typing import Optional
from uuid import uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from studly.db.models import ProcessingJob, Recording, RecordingStatus, StudyNotes
from studly.schemas.schemas import RecordingResponse, StudyNotesResponse


class RecordingService:
    """Service for managing recordings and their notes."""

    async def create_recording(
        self,
        db: AsyncSession,
        user_id: str,
        audio_path: str,
        title: Optional[str] = None,
        filename: Optional[str] = None,
        file_size: Optional[int] = None,
        content_type: str = "audio/webm",
        duration: Optional[int] = None,
        subject: Optional[str] = None,
        exam_board: Optional[str] = None,
    ) -> Recording:
        """
        Create a recording row for an uploaded audio blob.

        Args:
            db: Database session
            user_id: Owner of the recording
            audio_path: Key of the stored audio object
            duration: Length in seconds as measured by the recorder

        Returns:
            Created Recording with status "uploaded"
        """
        recording = Recording(
            id=str(uuid4()),
            user_id=user_id,
            title=(title or "").strip() or "Untitled Recording",
            audio_path=audio_path,
            filename=filename,
            file_size=file_size,
            content_type=content_type,
            duration=duration,
            subject=subject,
            exam_board=exam_board,
            status=RecordingStatus.UPLOADED,
        )
        db.add(recording)
        await db.flush()

        return recording

    async def get_recording(
        self,
        db: AsyncSession,
        recording_id: str,
        user_id: Optional[str] = None,
        for_update: bool = False,
    ) -> Optional[Recording]:
        """
        Get a recording by ID.

        Args:
            db: Database session
            recording_id: Recording ID
            user_id: Filter by owner (for authorization)
            for_update: Lock the row until the transaction ends

        Returns:
            Recording or None
        """
        query = select(Recording).where(Recording.id == recording_id)

        if user_id:
            query = query.where(Recording.user_id == user_id)

        if for_update:
            query = query.with_for_update()

        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def list_recordings(
        self,
        db: AsyncSession,
        user_id: str,
        status: Optional[RecordingStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Recording], int]:
        """
        List recordings for a user, newest first.

        Returns:
            Tuple of (recordings, total_count)
        """
        query = select(Recording).where(Recording.user_id == user_id)

        if status:
            query = query.where(Recording.status == status)

        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.where(
                or_(
                    func.lower(Recording.title).like(pattern),
                    func.lower(Recording.subject).like(pattern),
                )
            )

        count_query = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_query)).scalar() or 0

        query = (
            query.order_by(Recording.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )

        result = await db.execute(query)
        return list(result.scalars().all()), total

    async def get_latest_job(
        self,
        db: AsyncSession,
        recording_id: str,
        for_update: bool = False,
    ) -> Optional[ProcessingJob]:
        """Get the most recent processing job for a recording."""
        query = (
            select(ProcessingJob)
            .where(ProcessingJob.recording_id == recording_id)
            .order_by(ProcessingJob.created_at.desc())
            .limit(1)
        )
        if for_update:
            query = query.with_for_update()

        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_job_by_transcript(
        self,
        db: AsyncSession,
        transcript_id: str,
        user_id: str,
    ) -> Optional[ProcessingJob]:
        result = await db.execute(
            select(ProcessingJob).where(
                ProcessingJob.transcript_id == transcript_id,
                ProcessingJob.user_id == user_id,
            )
        )
        return result.scalars().first()

    async def get_notes_for_recording(
        self,
        db: AsyncSession,
        recording_id: str,
    ) -> Optional[StudyNotes]:
        """Get the newest notes generated for a recording."""
        result = await db.execute(
            select(StudyNotes)
            .where(StudyNotes.recording_id == recording_id)
            .order_by(StudyNotes.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_notes(
        self,
        db: AsyncSession,
        notes_id: str,
        user_id: Optional[str] = None,
    ) -> Optional[StudyNotes]:
        query = select(StudyNotes).where(StudyNotes.id == notes_id)
        if user_id:
            query = query.where(StudyNotes.user_id == user_id)

        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def list_notes(
        self,
        db: AsyncSession,
        user_id: str,
        limit: int = 100,
    ) -> list[StudyNotes]:
        """List a user's notes, newest first."""
        result = await db.execute(
            select(StudyNotes)
            .where(StudyNotes.user_id == user_id)
            .order_by(StudyNotes.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def delete_recording(self, db: AsyncSession, recording: Recording):
        """Delete a recording with its jobs and notes."""
        await db.delete(recording)
        await db.flush()

    def recording_to_response(self, recording: Recording) -> RecordingResponse:
        """Convert Recording model to response schema."""
        return RecordingResponse(
            id=recording.id,
            title=recording.title,
            status=recording.status.value,
            duration=recording.duration,
            file_size=recording.file_size,
            subject=recording.subject,
            exam_board=recording.exam_board,
            error_message=recording.error_message,
            created_at=recording.created_at,
        )

    def notes_to_response(self, notes: StudyNotes) -> StudyNotesResponse:
        """Convert StudyNotes model to response schema."""
        return StudyNotesResponse(
            id=notes.id,
            recording_id=notes.recording_id,
            title=notes.title,
            summary=notes.summary,
            content=notes.content,
            key_concepts=notes.key_concepts or [],
            flashcards=notes.flashcards or [],
            exam_tips=notes.exam_tips or [],
            transcription_text=notes.transcription_text,
            word_count=notes.word_count or 0,
            created_at=notes.created_at,
        )


# Singleton instance
recording_service = RecordingService()
