"""Processing pipeline: upload -> transcribe -> generate notes -> persist.

All status changes for recordings and processing jobs go through this module.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studly.config import get_settings
from studly.db.models import (
    JobStatus,
    JobStep,
    ProcessingJob,
    Recording,
    RecordingStatus,
    StudyNotes,
)
from studly.errors import (
    InvalidTransition,
    NoteGenerationError,
    QuotaExceeded,
    TranscriptionError,
)
from studly.services.notes import note_service
from studly.services.recording_service import recording_service
from studly.services.storage import storage_service
from studly.services.transcription import Transcript, transcription_service
from studly.services.usage import usage_service

logger = logging.getLogger(__name__)

settings = get_settings()

RECORDING_TRANSITIONS: dict[RecordingStatus, set[RecordingStatus]] = {
    RecordingStatus.UPLOADED: {RecordingStatus.PROCESSING, RecordingStatus.FAILED},
    RecordingStatus.PENDING: {RecordingStatus.PROCESSING, RecordingStatus.FAILED},
    RecordingStatus.PROCESSING: {RecordingStatus.COMPLETED, RecordingStatus.FAILED},
    RecordingStatus.FAILED: {RecordingStatus.PROCESSING},
    RecordingStatus.COMPLETED: set(),
}

JOB_STEP_ORDER = [JobStep.TRANSCRIPTION, JobStep.NOTE_GENERATION, JobStep.COMPLETED]


@dataclass
class PipelineState:
    """What a status poll reports back to the client."""

    status: str  # pending, processing, completed, failed
    step: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    notes: Optional[StudyNotes] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def transition_recording(
    recording: Recording,
    new_status: RecordingStatus,
    error_message: Optional[str] = None,
):
    """
    Move a recording to a new status.

    Raises:
        InvalidTransition: if the move is not allowed from the current status
    """
    current = recording.status
    if new_status not in RECORDING_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Recording {recording.id} cannot go from {current.value} to {new_status.value}"
        )

    recording.status = new_status
    recording.error_message = error_message
    logger.info(f"Recording {recording.id}: {current.value} -> {new_status.value}")


def advance_step(job: ProcessingJob, new_step: JobStep):
    """Move a job forward to a later step; steps never go backwards."""
    if JOB_STEP_ORDER.index(new_step) <= JOB_STEP_ORDER.index(job.step):
        raise InvalidTransition(
            f"Job {job.id} cannot go from step {job.step.value} to {new_step.value}"
        )
    job.step = new_step


def fail_processing(
    recording: Recording,
    job: Optional[ProcessingJob],
    job_error: str,
    recording_error: Optional[str] = None,
):
    """Mark the job and its recording as failed."""
    if job is not None and job.status != JobStatus.FAILED:
        job.status = JobStatus.FAILED
        job.error = job_error
        job.completed_at = _now()

    if recording.status != RecordingStatus.FAILED:
        transition_recording(recording, RecordingStatus.FAILED, recording_error or job_error)

    logger.warning(f"Processing failed for recording {recording.id}: {job_error}")


class PipelineService:
    """Drives a recording through transcription and note generation."""

    async def start_processing(
        self,
        db: AsyncSession,
        recording: Recording,
    ) -> ProcessingJob:
        """
        Validate quota, submit the audio for transcription and open a job.

        The caller must commit even when this raises TranscriptionError, so
        the failed job and recording are persisted.

        Raises:
            InvalidTransition: if the recording is processing or already done
            QuotaExceeded: if the recording does not fit in the user's plan
            TranscriptionError: if the vendor rejected the submission
        """
        if recording.status == RecordingStatus.PROCESSING:
            raise InvalidTransition("Recording is already being processed")
        if recording.status == RecordingStatus.COMPLETED:
            raise InvalidTransition("Recording has already been processed")

        await usage_service.check_quota(db, recording.user_id, recording.duration)

        audio_url = await asyncio.to_thread(
            storage_service.generate_presigned_url,
            recording.audio_path,
            settings.audio_url_expiry_seconds,
        )

        transition_recording(recording, RecordingStatus.PROCESSING)

        job = ProcessingJob(
            recording_id=recording.id,
            user_id=recording.user_id,
            step=JobStep.TRANSCRIPTION,
            status=JobStatus.PROCESSING,
            started_at=_now(),
        )
        db.add(job)
        await db.flush()

        try:
            transcript = await transcription_service.submit(audio_url)
        except TranscriptionError:
            fail_processing(
                recording,
                job,
                "Failed to submit audio for transcription",
                "Transcription submission failed",
            )
            await db.flush()
            raise

        job.transcript_id = transcript.id
        await db.flush()

        logger.info(
            f"Started processing recording {recording.id}: job {job.id}, transcript {transcript.id}"
        )
        return job

    async def advance(
        self,
        db: AsyncSession,
        recording_id: str,
        user_id: Optional[str] = None,
    ) -> Optional[PipelineState]:
        """
        Advance a recording by at most one step and report where it is.

        Safe to call repeatedly and concurrently: the recording row is locked
        for the duration of the transaction, so only one caller can move it.

        Returns:
            PipelineState, or None if the recording does not exist
        """
        recording = await recording_service.get_recording(
            db, recording_id, user_id, for_update=True
        )
        if recording is None:
            return None

        if recording.status == RecordingStatus.COMPLETED:
            notes = await recording_service.get_notes_for_recording(db, recording.id)
            return PipelineState(status="completed", step=JobStep.COMPLETED.value, notes=notes)

        if recording.status == RecordingStatus.FAILED:
            return PipelineState(
                status="failed",
                error=recording.error_message or "Processing failed",
            )

        job = await recording_service.get_latest_job(db, recording.id, for_update=True)
        if job is None:
            return PipelineState(status="pending", message="No processing job found")

        if job.status == JobStatus.FAILED:
            return PipelineState(status="failed", error=job.error or "Processing failed")

        if job.step == JobStep.TRANSCRIPTION and job.transcript_id:
            return await self._check_transcription(db, recording, job)

        return PipelineState(
            status="processing",
            step=job.step.value,
            message="Processing in progress...",
        )

    async def _check_transcription(
        self,
        db: AsyncSession,
        recording: Recording,
        job: ProcessingJob,
    ) -> PipelineState:
        job.attempts = (job.attempts or 0) + 1

        try:
            transcript = await transcription_service.get(job.transcript_id)
        except TranscriptionError:
            # Transient: the next poll tries again
            return PipelineState(
                status="processing",
                step=JobStep.TRANSCRIPTION.value,
                message="Checking transcription status...",
            )

        if transcript.is_error:
            error = transcript.error or "Transcription failed"
            fail_processing(recording, job, error)
            await db.flush()
            return PipelineState(status="failed", error=error)

        if transcript.is_completed:
            if not (transcript.text or "").strip():
                fail_processing(recording, job, "No speech was detected in the recording")
                await db.flush()
                return PipelineState(status="failed", error=job.error)

            # Uploads without a declared duration were admitted on 0 seconds
            if not recording.duration and transcript.audio_duration:
                recording.duration = int(round(transcript.audio_duration))
                try:
                    await usage_service.check_quota(db, recording.user_id, recording.duration)
                except QuotaExceeded as e:
                    fail_processing(recording, job, str(e))
                    await db.flush()
                    return PipelineState(status="failed", error=job.error)

            return await self._generate_notes(db, recording, job, transcript)

        return PipelineState(
            status="processing",
            step=JobStep.TRANSCRIPTION.value,
            message="Transcribing audio...",
        )

    async def _generate_notes(
        self,
        db: AsyncSession,
        recording: Recording,
        job: ProcessingJob,
        transcript: Transcript,
    ) -> PipelineState:
        advance_step(job, JobStep.NOTE_GENERATION)
        await db.flush()

        try:
            generated = await note_service.generate(
                transcript.text, recording.subject, recording.exam_board
            )
        except NoteGenerationError as e:
            fail_processing(recording, job, str(e), "Note generation failed")
            await db.flush()
            return PipelineState(status="failed", error="Failed to generate notes")

        notes = StudyNotes(
            recording_id=recording.id,
            user_id=recording.user_id,
            title=recording.title or "Untitled Notes",
            summary=generated.summary,
            content=generated.content,
            key_concepts=generated.key_concepts,
            flashcards=generated.flashcards,
            exam_tips=generated.exam_tips,
            transcription_text=transcript.text,
            word_count=generated.word_count,
        )
        db.add(notes)
        await db.flush()

        advance_step(job, JobStep.COMPLETED)
        job.status = JobStatus.COMPLETED
        job.result_id = notes.id
        job.completed_at = _now()
        transition_recording(recording, RecordingStatus.COMPLETED)

        await usage_service.record_usage(db, recording.user_id, recording.duration)
        await db.flush()

        logger.info(f"Completed recording {recording.id}: notes {notes.id}")
        return PipelineState(status="completed", step=JobStep.COMPLETED.value, notes=notes)

    async def fail_stale_jobs(
        self,
        db: AsyncSession,
        older_than: Optional[timedelta] = None,
    ) -> int:
        """
        Fail jobs that have been processing for too long.

        Returns:
            Number of jobs failed
        """
        older_than = older_than or timedelta(minutes=settings.stale_job_timeout_minutes)
        cutoff = _now() - older_than

        result = await db.execute(
            select(ProcessingJob, Recording)
            .join(Recording, Recording.id == ProcessingJob.recording_id)
            .where(
                ProcessingJob.status == JobStatus.PROCESSING,
                Recording.status == RecordingStatus.PROCESSING,
                ProcessingJob.started_at < cutoff,
            )
            .with_for_update()
        )
        rows = list(result.all())

        for job, recording in rows:
            fail_processing(recording, job, "Processing timed out")

        await db.flush()
        return len(rows)


# Singleton instance
pipeline_service = PipelineService()
