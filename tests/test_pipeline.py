"""Tests for the transcription and note-generation pipeline."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient

from studly.db.models import JobStatus, JobStep, ProcessingJob, Recording, RecordingStatus
from studly.errors import InvalidTransition, NoteGenerationError, TranscriptionError
from studly.services.notes import GeneratedNotes, note_service
from studly.services.pipeline import advance_step, pipeline_service, transition_recording
from studly.services.recording_service import recording_service
from studly.services.transcription import Transcript, transcription_service

LECTURE_TEXT = "Photosynthesis converts light energy into chemical energy in chloroplasts."


class FakeTranscriptionVendor:
    """Scripted stand-in for the speech-to-text API."""

    def __init__(self, statuses=("processing", "completed"), text=LECTURE_TEXT, error=None):
        self.statuses = list(statuses)
        self.text = text
        self.error = error
        self.submitted = []
        self.checks = 0
        self.fail_submit = False
        self.fail_get = False

    async def submit(self, audio_url, language_code=None):
        if self.fail_submit:
            raise TranscriptionError("Transcription submission failed: 401")
        self.submitted.append(audio_url)
        return Transcript(id="tr_123", status="queued")

    async def get(self, transcript_id):
        if self.fail_get:
            raise TranscriptionError("Transcription service unreachable")
        self.checks += 1
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return Transcript(
            id=transcript_id,
            status=status,
            text=self.text if status == "completed" else None,
            error=self.error if status == "error" else None,
            audio_duration=1800.0,
        )


class FakeNoteGenerator:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def generate(self, transcription, subject=None, exam_board=None):
        self.calls.append((transcription, subject, exam_board))
        if self.fail:
            raise NoteGenerationError("Note generator returned invalid JSON")
        return GeneratedNotes(
            summary="Light becomes sugar.",
            content="## Photosynthesis\n- Light reactions\n- Calvin cycle",
            key_concepts=["chloroplast", "ATP"],
            flashcards=[{"front": "Where does photosynthesis occur?", "back": "Chloroplasts"}],
            exam_tips=["Label the diagram"],
        )


@pytest.fixture
def vendor(monkeypatch):
    fake = FakeTranscriptionVendor()
    monkeypatch.setattr(transcription_service, "submit", fake.submit)
    monkeypatch.setattr(transcription_service, "get", fake.get)
    return fake


@pytest.fixture
def generator(monkeypatch):
    fake = FakeNoteGenerator()
    monkeypatch.setattr(note_service, "generate", fake.generate)
    return fake


@pytest_asyncio.fixture
async def recording(db_session, user_id):
    rec = await recording_service.create_recording(
        db_session,
        user_id,
        f"{user_id}/1700000000000.webm",
        title="Photosynthesis",
        duration=1800,
        subject="biology",
        exam_board="A-Level",
    )
    await db_session.commit()
    return rec


@pytest.mark.asyncio
async def test_full_pipeline_counts_usage_once(
    client: AsyncClient, subscription, recording, vendor, generator, enqueued
):
    response = await client.post(f"/v1/recordings/{recording.id}/process")
    assert response.status_code == 202
    data = response.json()
    assert data["success"] is True
    assert data["transcript_id"] == "tr_123"
    assert enqueued == [recording.id]
    assert vendor.submitted == [f"https://storage.test/{recording.audio_path}?expires=3600"]

    # First poll: vendor still transcribing
    response = await client.get(f"/v1/recordings/{recording.id}/status")
    assert response.status_code == 200
    assert response.json()["status"] == "processing"
    assert response.json()["step"] == "transcription"

    # Second poll: transcript ready, notes generated in the same request
    response = await client.get(f"/v1/recordings/{recording.id}/status")
    data = response.json()
    assert data["status"] == "completed"
    assert data["result"]["summary"] == "Light becomes sugar."
    assert data["result"]["flashcards"][0]["back"] == "Chloroplasts"
    assert data["result"]["transcription_text"] == LECTURE_TEXT
    assert data["result"]["word_count"] == 8
    assert generator.calls == [(LECTURE_TEXT, "biology", "A-Level")]
    assert recording.status == RecordingStatus.COMPLETED
    assert subscription.hours_used == pytest.approx(0.5)

    # Further polls return the stored notes without touching vendors or usage
    response = await client.get(f"/v1/recordings/{recording.id}/status")
    assert response.json()["status"] == "completed"
    assert response.json()["result"]["id"] == data["result"]["id"]
    assert vendor.checks == 2
    assert len(generator.calls) == 1
    assert subscription.hours_used == pytest.approx(0.5)

    usage = (await client.get("/v1/usage")).json()
    assert usage["used"] == 0.5
    assert usage["remaining"] == 4.5
    assert usage["can_record"] is True


@pytest.mark.asyncio
async def test_completed_recording_cannot_be_processed_again(
    client: AsyncClient, subscription, recording, vendor, generator
):
    await client.post(f"/v1/recordings/{recording.id}/process")
    await client.get(f"/v1/recordings/{recording.id}/status")
    await client.get(f"/v1/recordings/{recording.id}/status")

    response = await client.post(f"/v1/recordings/{recording.id}/process")
    assert response.status_code == 409
    assert subscription.hours_used == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_processing_recording_cannot_be_started_twice(
    client: AsyncClient, subscription, recording, vendor
):
    assert (await client.post(f"/v1/recordings/{recording.id}/process")).status_code == 202
    response = await client.post(f"/v1/recordings/{recording.id}/process")
    assert response.status_code == 409
    assert response.json()["error"] == "Invalid status transition"


@pytest.mark.asyncio
async def test_submit_failure_marks_rows_failed(
    client: AsyncClient, db_session, subscription, recording, vendor, enqueued
):
    vendor.fail_submit = True

    response = await client.post(f"/v1/recordings/{recording.id}/process")
    assert response.status_code == 502
    assert enqueued == []

    assert recording.status == RecordingStatus.FAILED
    assert recording.error_message == "Transcription submission failed"
    job = await recording_service.get_latest_job(db_session, recording.id)
    assert job.status == JobStatus.FAILED
    assert job.error == "Failed to submit audio for transcription"

    status = (await client.get(f"/v1/recordings/{recording.id}/status")).json()
    assert status["status"] == "failed"
    assert subscription.hours_used == 0.0


@pytest.mark.asyncio
async def test_failed_recording_can_be_retried(
    client: AsyncClient, subscription, recording, vendor, generator
):
    vendor.fail_submit = True
    await client.post(f"/v1/recordings/{recording.id}/process")
    vendor.fail_submit = False

    response = await client.post(f"/v1/recordings/{recording.id}/process")
    assert response.status_code == 202
    assert recording.status == RecordingStatus.PROCESSING
    assert recording.error_message is None


@pytest.mark.asyncio
async def test_process_blocked_by_quota(client: AsyncClient, db_session, subscription, recording, vendor):
    subscription.hours_used = 4.9
    await db_session.commit()

    response = await client.post(f"/v1/recordings/{recording.id}/process")
    assert response.status_code == 403
    assert vendor.submitted == []
    assert recording.status == RecordingStatus.UPLOADED


@pytest.mark.asyncio
async def test_vendor_transcription_error(client: AsyncClient, subscription, recording, vendor):
    vendor.statuses = ["error"]
    vendor.error = "Audio file could not be decoded"
    await client.post(f"/v1/recordings/{recording.id}/process")

    data = (await client.get(f"/v1/recordings/{recording.id}/status")).json()
    assert data["status"] == "failed"
    assert data["error"] == "Audio file could not be decoded"
    assert recording.status == RecordingStatus.FAILED
    assert subscription.hours_used == 0.0


@pytest.mark.asyncio
async def test_empty_transcript_fails(client: AsyncClient, subscription, recording, vendor, generator):
    vendor.statuses = ["completed"]
    vendor.text = "   "
    await client.post(f"/v1/recordings/{recording.id}/process")

    data = (await client.get(f"/v1/recordings/{recording.id}/status")).json()
    assert data["status"] == "failed"
    assert data["error"] == "No speech was detected in the recording"
    assert generator.calls == []


@pytest.mark.asyncio
async def test_transient_status_check_error_keeps_processing(
    client: AsyncClient, subscription, recording, vendor
):
    await client.post(f"/v1/recordings/{recording.id}/process")
    vendor.fail_get = True

    data = (await client.get(f"/v1/recordings/{recording.id}/status")).json()
    assert data["status"] == "processing"
    assert data["message"] == "Checking transcription status..."
    assert recording.status == RecordingStatus.PROCESSING


@pytest.mark.asyncio
async def test_note_generation_failure(
    client: AsyncClient, db_session, subscription, recording, vendor, generator
):
    generator.fail = True
    vendor.statuses = ["completed"]
    await client.post(f"/v1/recordings/{recording.id}/process")

    data = (await client.get(f"/v1/recordings/{recording.id}/status")).json()
    assert data["status"] == "failed"
    assert data["error"] == "Failed to generate notes"
    assert recording.error_message == "Note generation failed"

    job = await recording_service.get_latest_job(db_session, recording.id)
    assert job.step == JobStep.NOTE_GENERATION
    assert job.status == JobStatus.FAILED
    assert subscription.hours_used == 0.0


@pytest.mark.asyncio
async def test_status_of_unprocessed_recording_is_pending(client: AsyncClient, recording):
    data = (await client.get(f"/v1/recordings/{recording.id}/status")).json()
    assert data["status"] == "pending"


@pytest.mark.asyncio
async def test_status_of_unknown_recording(client: AsyncClient):
    response = await client.get("/v1/recordings/00000000-0000-0000-0000-000000000000/status")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_transcript_lookup_limited_to_own_jobs(
    client: AsyncClient, subscription, recording, vendor
):
    await client.post(f"/v1/recordings/{recording.id}/process")

    response = await client.get("/v1/transcripts/tr_123")
    assert response.status_code == 200
    assert response.json()["id"] == "tr_123"

    response = await client.get("/v1/transcripts/tr_other")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_fail_stale_jobs(db_session, recording):
    transition_recording(recording, RecordingStatus.PROCESSING)
    job = ProcessingJob(
        recording_id=recording.id,
        user_id=recording.user_id,
        step=JobStep.TRANSCRIPTION,
        status=JobStatus.PROCESSING,
        transcript_id="tr_stale",
        started_at=datetime.now(timezone.utc) - timedelta(hours=2),
    )
    db_session.add(job)
    await db_session.commit()

    assert await pipeline_service.fail_stale_jobs(db_session, timedelta(minutes=60)) == 1
    assert job.status == JobStatus.FAILED
    assert job.error == "Processing timed out"
    assert recording.status == RecordingStatus.FAILED

    # Already failed jobs are not picked up again
    assert await pipeline_service.fail_stale_jobs(db_session, timedelta(minutes=60)) == 0


def test_recording_transitions():
    recording = Recording(id="rec-1", status=RecordingStatus.UPLOADED)

    with pytest.raises(InvalidTransition):
        transition_recording(recording, RecordingStatus.COMPLETED)

    transition_recording(recording, RecordingStatus.PROCESSING)
    transition_recording(recording, RecordingStatus.COMPLETED)

    with pytest.raises(InvalidTransition):
        transition_recording(recording, RecordingStatus.PROCESSING)


def test_job_steps_only_move_forward():
    job = ProcessingJob(step=JobStep.NOTE_GENERATION)
    with pytest.raises(InvalidTransition):
        advance_step(job, JobStep.TRANSCRIPTION)
    advance_step(job, JobStep.COMPLETED)
    assert job.step == JobStep.COMPLETED


@pytest.mark.asyncio
async def test_undeclared_duration_checked_against_quota_before_notes(
    client: AsyncClient, db_session, subscription, user_id, vendor, generator
):
    recording = await recording_service.create_recording(
        db_session, user_id, f"{user_id}/1700000000001.webm", title="Long lecture"
    )
    subscription.hours_used = 4.9
    await db_session.commit()

    # Admitted on zero seconds; the vendor then reports 30 minutes of audio
    assert (await client.post(f"/v1/recordings/{recording.id}/process")).status_code == 202
    vendor.statuses = ["completed"]

    data = (await client.get(f"/v1/recordings/{recording.id}/status")).json()
    assert data["status"] == "failed"
    assert "exceed your monthly limit" in data["error"]
    assert generator.calls == []
    assert recording.duration == 1800
    assert subscription.hours_used == pytest.approx(4.9)


@pytest.mark.asyncio
async def test_undeclared_duration_charged_from_vendor(
    client: AsyncClient, db_session, subscription, user_id, vendor, generator
):
    recording = await recording_service.create_recording(
        db_session, user_id, f"{user_id}/1700000000002.webm", title="Short lecture"
    )
    await db_session.commit()

    await client.post(f"/v1/recordings/{recording.id}/process")
    vendor.statuses = ["completed"]

    data = (await client.get(f"/v1/recordings/{recording.id}/status")).json()
    assert data["status"] == "completed"
    assert recording.duration == 1800
    assert subscription.hours_used == pytest.approx(0.5)
