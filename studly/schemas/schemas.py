"""Pydantic schemas for request/response validation."""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============== Tag Normalization ==============

EXAM_BOARD_ALIASES = {
    "ib": "IB",
    "a-level": "A-Level",
    "alevel": "A-Level",
    "a level": "A-Level",
    "gcse": "GCSE",
    "ap": "AP",
    "other": "other",
}


def normalize_subject(subject: str | None) -> str | None:
    """Normalize a subject tag; empty strings become None."""
    if subject is None:
        return None
    subject = subject.strip().lower().replace(" ", "_")
    if subject == "mathematics":
        subject = "maths"
    return subject or None


def normalize_exam_board(exam_board: str | None) -> str | None:
    """Normalize an exam board tag to its canonical spelling."""
    if exam_board is None:
        return None
    exam_board = exam_board.strip()
    if not exam_board:
        return None
    return EXAM_BOARD_ALIASES.get(exam_board.lower(), exam_board)


# ============== Recording Schemas ==============


class RecordingUploadResponse(BaseModel):
    """Response after uploading a recording."""

    recording_id: str
    audio_path: str
    status: str
    created_at: datetime


class RecordingResponse(BaseModel):
    """A recording as shown in the dashboard."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    status: str
    duration: Optional[int] = None
    file_size: Optional[int] = None
    subject: Optional[str] = None
    exam_board: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)


class RecordingListResponse(BaseModel):
    """Paginated list of recordings."""

    recordings: list[RecordingResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class ProcessStartResponse(BaseModel):
    """Response after the pipeline was started for a recording."""

    success: bool = True
    job_id: str
    transcript_id: Optional[str] = None
    message: str = "Processing started"


class AudioUrlResponse(BaseModel):
    url: str
    expires_in: int


# ============== Notes Schemas ==============


class Flashcard(BaseModel):
    front: str
    back: str


class StudyNotesResponse(BaseModel):
    """Persisted study notes."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    recording_id: str
    title: str
    summary: Optional[str] = None
    content: Optional[str] = None
    key_concepts: list[str] = []
    flashcards: list[Flashcard] = []
    exam_tips: list[str] = []
    transcription_text: Optional[str] = None
    word_count: int = 0
    created_at: datetime


class StudyNotesListResponse(BaseModel):
    notes: list[StudyNotesResponse]
    total: int


class GenerateNotesRequest(BaseModel):
    """Request to generate notes from an existing transcription."""

    transcription_text: str = Field("", description="Lecture transcription")
    subject: Optional[str] = Field(None, description="Subject tag for the prompt")
    exam_board: Optional[str] = Field(None, description="Exam board for the prompt")

    @field_validator("subject", mode="before")
    @classmethod
    def normalize_subject_tag(cls, v: str | None) -> str | None:
        return normalize_subject(v)

    @field_validator("exam_board", mode="before")
    @classmethod
    def normalize_exam_board_tag(cls, v: str | None) -> str | None:
        return normalize_exam_board(v)


class GeneratedNotesResponse(BaseModel):
    """Notes returned straight from the generator (not persisted)."""

    summary: str
    content: str
    key_concepts: list[str]
    flashcards: list[Flashcard]
    exam_tips: list[str]
    word_count: int


# ============== Processing Status Schemas ==============


class ProcessingStatusResponse(BaseModel):
    """Result of one status poll."""

    status: Literal["pending", "processing", "completed", "failed"]
    step: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    result: Optional[StudyNotesResponse] = None


class TranscriptResponse(BaseModel):
    id: str
    status: str
    text: Optional[str] = None
    error: Optional[str] = None
    audio_duration: Optional[float] = None


# ============== Usage Schemas ==============


class UsageResponse(BaseModel):
    """Monthly usage against the plan quota."""

    plan_name: str
    plan_limit: float
    used: float
    remaining: float
    can_record: bool
    resets_at: date


# ============== Billing Schemas ==============


class CheckoutRequest(BaseModel):
    price_id: str = Field(..., min_length=1)
    plan_name: str = Field(..., min_length=1)

    @field_validator("plan_name")
    @classmethod
    def lower_plan(cls, v: str) -> str:
        return v.strip().lower()


class RedirectUrlResponse(BaseModel):
    url: str


class SubscriptionResponse(BaseModel):
    """Subscription details shown on the settings page."""

    model_config = ConfigDict(from_attributes=True)

    plan_name: str
    status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    hours_used: float = 0.0
    monthly_hours_limit: Optional[float] = None

    @field_validator("status", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)


class PlanPricing(BaseModel):
    monthly: str
    six_month: str = Field(..., alias="6month")
    yearly: str

    model_config = ConfigDict(populate_by_name=True)


class PlanInfo(BaseModel):
    """Public plan catalogue entry."""

    name: str
    hours_per_month: float
    price_ids: PlanPricing


# ============== Health & Misc Schemas ==============


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    redis: str
    storage: str
