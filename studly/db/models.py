"""Database models for the Studly service."""

import enum
from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studly.db.session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class RecordingStatus(str, enum.Enum):
    """Lifecycle of a recording."""

    UPLOADED = "uploaded"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStep(str, enum.Enum):
    """Step a processing job is currently on."""

    TRANSCRIPTION = "transcription"
    NOTE_GENERATION = "note_generation"
    COMPLETED = "completed"


class JobStatus(str, enum.Enum):
    """Status of a processing job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class SubscriptionStatus(str, enum.Enum):
    """Subscription states as reported by Stripe."""

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    UNPAID = "unpaid"
    PAUSED = "paused"


ACTIVE_SUBSCRIPTION_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING)


class Recording(Base):
    """An uploaded lecture recording."""

    __tablename__ = "recordings"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(UUID(as_uuid=False), index=True)
    title: Mapped[str] = mapped_column(String(255), default="Untitled Recording")

    # Audio
    audio_path: Mapped[str] = mapped_column(Text)  # Key in object storage
    filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    content_type: Mapped[str] = mapped_column(String(100), default="audio/webm")
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # Seconds

    # Tags
    subject: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    exam_board: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    status: Mapped[RecordingStatus] = mapped_column(
        Enum(RecordingStatus, name="recordingstatus", values_callable=_enum_values),
        default=RecordingStatus.UPLOADED,
        index=True,
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=_utcnow
    )

    # Relationships
    jobs: Mapped[list["ProcessingJob"]] = relationship(
        "ProcessingJob",
        back_populates="recording",
        cascade="all, delete-orphan",
        order_by="ProcessingJob.created_at",
    )
    notes: Mapped[list["StudyNotes"]] = relationship(
        "StudyNotes", back_populates="recording", cascade="all, delete-orphan"
    )


class ProcessingJob(Base):
    """Tracks transcription and note generation for one recording."""

    __tablename__ = "processing_jobs"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    recording_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("recordings.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str] = mapped_column(UUID(as_uuid=False), index=True)

    step: Mapped[JobStep] = mapped_column(
        Enum(JobStep, name="jobstep", values_callable=_enum_values),
        default=JobStep.TRANSCRIPTION,
    )
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="jobstatus", values_callable=_enum_values),
        default=JobStatus.PENDING,
    )
    transcript_id: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True, index=True
    )  # AssemblyAI transcript id
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    result_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False), ForeignKey("study_notes.id", ondelete="SET NULL"), nullable=True
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    recording: Mapped["Recording"] = relationship("Recording", back_populates="jobs")


class StudyNotes(Base):
    """Study notes generated from a recording's transcript."""

    __tablename__ = "study_notes"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    recording_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("recordings.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str] = mapped_column(UUID(as_uuid=False), index=True)
    title: Mapped[str] = mapped_column(String(255), default="Untitled Notes")

    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # Markdown
    key_concepts: Mapped[list] = mapped_column(JSON, default=list)
    flashcards: Mapped[list] = mapped_column(JSON, default=list)  # [{"front", "back"}]
    exam_tips: Mapped[list] = mapped_column(JSON, default=list)
    transcription_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    word_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    # Relationships
    recording: Mapped["Recording"] = relationship("Recording", back_populates="notes")


class Subscription(Base):
    """A user's plan, Stripe state and monthly usage counter."""

    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(UUID(as_uuid=False), unique=True, index=True)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(
        String(100), unique=True, nullable=True, index=True
    )
    stripe_price_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    plan_name: Mapped[str] = mapped_column(String(50), default="starter")
    status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus, name="subscriptionstatus", values_callable=_enum_values),
        default=SubscriptionStatus.INCOMPLETE,
    )
    current_period_start: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    current_period_end: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False)

    # Usage
    hours_used: Mapped[float] = mapped_column(Float, default=0.0)
    monthly_hours_limit: Mapped[Optional[float]] = mapped_column(
        Float, nullable=True
    )  # Overrides the plan default
    usage_period_start: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, onupdate=_utcnow
    )


class Customer(Base):
    """Mapping between a user and their Stripe customer."""

    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(UUID(as_uuid=False), unique=True, index=True)
    stripe_customer_id: Mapped[str] = mapped_column(String(100), unique=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )


class Payment(Base):
    """Payment log populated from Stripe webhook events."""

    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(UUID(as_uuid=False), index=True)
    stripe_payment_intent_id: Mapped[str] = mapped_column(String(100), unique=True)
    amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # Minor units
    currency: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    status: Mapped[str] = mapped_column(String(30), default="succeeded")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
