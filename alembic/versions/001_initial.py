"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2026-09-14

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SUBSCRIPTION_STATUSES = (
    'trialing', 'active', 'past_due', 'canceled',
    'incomplete', 'incomplete_expired', 'unpaid', 'paused',
)


def upgrade() -> None:
    # Create recordings table
    op.create_table(
        'recordings',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=False), nullable=False, index=True),
        sa.Column('title', sa.String(255), nullable=False, server_default='Untitled Recording'),
        sa.Column('audio_path', sa.Text(), nullable=False),
        sa.Column('filename', sa.String(255), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('content_type', sa.String(100), nullable=False, server_default='audio/webm'),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('subject', sa.String(100), nullable=True),
        sa.Column('exam_board', sa.String(50), nullable=True),
        sa.Column('status', sa.Enum('uploaded', 'pending', 'processing', 'completed', 'failed', name='recordingstatus'), nullable=False, server_default='uploaded'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    # Create study_notes table
    op.create_table(
        'study_notes',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('recording_id', postgresql.UUID(as_uuid=False), sa.ForeignKey('recordings.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=False), nullable=False, index=True),
        sa.Column('title', sa.String(255), nullable=False, server_default='Untitled Notes'),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('key_concepts', postgresql.JSON(), nullable=True),
        sa.Column('flashcards', postgresql.JSON(), nullable=True),
        sa.Column('exam_tips', postgresql.JSON(), nullable=True),
        sa.Column('transcription_text', sa.Text(), nullable=True),
        sa.Column('word_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Create processing_jobs table
    op.create_table(
        'processing_jobs',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('recording_id', postgresql.UUID(as_uuid=False), sa.ForeignKey('recordings.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=False), nullable=False, index=True),
        sa.Column('step', sa.Enum('transcription', 'note_generation', 'completed', name='jobstep'), nullable=False, server_default='transcription'),
        sa.Column('status', sa.Enum('pending', 'processing', 'completed', 'failed', name='jobstatus'), nullable=False, server_default='pending'),
        sa.Column('transcript_id', sa.String(100), nullable=True, index=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('result_id', postgresql.UUID(as_uuid=False), sa.ForeignKey('study_notes.id', ondelete='SET NULL'), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )

    # Create subscriptions table
    op.create_table(
        'subscriptions',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=False), nullable=False, unique=True, index=True),
        sa.Column('stripe_customer_id', sa.String(100), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(100), nullable=True, unique=True, index=True),
        sa.Column('stripe_price_id', sa.String(100), nullable=True),
        sa.Column('plan_name', sa.String(50), nullable=False, server_default='starter'),
        sa.Column('status', sa.Enum(*SUBSCRIPTION_STATUSES, name='subscriptionstatus'), nullable=False, server_default='incomplete'),
        sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('hours_used', sa.Float(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    # Create customers table
    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=False), nullable=False, unique=True, index=True),
        sa.Column('stripe_customer_id', sa.String(100), nullable=False, unique=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Create payments table
    op.create_table(
        'payments',
        sa.Column('id', postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=False), nullable=False, index=True),
        sa.Column('stripe_payment_intent_id', sa.String(100), nullable=False, unique=True),
        sa.Column('amount', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(10), nullable=True),
        sa.Column('status', sa.String(30), nullable=False, server_default='succeeded'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Create indexes
    op.create_index('ix_recordings_status', 'recordings', ['status'])
    op.create_index('ix_recordings_created_at', 'recordings', ['created_at'])
    op.create_index('ix_processing_jobs_status', 'processing_jobs', ['status'])


def downgrade() -> None:
    op.drop_index('ix_processing_jobs_status')
    op.drop_index('ix_recordings_created_at')
    op.drop_index('ix_recordings_status')
    op.drop_table('payments')
    op.drop_table('customers')
    op.drop_table('subscriptions')
    op.drop_table('processing_jobs')
    op.drop_table('study_notes')
    op.drop_table('recordings')
    op.execute('DROP TYPE IF EXISTS subscriptionstatus')
    op.execute('DROP TYPE IF EXISTS jobstatus')
    op.execute('DROP TYPE IF EXISTS jobstep')
    op.execute('DROP TYPE IF EXISTS recordingstatus')
