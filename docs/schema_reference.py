"""
Database Schema Reference
=========================

Quick reference for the Studly tables and columns.
For actual SQLAlchemy models, see: studly/db/models.py

"""

# ============================================================================
# RECORDINGS - Uploaded lecture audio
# ============================================================================
#
# | Column        | Type                  | Constraints                        |
# |---------------|-----------------------|------------------------------------|
# | id            | UUID                  | PRIMARY KEY                        |
# | user_id       | UUID                  | NOT NULL, INDEX (Supabase user)    |
# | title         | VARCHAR(255)          | DEFAULT 'Untitled Recording'       |
# | audio_path    | TEXT                  | NOT NULL ({user_id}/{ts_ms}{ext})  |
# | filename      | VARCHAR(255)          | NULLABLE                           |
# | file_size     | INTEGER               | NULLABLE (bytes)                   |
# | content_type  | VARCHAR(100)          | DEFAULT 'audio/webm'               |
# | duration      | INTEGER               | NULLABLE (seconds)                 |
# | subject       | VARCHAR(100)          | NULLABLE                           |
# | exam_board    | VARCHAR(50)           | NULLABLE                           |
# | status        | ENUM(RecordingStatus) | NOT NULL, DEFAULT 'uploaded'       |
# | error_message | TEXT                  | NULLABLE                           |
# | created_at    | TIMESTAMP(TZ)         | NOT NULL, DEFAULT now()            |
# | updated_at    | TIMESTAMP(TZ)         | NULLABLE                           |
#
# Enums:
#   RecordingStatus: 'uploaded' | 'pending' | 'processing' | 'completed' | 'failed'
#
# Allowed transitions:
#   uploaded, pending -> processing | failed
#   processing        -> completed | failed
#   failed            -> processing (retry)
#   completed         -> (none)
#
# Relationships:
#   - jobs:  ONE-TO-MANY -> processing_jobs.recording_id (CASCADE DELETE)
#   - notes: ONE-TO-MANY -> study_notes.recording_id (CASCADE DELETE)


# ============================================================================
# PROCESSING_JOBS - One pipeline run for a recording
# ============================================================================
#
# | Column        | Type              | Constraints                          |
# |---------------|-------------------|--------------------------------------|
# | id            | UUID              | PRIMARY KEY                          |
# | recording_id  | UUID              | NOT NULL, FK(recordings.id), INDEX   |
# | user_id       | UUID              | NOT NULL, INDEX                      |
# | step          | ENUM(JobStep)     | NOT NULL, DEFAULT 'transcription'    |
# | status        | ENUM(JobStatus)   | NOT NULL, DEFAULT 'pending'          |
# | transcript_id | VARCHAR(100)      | NULLABLE, INDEX (AssemblyAI id)      |
# | error         | TEXT              | NULLABLE                             |
# | result_id     | UUID              | NULLABLE, FK(study_notes.id)         |
# | attempts      | INTEGER           | NOT NULL, DEFAULT 0 (status checks)  |
# | created_at    | TIMESTAMP(TZ)     | NOT NULL, DEFAULT now()              |
# | started_at    | TIMESTAMP(TZ)     | NULLABLE                             |
# | completed_at  | TIMESTAMP(TZ)     | NULLABLE                             |
#
# Enums:
#   JobStep:   'transcription' -> 'note_generation' -> 'completed' (never backwards)
#   JobStatus: 'pending' | 'processing' | 'completed' | 'failed'


# ============================================================================
# STUDY_NOTES - Generated notes for a recording
# ============================================================================
#
# | Column             | Type          | Constraints                         |
# |--------------------|---------------|-------------------------------------|
# | id                 | UUID          | PRIMARY KEY                         |
# | recording_id       | UUID          | NOT NULL, FK(recordings.id), INDEX  |
# | user_id            | UUID          | NOT NULL, INDEX                     |
# | title              | VARCHAR(255)  | DEFAULT 'Untitled Notes'            |
# | summary            | TEXT          | NULLABLE                            |
# | content            | TEXT          | NULLABLE (markdown)                 |
# | key_concepts       | JSON          | list of strings                     |
# | flashcards         | JSON          | list of {"front", "back"}           |
# | exam_tips          | JSON          | list of strings                     |
# | transcription_text | TEXT          | NULLABLE                            |
# | word_count         | INTEGER       | NOT NULL, DEFAULT 0                 |
# | created_at         | TIMESTAMP(TZ) | NOT NULL, DEFAULT now()             |


# ============================================================================
# SUBSCRIPTIONS - Plan, Stripe state and monthly usage (one per user)
# ============================================================================
#
# | Column                 | Type                     | Constraints              |
# |------------------------|--------------------------|--------------------------|
# | id                     | UUID                     | PRIMARY KEY              |
# | user_id                | UUID                     | NOT NULL, UNIQUE, INDEX  |
# | stripe_customer_id     | VARCHAR(100)             | NULLABLE                 |
# | stripe_subscription_id | VARCHAR(100)             | NULLABLE, UNIQUE, INDEX  |
# | stripe_price_id        | VARCHAR(100)             | NULLABLE                 |
# | plan_name              | VARCHAR(50)              | DEFAULT 'starter'        |
# | status                 | ENUM(SubscriptionStatus) | DEFAULT 'incomplete'     |
# | current_period_start   | TIMESTAMP(TZ)            | NULLABLE                 |
# | current_period_end     | TIMESTAMP(TZ)            | NULLABLE                 |
# | cancel_at_period_end   | BOOLEAN                  | DEFAULT FALSE            |
# | hours_used             | FLOAT                    | DEFAULT 0                |
# | monthly_hours_limit    | FLOAT                    | NULLABLE (override)      |
# | usage_period_start     | DATE                     | NULLABLE (1st of month)  |
# | created_at             | TIMESTAMP(TZ)            | NOT NULL, DEFAULT now()  |
# | updated_at             | TIMESTAMP(TZ)            | NULLABLE                 |
#
# Active statuses: 'active', 'trialing'
#
# Plan hours per month:
#   starter 5 | pro 15 | elite 30 | basic 5 | anything else 5


# ============================================================================
# CUSTOMERS - User to Stripe customer mapping
# ============================================================================
#
# | Column             | Type          | Constraints               |
# |--------------------|---------------|---------------------------|
# | id                 | UUID          | PRIMARY KEY               |
# | user_id            | UUID          | NOT NULL, UNIQUE, INDEX   |
# | stripe_customer_id | VARCHAR(100)  | NOT NULL, UNIQUE          |
# | email              | VARCHAR(255)  | NULLABLE                  |
# | created_at         | TIMESTAMP(TZ) | NOT NULL, DEFAULT now()   |


# ============================================================================
# PAYMENTS - Payment log written by the Stripe webhook
# ============================================================================
#
# | Column                   | Type          | Constraints             |
# |--------------------------|---------------|-------------------------|
# | id                       | UUID          | PRIMARY KEY             |
# | user_id                  | UUID          | NOT NULL, INDEX         |
# | stripe_payment_intent_id | VARCHAR(100)  | NOT NULL, UNIQUE        |
# | amount                   | INTEGER       | NULLABLE (minor units)  |
# | currency                 | VARCHAR(10)   | NULLABLE                |
# | status                   | VARCHAR(30)   | DEFAULT 'succeeded'     |
# | created_at               | TIMESTAMP(TZ) | NOT NULL, DEFAULT now() |


# ============================================================================
# INDEXES
# ============================================================================
#
# | Table           | Index Name                     | Columns        |
# |-----------------|--------------------------------|----------------|
# | recordings      | ix_recordings_user_id          | user_id        |
# | recordings      | ix_recordings_status           | status         |
# | recordings      | ix_recordings_created_at       | created_at     |
# | processing_jobs | ix_processing_jobs_recording_id| recording_id   |
# | processing_jobs | ix_processing_jobs_status      | status         |
# | processing_jobs | ix_processing_jobs_transcript_id| transcript_id |
# | study_notes     | ix_study_notes_recording_id    | recording_id   |
# | study_notes     | ix_study_notes_user_id         | user_id        |
# | subscriptions   | ix_subscriptions_user_id       | user_id        |


# ============================================================================
# ER DIAGRAM (Text)
# ============================================================================
#
#  ┌──────────────┐
#  │  recordings  │
#  ├──────────────┤
#  │ id (PK)      │──────────────┬────────────────┐
#  │ user_id      │              │ 1:N            │ 1:N
#  │ audio_path   │              ▼                ▼
#  │ duration     │   ┌─────────────────┐  ┌──────────────┐
#  │ tags         │   │ processing_jobs │  │ study_notes  │
#  │ status       │   ├─────────────────┤  ├──────────────┤
#  └──────────────┘   │ id (PK)         │  │ id (PK)      │
#                     │ recording_id FK │  │ recording_id │
#                     │ step / status   │  │ content      │
#                     │ transcript_id   │  │ flashcards   │
#                     │ result_id (FK) ─┼─►│ exam_tips    │
#                     └─────────────────┘  └──────────────┘
#
#  ┌───────────────┐   ┌──────────────┐   ┌──────────────┐
#  │ subscriptions │   │  customers   │   │   payments   │
#  ├───────────────┤   ├──────────────┤   ├──────────────┤
#  │ user_id (UQ)  │   │ user_id (UQ) │   │ user_id      │
#  │ plan / status │   │ stripe_cust  │   │ intent (UQ)  │
#  │ hours_used    │   └──────────────┘   │ amount       │
#  └───────────────┘                      └──────────────┘
