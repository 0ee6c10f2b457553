"""Celery worker configuration and tasks."""

import asyncio
import logging

from celery import Celery, Task

from studly.config import get_settings

settings = get_settings()

logger = logging.getLogger(__name__)

# Create Celery app
celery_app = Celery(
    "studly_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=300,  # Note generation can take a while
    task_soft_time_limit=270,
    worker_prefetch_multiplier=1,  # Fetch one task at a time
    task_acks_late=True,  # Ack after task completes
    task_reject_on_worker_lost=True,
    task_default_queue="default",
    task_queues={
        "default": {"exchange": "default", "routing_key": "default"},
        "pipeline": {"exchange": "pipeline", "routing_key": "pipeline"},
    },
    task_routes={
        "studly.worker.advance_recording": {"queue": "pipeline"},
    },
    beat_schedule={
        "reset-monthly-usage": {
            "task": "studly.worker.reset_monthly_usage",
            "schedule": 3600.0,  # Every hour; only acts on the 1st
        },
        "fail-stale-jobs": {
            "task": "studly.worker.fail_stale_jobs",
            "schedule": 600.0,  # Every 10 minutes
        },
    },
)


class BaseTask(Task):
    """Base task with retry configuration."""

    autoretry_for = (Exception,)
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True
    max_retries = 3


@celery_app.task(bind=True, base=BaseTask, name="studly.worker.advance_recording")
def advance_recording(self, recording_id: str, poll: int = 1) -> dict:
    """
    Advance a recording through the pipeline in the background.

    Re-schedules itself every `pipeline_poll_interval_seconds` until the
    recording reaches a terminal state or `pipeline_max_polls` is hit, so
    processing finishes even when no client is polling.

    Args:
        recording_id: Recording to advance
        poll: How many times this recording has been checked by the worker

    Returns:
        Dict with the state after this step
    """
    from studly.db.session import task_session
    from studly.services.pipeline import pipeline_service

    async def do_advance():
        async with task_session() as db:
            state = await pipeline_service.advance(db, recording_id)
            await db.commit()
            return state

    state = asyncio.run(do_advance())

    if state is None:
        logger.warning(f"Recording {recording_id} no longer exists, stopping")
        return {"recording_id": recording_id, "status": "missing"}

    if not state.is_terminal:
        if poll < settings.pipeline_max_polls:
            advance_recording.apply_async(
                args=[recording_id, poll + 1],
                countdown=settings.pipeline_poll_interval_seconds,
            )
        else:
            logger.warning(
                f"Recording {recording_id} still {state.status} after {poll} polls, giving up"
            )

    return {"recording_id": recording_id, "status": state.status, "step": state.step}


@celery_app.task(name="studly.worker.reset_monthly_usage")
def reset_monthly_usage() -> int:
    """Periodic task to reset usage counters from previous months."""
    from studly.db.session import task_session
    from studly.services.usage import usage_service

    async def do_reset():
        async with task_session() as db:
            count = await usage_service.reset_all(db)
            await db.commit()
            return count

    count = asyncio.run(do_reset())
    if count:
        logger.info(f"Reset monthly usage for {count} subscriptions")
    return count


@celery_app.task(name="studly.worker.fail_stale_jobs")
def fail_stale_jobs() -> int:
    """Periodic task to fail processing jobs that never finished."""
    from studly.db.session import task_session
    from studly.services.pipeline import pipeline_service

    async def do_cleanup():
        async with task_session() as db:
            count = await pipeline_service.fail_stale_jobs(db)
            await db.commit()
            return count

    count = asyncio.run(do_cleanup())
    if count:
        logger.info(f"Failed {count} stale processing jobs")
    return count


def enqueue_processing(recording_id: str):
    """
    Schedule background advancement of a recording.

    The first check is delayed by one poll interval since the vendor needs
    time before a transcript can be ready.
    """
    advance_recording.apply_async(
        args=[recording_id, 1],
        countdown=settings.pipeline_poll_interval_seconds,
    )
