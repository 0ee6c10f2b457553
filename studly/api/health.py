"""Health check, service info and plan catalogue routes."""

import asyncio

import redis
from fastapi import APIRouter
from sqlalchemy import text

from studly import __version__
from studly.config import get_settings
from studly.schemas.schemas import HealthResponse, PlanInfo, PlanPricing
from studly.services.storage import storage_service

router = APIRouter(tags=["System"])

settings = get_settings()


def _ping_redis() -> bool:
    try:
        return bool(redis.from_url(settings.redis_url, socket_connect_timeout=2).ping())
    except redis.RedisError:
        return False


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health status of the service and its dependencies.",
)
async def health_check():
    """
    Health check endpoint.

    Returns the status of:
    - Database connection
    - Redis connection
    - Object storage connection
    """
    redis_status = "ok" if await asyncio.to_thread(_ping_redis) else "error"

    storage_status = "ok" if await asyncio.to_thread(storage_service.health_check) else "error"

    db_status = "ok"
    try:
        from studly.db.session import engine

        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        db_status = "error"

    overall_status = "healthy"
    if "error" in (redis_status, storage_status, db_status):
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=__version__,
        database=db_status,
        redis=redis_status,
        storage=storage_status,
    )


@router.get(
    "/v1/plans",
    response_model=list[PlanInfo],
    summary="List plans",
    description="Public plan catalogue with monthly hours and Stripe price ids per billing period.",
)
async def list_plans():
    return [
        PlanInfo(
            name=name,
            hours_per_month=settings.plan_hour_limits.get(name, settings.default_plan_hours),
            price_ids=PlanPricing(**prices),
        )
        for name, prices in settings.plan_prices.items()
    ]


@router.get(
    "/v1/info",
    summary="Service information",
    description="Get general information about the service.",
)
async def service_info():
    """Get service information."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "environment": settings.app_env,
        "plans": list(settings.plan_prices.keys()),
        "transcription_provider": "assemblyai",
        "notes_model": settings.groq_model,
        "documentation": "/docs",
        "redoc": "/redoc",
    }
