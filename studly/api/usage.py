"""Plan usage routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studly.auth.security import CurrentUser, require_user
from studly.db.session import get_db
from studly.schemas.schemas import UsageResponse
from studly.services.usage import usage_service

router = APIRouter(prefix="/v1/usage", tags=["Usage"])


@router.get(
    "",
    response_model=UsageResponse,
    summary="Get monthly usage",
    description="Recording hours used this month against the plan limit. Limits reset on the 1st.",
)
async def get_usage(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    usage = await usage_service.get_usage(db, user.id)
    # Persist a lazily applied monthly reset
    await db.commit()
    return UsageResponse(**usage.to_dict())
