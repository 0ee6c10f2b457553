"""Plan quota service: the single place that reads and writes usage counters."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from studly.config import get_settings
from studly.db.models import ACTIVE_SUBSCRIPTION_STATUSES, Subscription
from studly.errors import QuotaExceeded

logger = logging.getLogger(__name__)

settings = get_settings()

SECONDS_PER_HOUR = 3600


@dataclass
class UsageSummary:
    """Monthly usage for one subscription."""

    plan_name: str
    plan_limit: float
    used: float
    resets_at: date

    @property
    def remaining(self) -> float:
        return max(0.0, self.plan_limit - self.used)

    @property
    def can_record(self) -> bool:
        return self.used < self.plan_limit

    def to_dict(self) -> dict:
        return {
            "plan_name": self.plan_name,
            "plan_limit": self.plan_limit,
            "used": round(self.used, 2),
            "remaining": round(self.remaining, 2),
            "can_record": self.can_record,
            "resets_at": self.resets_at,
        }


def month_start(today: Optional[date] = None) -> date:
    """First day of the month containing `today` (UTC)."""
    today = today or datetime.now(timezone.utc).date()
    return today.replace(day=1)


def next_month_start(today: Optional[date] = None) -> date:
    """First day of the month after `today`; limits reset on this date."""
    start = month_start(today)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


class UsageService:
    """Service for plan limits and monthly recording-hour usage."""

    def plan_limit(self, subscription: Subscription) -> float:
        """Hours per month for a subscription, honoring per-user overrides."""
        if subscription.monthly_hours_limit:
            return float(subscription.monthly_hours_limit)
        plan_name = (subscription.plan_name or "starter").lower()
        return float(
            settings.plan_hour_limits.get(plan_name, settings.default_plan_hours)
        )

    async def get_active_subscription(
        self,
        db: AsyncSession,
        user_id: str,
        for_update: bool = False,
    ) -> Optional[Subscription]:
        """Get the user's subscription if it is active or trialing."""
        query = select(Subscription).where(
            Subscription.user_id == user_id,
            Subscription.status.in_(ACTIVE_SUBSCRIPTION_STATUSES),
        )
        if for_update:
            query = query.with_for_update()

        result = await db.execute(query)
        return result.scalar_one_or_none()

    def apply_monthly_reset(
        self, subscription: Subscription, today: Optional[date] = None
    ) -> bool:
        """
        Zero the counter if it belongs to an earlier month.

        Limits reset on the 1st of each month regardless of billing period.

        Returns:
            True if the counter was reset
        """
        current = month_start(today)
        if subscription.usage_period_start == current:
            return False

        was_reset = subscription.usage_period_start is not None
        if was_reset and subscription.hours_used:
            logger.info(
                f"Resetting usage for user {subscription.user_id}: "
                f"{subscription.hours_used:.2f}h used in period {subscription.usage_period_start}"
            )
            subscription.hours_used = 0.0
        subscription.usage_period_start = current
        return was_reset

    def summarize(
        self, subscription: Subscription, today: Optional[date] = None
    ) -> UsageSummary:
        return UsageSummary(
            plan_name=subscription.plan_name or "starter",
            plan_limit=self.plan_limit(subscription),
            used=subscription.hours_used or 0.0,
            resets_at=next_month_start(today),
        )

    async def get_usage(
        self, db: AsyncSession, user_id: str, today: Optional[date] = None
    ) -> UsageSummary:
        """
        Get this month's usage for a user.

        Raises:
            QuotaExceeded: if the user has no active subscription
        """
        subscription = await self.get_active_subscription(db, user_id)
        if subscription is None:
            raise QuotaExceeded("No active subscription")

        self.apply_monthly_reset(subscription, today)
        return self.summarize(subscription, today)

    async def check_quota(
        self,
        db: AsyncSession,
        user_id: str,
        additional_seconds: Optional[int] = None,
        today: Optional[date] = None,
    ) -> UsageSummary:
        """
        Decide whether the user may record/process `additional_seconds` more audio.

        Raises:
            QuotaExceeded: if there is no active subscription, the monthly
                limit has been reached, or the new audio would exceed it
        """
        usage = await self.get_usage(db, user_id, today)

        if not usage.can_record:
            logger.warning(f"Quota reached for user {user_id}: {usage.used:.2f}/{usage.plan_limit}h")
            raise QuotaExceeded(
                "You have reached your monthly hours limit. "
                "Please upgrade your plan or wait until next month."
            )

        additional_hours = (additional_seconds or 0) / SECONDS_PER_HOUR
        if usage.used + additional_hours > usage.plan_limit:
            logger.warning(
                f"Recording of {additional_seconds}s would exceed quota for user {user_id}"
            )
            raise QuotaExceeded(
                "This recording would exceed your monthly limit. Please upgrade your plan."
            )

        return usage

    async def record_usage(
        self,
        db: AsyncSession,
        user_id: str,
        seconds: Optional[int],
        today: Optional[date] = None,
    ) -> Optional[float]:
        """
        Add processed audio to the user's monthly counter.

        Returns:
            New hours_used, or None if nothing was recorded
        """
        if not seconds:
            return None

        result = await db.execute(
            select(Subscription).where(Subscription.user_id == user_id).with_for_update()
        )
        subscription = result.scalar_one_or_none()
        if subscription is None:
            logger.warning(f"No subscription row to record usage for user {user_id}")
            return None

        self.apply_monthly_reset(subscription, today)
        subscription.hours_used = (subscription.hours_used or 0.0) + seconds / SECONDS_PER_HOUR
        logger.info(
            f"Recorded {seconds}s for user {user_id}, now {subscription.hours_used:.2f}h"
        )
        return subscription.hours_used

    async def reset_all(self, db: AsyncSession, today: Optional[date] = None) -> int:
        """
        Reset every counter that belongs to an earlier month.

        Returns:
            Number of subscriptions reset
        """
        current = month_start(today)
        result = await db.execute(
            update(Subscription)
            .where(Subscription.usage_period_start < current)
            .values(hours_used=0.0, usage_period_start=current)
        )

        # Counters that never had a period start counting from this month
        await db.execute(
            update(Subscription)
            .where(Subscription.usage_period_start.is_(None))
            .values(usage_period_start=current)
        )
        return result.rowcount or 0


# Singleton instance
usage_service = UsageService()
