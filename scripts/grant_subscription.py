"""Script to grant a complimentary subscription to a user (support and testing)."""

import argparse
import asyncio
import sys

sys.path.insert(0, ".")

from sqlalchemy import select

from studly.config import get_settings
from studly.db.models import Subscription, SubscriptionStatus
from studly.db.session import async_session_maker, init_db
from studly.services.usage import month_start


async def main(user_id: str, plan_name: str, hours: float | None, reset_usage: bool):
    """Create or update the user's subscription row without going through Stripe."""
    settings = get_settings()
    if plan_name not in settings.plan_hour_limits:
        print(f"Unknown plan '{plan_name}'. Choose from: {', '.join(settings.plan_hour_limits)}")
        sys.exit(1)

    print("Initializing database...")
    await init_db()

    async with async_session_maker() as db:
        result = await db.execute(select(Subscription).where(Subscription.user_id == user_id))
        subscription = result.scalar_one_or_none()
        if subscription is None:
            subscription = Subscription(user_id=user_id, hours_used=0.0)
            db.add(subscription)

        subscription.plan_name = plan_name
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.monthly_hours_limit = hours
        if reset_usage or subscription.usage_period_start is None:
            subscription.hours_used = 0.0
            subscription.usage_period_start = month_start()
        await db.commit()

        limit = hours or settings.plan_hour_limits[plan_name]
        print("\n" + "=" * 60)
        print("SUBSCRIPTION GRANTED")
        print("=" * 60)
        print(f"\nUser:   {user_id}")
        print(f"Plan:   {plan_name} ({limit}h / month)")
        print(f"Used:   {subscription.hours_used:.2f}h")
        print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("user_id", help="Supabase user id")
    parser.add_argument("--plan", default="pro", help="starter, pro, elite or basic")
    parser.add_argument("--hours", type=float, default=None, help="Override monthly hours")
    parser.add_argument("--reset-usage", action="store_true", help="Zero this month's usage")
    args = parser.parse_args()

    asyncio.run(main(args.user_id, args.plan, args.hours, args.reset_usage))
