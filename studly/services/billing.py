"""Stripe checkout, customer portal and webhook handling."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studly.config import get_settings
from studly.db.models import Customer, Payment, Subscription, SubscriptionStatus
from studly.errors import BillingError

logger = logging.getLogger(__name__)

settings = get_settings()

stripe.api_key = settings.stripe_secret_key

DEFAULT_PLAN_NAME = "basic"


def _field(obj: Any, key: str, default=None):
    """Read a key from a Stripe object or plain dict, tolerating missing keys."""
    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError):
        return default
    return default if value is None else value


def _id(value: Any) -> Optional[str]:
    """Stripe fields may hold either an id or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return _field(value, "id")


def safe_timestamp(value: Any) -> Optional[datetime]:
    """Convert epoch seconds to an aware datetime; anything else becomes None."""
    if not value or isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _subscription_status(value: Any) -> SubscriptionStatus:
    try:
        return SubscriptionStatus(value)
    except ValueError:
        logger.warning(f"Unknown Stripe subscription status '{value}', storing as incomplete")
        return SubscriptionStatus.INCOMPLETE


def _first_item(stripe_subscription: Any):
    items = _field(_field(stripe_subscription, "items"), "data") or []
    return items[0] if items else None


def _period_bounds(stripe_subscription: Any) -> tuple[Optional[datetime], Optional[datetime]]:
    """Period bounds live on the subscription in older API versions, on items in newer."""
    start = _field(stripe_subscription, "current_period_start")
    end = _field(stripe_subscription, "current_period_end")
    if start is None or end is None:
        item = _first_item(stripe_subscription)
        start = start or _field(item, "current_period_start")
        end = end or _field(item, "current_period_end")
    return safe_timestamp(start), safe_timestamp(end)


class BillingService:
    """Service for Stripe subscriptions."""

    def validate_plan(self, plan_name: str, price_id: str):
        """
        Check that a plan exists and the price belongs to it.

        Raises:
            BillingError: for unknown plans or mismatched prices
        """
        prices = settings.plan_prices.get(plan_name)
        if prices is None:
            raise BillingError(f"Unknown plan: {plan_name}")
        if price_id not in prices.values():
            raise BillingError(f"Price {price_id} does not belong to plan {plan_name}")

    async def get_customer(self, db: AsyncSession, user_id: str) -> Optional[Customer]:
        result = await db.execute(select(Customer).where(Customer.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_or_create_customer(
        self,
        db: AsyncSession,
        user_id: str,
        email: Optional[str] = None,
    ) -> Customer:
        """Get the stored Stripe customer for a user, creating one if needed."""
        customer = await self.get_customer(db, user_id)
        if customer is not None:
            return customer

        created = await asyncio.to_thread(
            stripe.Customer.create,
            email=email,
            metadata={"user_id": user_id},
        )
        customer = Customer(
            user_id=user_id,
            stripe_customer_id=created["id"],
            email=email,
        )
        db.add(customer)
        await db.flush()

        logger.info(f"Created Stripe customer {customer.stripe_customer_id} for user {user_id}")
        return customer

    async def create_checkout_session(
        self,
        db: AsyncSession,
        user_id: str,
        email: Optional[str],
        price_id: str,
        plan_name: str,
    ) -> str:
        """
        Start a subscription checkout.

        Returns:
            Hosted checkout URL

        Raises:
            BillingError: for an invalid plan or a Stripe failure
        """
        self.validate_plan(plan_name, price_id)
        customer = await self.get_or_create_customer(db, user_id, email)

        metadata = {"user_id": user_id, "plan_name": plan_name}
        site_url = settings.site_url.rstrip("/")
        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create,
                customer=customer.stripe_customer_id,
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=f"{site_url}/dashboard?welcome=true&session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{site_url}/pricing",
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout error: {e}")
            raise BillingError("Could not create checkout session. Please try again.") from e

        logger.info(f"Checkout session {session['id']} created for user {user_id}, plan {plan_name}")
        return session["url"]

    async def create_portal_session(self, customer: Customer) -> str:
        """Open the Stripe billing portal for a stored customer."""
        try:
            session = await asyncio.to_thread(
                stripe.billing_portal.Session.create,
                customer=customer.stripe_customer_id,
                return_url=f"{settings.site_url.rstrip('/')}/settings",
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe portal error: {e}")
            raise BillingError("Could not open the billing portal. Please try again.") from e
        return session["url"]

    def construct_event(self, payload: bytes, signature: Optional[str]):
        """
        Verify a webhook payload.

        Raises:
            ValueError: if the payload is not valid JSON
            stripe.SignatureVerificationError: if the signature does not match
        """
        return stripe.Webhook.construct_event(
            payload, signature or "", settings.stripe_webhook_secret
        )

    async def get_subscription(self, db: AsyncSession, user_id: str) -> Optional[Subscription]:
        """Get a user's subscription regardless of status."""
        result = await db.execute(select(Subscription).where(Subscription.user_id == user_id))
        return result.scalar_one_or_none()

    async def _get_by_stripe_id(
        self, db: AsyncSession, stripe_subscription_id: str
    ) -> Optional[Subscription]:
        result = await db.execute(
            select(Subscription).where(
                Subscription.stripe_subscription_id == stripe_subscription_id
            )
        )
        return result.scalar_one_or_none()

    async def handle_event(self, db: AsyncSession, event: Any) -> bool:
        """
        Apply a verified webhook event.

        Returns:
            True if the event type is handled
        """
        event_type = _field(event, "type")
        obj = _field(_field(event, "data"), "object")
        logger.info(f"Received Stripe event: {event_type}")

        if event_type == "checkout.session.completed":
            await self._checkout_completed(db, obj)
        elif event_type == "customer.subscription.updated":
            await self._subscription_updated(db, obj)
        elif event_type == "customer.subscription.deleted":
            await self._set_status(db, _field(obj, "id"), SubscriptionStatus.CANCELED)
        elif event_type == "invoice.payment_failed":
            logger.info(f"Invoice payment failed: {_field(obj, 'id')}")
            subscription_id = _id(_field(obj, "subscription")) or _id(
                _field(_field(_field(obj, "parent"), "subscription_details"), "subscription")
            )
            if subscription_id:
                await self._set_status(db, subscription_id, SubscriptionStatus.PAST_DUE)
        elif event_type == "customer.subscription.created":
            logger.info(f"Subscription created event received: {_field(obj, 'id')}")
        elif event_type == "invoice.payment_succeeded":
            logger.info(f"Invoice payment succeeded: {_field(obj, 'id')}")
        else:
            logger.info(f"Unhandled event type: {event_type}")
            return False

        await db.flush()
        return True

    async def _checkout_completed(self, db: AsyncSession, session: Any):
        if _field(session, "mode") != "subscription":
            return

        metadata = _field(session, "metadata") or {}
        user_id = _field(metadata, "user_id")
        if not user_id:
            logger.error(f"No user_id in metadata of checkout session {_field(session, 'id')}")
            return

        plan_name = _field(metadata, "plan_name") or DEFAULT_PLAN_NAME
        stripe_subscription = await asyncio.to_thread(
            stripe.Subscription.retrieve, _id(_field(session, "subscription"))
        )
        await self.upsert_subscription(db, user_id, plan_name, stripe_subscription)

        payment_intent_id = _id(_field(session, "payment_intent"))
        if payment_intent_id:
            await self.record_payment(
                db,
                user_id,
                payment_intent_id,
                amount=_field(session, "amount_total"),
                currency=_field(session, "currency"),
            )

    async def upsert_subscription(
        self,
        db: AsyncSession,
        user_id: str,
        plan_name: str,
        stripe_subscription: Any,
    ) -> Subscription:
        """Create or replace the user's subscription row from a Stripe subscription."""
        subscription = await self.get_subscription(db, user_id)
        if subscription is None:
            subscription = Subscription(user_id=user_id, hours_used=0.0)
            db.add(subscription)

        item = _first_item(stripe_subscription)
        period_start, period_end = _period_bounds(stripe_subscription)

        subscription.stripe_customer_id = _id(_field(stripe_subscription, "customer"))
        subscription.stripe_subscription_id = _field(stripe_subscription, "id")
        subscription.stripe_price_id = _id(_field(item, "price"))
        subscription.plan_name = plan_name
        subscription.status = _subscription_status(_field(stripe_subscription, "status"))
        subscription.current_period_start = period_start
        subscription.current_period_end = period_end
        subscription.cancel_at_period_end = bool(
            _field(stripe_subscription, "cancel_at_period_end", False)
        )
        await db.flush()

        logger.info(f"Subscription created for user {user_id}, plan: {plan_name}")
        return subscription

    async def record_payment(
        self,
        db: AsyncSession,
        user_id: str,
        payment_intent_id: str,
        amount: Optional[int] = None,
        currency: Optional[str] = None,
    ) -> Optional[Payment]:
        """Log a payment once per payment intent."""
        result = await db.execute(
            select(Payment).where(Payment.stripe_payment_intent_id == payment_intent_id)
        )
        if result.scalar_one_or_none() is not None:
            logger.info(f"Payment {payment_intent_id} already recorded")
            return None

        payment = Payment(
            user_id=user_id,
            stripe_payment_intent_id=payment_intent_id,
            amount=amount,
            currency=currency,
            status="succeeded",
        )
        db.add(payment)
        await db.flush()
        return payment

    async def _subscription_updated(self, db: AsyncSession, stripe_subscription: Any):
        subscription_id = _field(stripe_subscription, "id")
        subscription = await self._get_by_stripe_id(db, subscription_id)
        if subscription is None:
            logger.info(f"Subscription not found in database, might be new: {subscription_id}")
            return

        period_start, period_end = _period_bounds(stripe_subscription)
        subscription.status = _subscription_status(_field(stripe_subscription, "status"))
        subscription.current_period_start = period_start
        subscription.current_period_end = period_end
        subscription.cancel_at_period_end = bool(
            _field(stripe_subscription, "cancel_at_period_end", False)
        )
        logger.info(f"Subscription updated: {subscription_id}")

    async def _set_status(
        self,
        db: AsyncSession,
        stripe_subscription_id: Optional[str],
        new_status: SubscriptionStatus,
    ):
        subscription = (
            await self._get_by_stripe_id(db, stripe_subscription_id)
            if stripe_subscription_id
            else None
        )
        if subscription is None:
            logger.info(f"No stored subscription {stripe_subscription_id} to mark {new_status.value}")
            return

        subscription.status = new_status
        logger.info(f"Subscription {stripe_subscription_id} is now {new_status.value}")


# Singleton instance
billing_service = BillingService()
