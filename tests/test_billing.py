"""Tests for Stripe checkout, portal and webhook handling."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
import stripe
from httpx import AsyncClient
from sqlalchemy import select

from studly.config import get_settings
from studly.db.models import Customer, Payment, Subscription, SubscriptionStatus
from studly.services.billing import safe_timestamp

settings = get_settings()

PERIOD_START = 1767225600  # 2026-01-01T00:00:00Z
PERIOD_END = 1769904000  # 2026-02-01T00:00:00Z


def stripe_subscription(sub_id="sub_new", status="active", **extra):
    data = {
        "id": sub_id,
        "customer": "cus_new",
        "status": status,
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_END,
        "cancel_at_period_end": False,
        "items": {"data": [{"price": {"id": settings.stripe_price_pro_monthly}}]},
    }
    data.update(extra)
    return data


@pytest.fixture
def webhook_events(monkeypatch):
    """Feed events to the webhook as if Stripe had signed them."""
    queue = []

    def construct_event(payload, sig_header, secret, *args, **kwargs):
        if sig_header == "bad":
            raise stripe.SignatureVerificationError("No signatures found", sig_header)
        return queue.pop(0)

    monkeypatch.setattr(stripe.Webhook, "construct_event", construct_event)
    return queue


async def post_webhook(client: AsyncClient, signature="t=1,v1=abc"):
    return await client.post(
        "/v1/billing/webhook",
        content=b"{}",
        headers={"Stripe-Signature": signature},
    )


def test_safe_timestamp():
    assert safe_timestamp(PERIOD_START) == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert safe_timestamp(None) is None
    assert safe_timestamp(0) is None
    assert safe_timestamp("2026-01-01") is None
    assert safe_timestamp(10**20) is None


@pytest.mark.asyncio
async def test_checkout_completed_creates_subscription(
    anon_client: AsyncClient, db_session, webhook_events, monkeypatch
):
    user_id = str(uuid4())
    monkeypatch.setattr(
        stripe.Subscription, "retrieve", lambda sub_id, *args, **kwargs: stripe_subscription(sub_id)
    )
    session = {
        "id": "cs_1",
        "mode": "subscription",
        "subscription": "sub_new",
        "payment_intent": "pi_1",
        "amount_total": 999,
        "currency": "gbp",
        "metadata": {"user_id": user_id, "plan_name": "pro"},
    }
    event = {"type": "checkout.session.completed", "data": {"object": session}}
    webhook_events.extend([event, event])

    response = await post_webhook(anon_client)
    assert response.status_code == 200
    assert response.json() == {"received": True}

    sub = (
        await db_session.execute(select(Subscription).where(Subscription.user_id == user_id))
    ).scalar_one()
    assert sub.plan_name == "pro"
    assert sub.status == SubscriptionStatus.ACTIVE
    assert sub.stripe_subscription_id == "sub_new"
    assert sub.stripe_customer_id == "cus_new"
    assert sub.stripe_price_id == settings.stripe_price_pro_monthly
    # SQLite hands back naive datetimes once the row is reloaded
    assert sub.current_period_end.replace(tzinfo=timezone.utc) == datetime(
        2026, 2, 1, tzinfo=timezone.utc
    )

    # Redelivery does not log the payment twice
    response = await post_webhook(anon_client)
    assert response.status_code == 200
    payments = (await db_session.execute(select(Payment))).scalars().all()
    assert len(payments) == 1
    assert payments[0].amount == 999


@pytest.mark.asyncio
async def test_checkout_completed_defaults_plan_to_basic(
    anon_client: AsyncClient, db_session, webhook_events, monkeypatch
):
    user_id = str(uuid4())
    monkeypatch.setattr(
        stripe.Subscription, "retrieve", lambda sub_id, *args, **kwargs: stripe_subscription(sub_id)
    )
    webhook_events.append(
        {
            "type": "checkout.session.completed",
            "data": {
                "object": {
                    "id": "cs_2",
                    "mode": "subscription",
                    "subscription": "sub_new",
                    "metadata": {"user_id": user_id},
                }
            },
        }
    )

    assert (await post_webhook(anon_client)).status_code == 200

    sub = (
        await db_session.execute(select(Subscription).where(Subscription.user_id == user_id))
    ).scalar_one()
    assert sub.plan_name == "basic"
    assert (await db_session.execute(select(Payment))).scalars().all() == []


@pytest.mark.asyncio
async def test_subscription_updated(anon_client: AsyncClient, subscription, webhook_events):
    webhook_events.append(
        {
            "type": "customer.subscription.updated",
            "data": {
                "object": stripe_subscription(
                    "sub_test", status="past_due", cancel_at_period_end=True
                )
            },
        }
    )

    assert (await post_webhook(anon_client)).status_code == 200
    assert subscription.status == SubscriptionStatus.PAST_DUE
    assert subscription.cancel_at_period_end is True
    assert subscription.current_period_start == datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_subscription_deleted(anon_client: AsyncClient, subscription, webhook_events):
    webhook_events.append(
        {"type": "customer.subscription.deleted", "data": {"object": {"id": "sub_test"}}}
    )

    assert (await post_webhook(anon_client)).status_code == 200
    assert subscription.status == SubscriptionStatus.CANCELED


@pytest.mark.asyncio
async def test_invoice_payment_failed(anon_client: AsyncClient, subscription, webhook_events):
    webhook_events.append(
        {
            "type": "invoice.payment_failed",
            "data": {"object": {"id": "in_1", "subscription": "sub_test"}},
        }
    )

    assert (await post_webhook(anon_client)).status_code == 200
    assert subscription.status == SubscriptionStatus.PAST_DUE


@pytest.mark.asyncio
async def test_unhandled_event_is_acknowledged(anon_client: AsyncClient, webhook_events):
    webhook_events.append({"type": "charge.refunded", "data": {"object": {"id": "ch_1"}}})

    response = await post_webhook(anon_client)
    assert response.status_code == 200
    assert response.json() == {"received": True}


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature(anon_client: AsyncClient, webhook_events):
    response = await post_webhook(anon_client, signature="bad")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_requires_secret(anon_client: AsyncClient, monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", None)
    response = await post_webhook(anon_client)
    assert response.status_code == 500


@pytest.mark.asyncio
async def test_checkout_unknown_plan(client: AsyncClient):
    response = await client.post(
        "/v1/billing/checkout", json={"price_id": "price_x", "plan_name": "platinum"}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Billing error"


@pytest.mark.asyncio
async def test_checkout_session(client: AsyncClient, db_session, user_id, monkeypatch):
    created = {}

    def create_customer(**kwargs):
        created["customer"] = kwargs
        return {"id": "cus_created"}

    def create_session(**kwargs):
        created["session"] = kwargs
        return {"id": "cs_created", "url": "https://checkout.stripe.test/cs_created"}

    monkeypatch.setattr(stripe.Customer, "create", create_customer)
    monkeypatch.setattr(stripe.checkout.Session, "create", create_session)

    response = await client.post(
        "/v1/billing/checkout",
        json={"price_id": settings.stripe_price_elite_yearly, "plan_name": "Elite"},
    )
    assert response.status_code == 200
    assert response.json()["url"] == "https://checkout.stripe.test/cs_created"

    session = created["session"]
    assert session["mode"] == "subscription"
    assert session["customer"] == "cus_created"
    assert session["metadata"] == {"user_id": user_id, "plan_name": "elite"}
    assert session["success_url"].endswith("/dashboard?welcome=true&session_id={CHECKOUT_SESSION_ID}")
    assert session["cancel_url"].endswith("/pricing")

    customer = (await db_session.execute(select(Customer))).scalar_one()
    assert customer.user_id == user_id
    assert customer.stripe_customer_id == "cus_created"


@pytest.mark.asyncio
async def test_portal_without_customer(client: AsyncClient):
    response = await client.post("/v1/billing/portal")
    assert response.status_code == 404
    assert response.json()["detail"] == "No customer found"


@pytest.mark.asyncio
async def test_get_subscription(client: AsyncClient, subscription):
    response = await client.get("/v1/billing/subscription")
    assert response.status_code == 200
    data = response.json()
    assert data["plan_name"] == "starter"
    assert data["status"] == "active"
