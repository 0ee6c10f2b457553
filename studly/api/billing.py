"""Subscription billing routes backed by Stripe."""

import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from studly.auth.security import CurrentUser, require_user
from studly.config import get_settings
from studly.db.session import get_db
from studly.schemas.schemas import CheckoutRequest, RedirectUrlResponse, SubscriptionResponse
from studly.services.billing import billing_service

router = APIRouter(prefix="/v1/billing", tags=["Billing"])

settings = get_settings()

logger = logging.getLogger(__name__)


@router.post(
    "/checkout",
    response_model=RedirectUrlResponse,
    summary="Start a subscription checkout",
    description="Create a Stripe Checkout session for a plan and billing period.",
)
async def create_checkout(
    body: CheckoutRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    """
    Create a checkout session.

    - **price_id**: Stripe price for the chosen plan and billing period
    - **plan_name**: starter, pro or elite
    """
    url = await billing_service.create_checkout_session(
        db, user.id, user.email, body.price_id, body.plan_name
    )
    await db.commit()
    return RedirectUrlResponse(url=url)


@router.post(
    "/portal",
    response_model=RedirectUrlResponse,
    summary="Open the billing portal",
    description="Create a Stripe billing portal session to manage or cancel the subscription.",
)
async def create_portal(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    customer = await billing_service.get_customer(db, user.id)
    if not customer:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No customer found",
        )

    url = await billing_service.create_portal_session(customer)
    return RedirectUrlResponse(url=url)


@router.get(
    "/subscription",
    response_model=SubscriptionResponse,
    summary="Get the current subscription",
)
async def get_subscription(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_user),
):
    subscription = await billing_service.get_subscription(db, user.id)
    if not subscription:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No subscription found",
        )
    return SubscriptionResponse.model_validate(subscription)


@router.post(
    "/webhook",
    summary="Stripe webhook",
    description="Receives subscription lifecycle events from Stripe.",
    include_in_schema=False,
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
):
    if not settings.stripe_webhook_secret:
        logger.error("Stripe webhook rejected: STRIPE_WEBHOOK_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook not configured",
        )

    payload = await request.body()
    try:
        event = billing_service.construct_event(payload, stripe_signature)
    except ValueError:
        logger.warning("Stripe webhook: Invalid payload")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Stripe webhook signature verification failed: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    await billing_service.handle_event(db, event)
    await db.commit()

    return {"received": True}
