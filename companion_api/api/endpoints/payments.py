import logging
from decimal import Decimal
from typing import List, Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Header, Query, Request
from sqlalchemy.orm import Session

from companion_api.core import billing, subscriptions
from companion_api.core.config import (
    STRIPE_WEBHOOK_SECRET,
    STRIPE_SUCCESS_URL,
    STRIPE_CANCEL_URL,
    TOKEN_PACKAGES,
    TOKEN_CURRENCY,
    SUBSCRIPTION_PLANS,
)
from companion_api.core.dependencies import get_current_active_user, require_monetization
from companion_api.crud import crud_payment
from companion_api.db.session import get_db
from companion_api.models.payment import PAYMENT_KIND_TOKENS, PAYMENT_KIND_SUBSCRIPTION
from companion_api.models.user import User
from companion_api.schemas.payment import (
    CheckoutSessionCreateRequest,
    CheckoutSessionCreateResponse,
    PaymentCreateInternal,
    Payment,
    WebhookAck,
)
from companion_api.schemas.subscription import SubscriptionCheckoutRequest, SubscriptionStatus

logger = logging.getLogger(__name__)
router = APIRouter()


def _start_checkout(
    db: Session,
    *,
    user: User,
    amount: Decimal,
    product_name: str,
    package_id: str,
    tokens: int,
    kind: str,
    metadata: dict,
) -> CheckoutSessionCreateResponse:
    """Record a pending payment and open a Stripe Checkout Session for it."""
    if not stripe.api_key:
        logger.error("Stripe API key is not configured. Cannot create checkout session.")
        raise HTTPException(status_code=500, detail="Payment system configuration error.")

    payment = crud_payment.create_payment(db, obj_in=PaymentCreateInternal(
        user_id=user.id,
        amount=amount,
        currency=TOKEN_CURRENCY,
        kind=kind,
        package_id=package_id,
        tokens=tokens,
    ))
    logger.info(f"User {user.id} starting {kind} checkout for {package_id} (payment ID: {payment.id})")

    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            line_items=[{
                "price_data": {
                    "currency": TOKEN_CURRENCY,
                    "product_data": {"name": product_name},
                    "unit_amount": int(Decimal(amount) * 100),
                },
                "quantity": 1,
            }],
            success_url=STRIPE_SUCCESS_URL,
            cancel_url=STRIPE_CANCEL_URL,
            client_reference_id=str(user.id),
            metadata={"payment_id": str(payment.id), "user_id": str(user.id), **metadata},
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe API error creating checkout for payment ID: {payment.id}: {e}")
        crud_payment.mark_failed(db, payment_id=payment.id)
        user_message = getattr(e, "user_message", None) or str(e)
        raise HTTPException(status_code=502, detail=f"Payment gateway error: {user_message}")

    crud_payment.set_stripe_session(db, db_obj=payment, session_id=session.id)
    return CheckoutSessionCreateResponse(checkout_url=session.url, session_id=session.id, payment_id=payment.id)


@router.post("/checkout-session", response_model=CheckoutSessionCreateResponse, dependencies=[Depends(require_monetization)])
async def create_checkout_session(
    *,
    db: Session = Depends(get_db),
    payload: CheckoutSessionCreateRequest,
    current_user: User = Depends(get_current_active_user),
):
    package = TOKEN_PACKAGES.get(payload.package_id)
    if not package:
        raise HTTPException(status_code=404, detail="Token package not found")
    tokens, price = package

    return _start_checkout(
        db,
        user=current_user,
        amount=price,
        product_name=f"{tokens} tokens",
        package_id=payload.package_id,
        tokens=tokens,
        kind=PAYMENT_KIND_TOKENS,
        metadata={"tokens": str(tokens), "type": "token_purchase"},
    )


@router.post("/subscription-checkout", response_model=CheckoutSessionCreateResponse, dependencies=[Depends(require_monetization)])
async def create_subscription_checkout(
    *,
    db: Session = Depends(get_db),
    payload: SubscriptionCheckoutRequest,
    current_user: User = Depends(get_current_active_user),
):
    """
    Start a premium plan purchase. The plan is activated, and its welcome tokens
    credited, when Stripe reports the session paid.
    """
    plan = SUBSCRIPTION_PLANS.get(payload.plan_id)
    if not plan:
        raise HTTPException(status_code=404, detail="Subscription plan not found")
    months, price, welcome_tokens = plan

    return _start_checkout(
        db,
        user=current_user,
        amount=price,
        product_name=f"Premium ({months} month{'s' if months > 1 else ''})",
        package_id=payload.plan_id,
        tokens=welcome_tokens,
        kind=PAYMENT_KIND_SUBSCRIPTION,
        metadata={"planId": payload.plan_id, "planDuration": str(months), "type": "subscription"},
    )


@router.get("/subscription", response_model=SubscriptionStatus)
async def read_my_subscription(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return subscriptions.get_status(db, user_id=current_user.id)


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
):
    """
    Stripe webhook receiver. Completes payments, credits tokens and distributes
    referral commissions.
    """
    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(payload, stripe_signature, STRIPE_WEBHOOK_SECRET)
    except ValueError:
        logger.warning("Stripe webhook with invalid payload")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        logger.warning("Stripe webhook with invalid signature")
        raise HTTPException(status_code=400, detail="Invalid signature")

    logger.info(f"Stripe webhook received: {event['type']} ({event.get('id')})")

    try:
        result = await billing.handle_event(db, event)
    except billing.PaymentNotFound:
        raise HTTPException(status_code=404, detail="Payment not found")
    except billing.PaymentProcessingError:
        raise HTTPException(status_code=500, detail="Payment could not be processed")

    return WebhookAck(**result)


@router.get("/me", response_model=List[Payment])
async def read_my_payments(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
):
    return crud_payment.get_payments_by_user(db, user_id=current_user.id, skip=skip, limit=limit)
