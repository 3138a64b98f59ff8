import logging
from decimal import Decimal
from typing import Any, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from companion_api.core import subscriptions
from companion_api.core.commission_ledger import distribute_commission
from companion_api.core.subscriptions import TOKEN_TYPE_SUBSCRIPTION_GRANT
from companion_api.crud import crud_payment, crud_token_wallet
from companion_api.models.payment import Payment, PAYMENT_KIND_SUBSCRIPTION

logger = logging.getLogger(__name__)

EVENT_SESSION_COMPLETED = "checkout.session.completed"
EVENT_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
EVENT_ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
EVENT_SESSION_EXPIRED = "checkout.session.expired"

# Webhook outcome labels returned to Stripe
STATUS_PROCESSED = "processed"
STATUS_ALREADY_PROCESSED = "already_processed"
STATUS_AWAITING_PAYMENT = "awaiting_payment"
STATUS_MARKED_FAILED = "marked_failed"
STATUS_IGNORED = "ignored"


class PaymentNotFound(Exception):
    pass


class PaymentProcessingError(Exception):
    """Completion failed and was rolled back; the event should be redelivered."""


def _intent_id(session: Mapping[str, Any]) -> Optional[str]:
    intent = session.get("payment_intent")
    if isinstance(intent, str) or intent is None:
        return intent
    return intent.get("id")


def resolve_payment(db: Session, session: Mapping[str, Any]) -> Optional[Payment]:
    """Find our payment row for a Checkout Session, by session id first, then metadata."""
    payment = crud_payment.get_payment_by_stripe_session(db, session_id=session["id"])
    if payment:
        return payment

    metadata = session.get("metadata") or {}
    raw_id = metadata.get("payment_id")
    if not raw_id:
        return None
    try:
        payment = crud_payment.get_payment(db, payment_id=int(raw_id))
    except ValueError:
        return None
    if payment and payment.stripe_session_id is None:
        payment = crud_payment.set_stripe_session(db, db_obj=payment, session_id=session["id"])
    return payment


async def complete_checkout(db: Session, session: Mapping[str, Any]) -> dict:
    """
    Complete the payment behind a paid Checkout Session.

    The pending -> completed transition is conditional, so a redelivered event
    finds nothing to update and is acknowledged without crediting anything again.
    The transition, the token credit and, for a plan purchase, the subscription
    are committed together. If any of them fails everything is rolled back and
    PaymentProcessingError tells the webhook to answer 500, so Stripe redelivers
    and the next attempt starts from a pending payment again.
    Commission distribution runs afterwards and never fails the webhook.
    """
    if session.get("payment_status") not in ("paid", "no_payment_required"):
        logger.info(f"Checkout session {session['id']} completed but payment status is '{session.get('payment_status')}'. Waiting.")
        return {"status": STATUS_AWAITING_PAYMENT}

    payment = resolve_payment(db, session)
    if not payment:
        logger.error(f"No payment record found for checkout session {session['id']}")
        raise PaymentNotFound(session["id"])

    amount_total = session.get("amount_total")
    if amount_total is not None and Decimal(amount_total) != (Decimal(payment.amount) * 100).quantize(Decimal("1")):
        logger.warning(
            f"Payment ID: {payment.id} amount {payment.amount} differs from Stripe amount_total {amount_total} (cents). "
            f"Using the stored amount."
        )

    payment_id, user_id, tokens = payment.id, payment.user_id, payment.tokens
    kind, package_id = payment.kind, payment.package_id
    try:
        if not crud_payment.mark_completed(
            db, payment_id=payment_id, stripe_payment_intent_id=_intent_id(session), commit=False
        ):
            db.rollback()
            logger.info(f"Payment ID: {payment_id} already processed - skipping duplicate webhook delivery")
            return {"status": STATUS_ALREADY_PROCESSED, "payment_id": payment_id}

        token_type, description = "purchase", f"Purchased {tokens} tokens"
        if kind == PAYMENT_KIND_SUBSCRIPTION:
            subscriptions.activate_plan(db, user_id=user_id, plan_id=package_id)
            token_type, description = TOKEN_TYPE_SUBSCRIPTION_GRANT, f"Welcome tokens for {package_id}"
        if tokens > 0:
            crud_token_wallet.credit_tokens(
                db,
                user_id=user_id,
                amount=tokens,
                type=token_type,
                description=description,
                payment_id=payment_id,
                commit=False,
            )
        db.commit()
    except (SQLAlchemyError, subscriptions.UnknownPlan) as e:
        db.rollback()
        logger.error(f"Payment ID: {payment_id} could not be completed, leaving it pending for redelivery: {e!r}")
        raise PaymentProcessingError(payment_id) from e

    logger.info(f"Payment ID: {payment_id} marked completed (session {session['id']}), {tokens} tokens to user {user_id}")

    commission_levels = None
    try:
        outcome = await distribute_commission(db, payment_id)
        commission_levels = outcome.levels_distributed
    except Exception as e:
        db.rollback()
        logger.error(f"Commission distribution raised for payment ID: {payment_id}: {e}", exc_info=True)

    return {"status": STATUS_PROCESSED, "payment_id": payment_id, "commission_levels": commission_levels}


def fail_checkout(db: Session, session: Mapping[str, Any]) -> dict:
    payment = resolve_payment(db, session)
    if not payment:
        logger.warning(f"Failed/expired checkout session {session['id']} has no payment record")
        return {"status": STATUS_IGNORED}
    if crud_payment.mark_failed(db, payment_id=payment.id):
        logger.info(f"Payment ID: {payment.id} marked failed (session {session['id']})")
        return {"status": STATUS_MARKED_FAILED, "payment_id": payment.id}
    return {"status": STATUS_IGNORED, "payment_id": payment.id}


async def handle_event(db: Session, event: Mapping[str, Any]) -> dict:
    event_type = event["type"]
    data_object = event["data"]["object"]

    if event_type in (EVENT_SESSION_COMPLETED, EVENT_ASYNC_PAYMENT_SUCCEEDED):
        return await complete_checkout(db, data_object)
    if event_type in (EVENT_ASYNC_PAYMENT_FAILED, EVENT_SESSION_EXPIRED):
        return fail_checkout(db, data_object)

    logger.info(f"Ignoring Stripe event type {event_type}")
    return {"status": STATUS_IGNORED}
