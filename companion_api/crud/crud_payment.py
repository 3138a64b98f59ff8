from datetime import datetime, timezone
from sqlalchemy.orm import Session
from typing import Optional, List, Iterable

from companion_api.models.payment import (
    Payment,
    PAYMENT_PENDING,
    PAYMENT_PAID,
    PAYMENT_COMPLETED,
    PAYMENT_FAILED,
    PAYMENT_SUCCESS_STATUSES,
)
from companion_api.schemas.payment import PaymentCreateInternal

def create_payment(db: Session, *, obj_in: PaymentCreateInternal) -> Payment:
    db_obj = Payment(**obj_in.model_dump())
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def get_payment(db: Session, payment_id: int) -> Optional[Payment]:
    return db.query(Payment).filter(Payment.id == payment_id).first()

def get_payment_by_stripe_session(db: Session, *, session_id: str) -> Optional[Payment]:
    """Useful for webhooks."""
    return db.query(Payment).filter(Payment.stripe_session_id == session_id).first()

def set_stripe_session(db: Session, *, db_obj: Payment, session_id: str) -> Payment:
    db_obj.stripe_session_id = session_id
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def mark_completed(
    db: Session, *, payment_id: int, stripe_payment_intent_id: Optional[str] = None, commit: bool = True
) -> bool:
    """
    Move a payment to 'completed' exactly once.
    The status filter makes the transition conditional, so of two concurrent
    deliveries of the same event only one sees rowcount == 1.
    Returns True if this call performed the transition.
    With commit=False the caller owns the transaction.
    """
    values = {
        Payment.status: PAYMENT_COMPLETED,
        Payment.completed_at: datetime.now(timezone.utc),
    }
    if stripe_payment_intent_id:
        values[Payment.stripe_payment_intent_id] = stripe_payment_intent_id
    rowcount = (
        db.query(Payment)
        .filter(Payment.id == payment_id, Payment.status.in_([PAYMENT_PENDING, PAYMENT_PAID]))
        .update(values, synchronize_session=False)
    )
    if commit:
        db.commit()
    return rowcount == 1

def mark_failed(db: Session, *, payment_id: int) -> bool:
    rowcount = (
        db.query(Payment)
        .filter(Payment.id == payment_id, Payment.status == PAYMENT_PENDING)
        .update({Payment.status: PAYMENT_FAILED}, synchronize_session=False)
    )
    db.commit()
    return rowcount == 1

def get_payments_by_user(db: Session, *, user_id: int, skip: int = 0, limit: int = 100) -> List[Payment]:
    return (
        db.query(Payment)
        .filter(Payment.user_id == user_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

def get_recent_successful_payments(
    db: Session, *, limit: int = 50, statuses: Iterable[str] = PAYMENT_SUCCESS_STATUSES
) -> List[Payment]:
    """Most recent paid/completed payments, newest first."""
    return (
        db.query(Payment)
        .filter(Payment.status.in_(list(statuses)))
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .limit(limit)
        .all()
    )
