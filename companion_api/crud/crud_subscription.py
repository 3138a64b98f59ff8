from datetime import datetime, timezone
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from companion_api.models.subscription import Subscription, SUBSCRIPTION_ACTIVE, SUBSCRIPTION_EXPIRED

def utcnow() -> datetime:
    # Stored as naive UTC, matching what SQLite hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)

def month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

def get_subscription(db: Session, *, user_id: int) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.user_id == user_id).first()

def activate(
    db: Session,
    *,
    user_id: int,
    plan_id: str,
    months: int,
    monthly_tokens: int,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> Subscription:
    """
    Start or extend a subscription by `months` calendar months.
    A subscription that is still running is extended from its current expiry,
    otherwise the new period starts now. The purchase counts as this month's grant.
    With commit=False the caller owns the transaction.
    """
    now = now or utcnow()
    subscription = get_subscription(db, user_id=user_id)
    if subscription is None:
        subscription = Subscription(user_id=user_id, started_at=now)
        db.add(subscription)
        period_start = now
    elif subscription.status == SUBSCRIPTION_ACTIVE and subscription.expires_at > now:
        period_start = subscription.expires_at
    else:
        subscription.started_at = now
        period_start = now

    subscription.plan_id = plan_id
    subscription.status = SUBSCRIPTION_ACTIVE
    subscription.monthly_tokens = monthly_tokens
    subscription.expires_at = period_start + relativedelta(months=months)
    subscription.last_tokens_granted_at = now
    db.flush()
    if commit:
        db.commit()
        db.refresh(subscription)
    return subscription

def expire_lapsed(db: Session, *, now: datetime, commit: bool = True) -> int:
    """Mark active subscriptions past their expiry as expired. Returns how many changed."""
    rowcount = (
        db.query(Subscription)
        .filter(Subscription.status == SUBSCRIPTION_ACTIVE, Subscription.expires_at <= now)
        .update({Subscription.status: SUBSCRIPTION_EXPIRED}, synchronize_session=False)
    )
    if commit:
        db.commit()
    return rowcount

def get_due_for_grant(db: Session, *, now: datetime) -> List[Subscription]:
    """Active subscriptions that have not received tokens since the start of this month."""
    start = month_start(now)
    return (
        db.query(Subscription)
        .filter(
            Subscription.status == SUBSCRIPTION_ACTIVE,
            Subscription.expires_at > now,
            (Subscription.last_tokens_granted_at.is_(None)) | (Subscription.last_tokens_granted_at < start),
        )
        .order_by(Subscription.user_id)
        .all()
    )

def claim_monthly_grant(db: Session, *, user_id: int, now: datetime) -> bool:
    """
    Stamp this month's grant on the subscription, only if it is still due.
    Conditional like Payment completion: of two overlapping runs only one gets True.
    Never commits; the caller commits it together with the token credit.
    """
    start = month_start(now)
    rowcount = (
        db.query(Subscription)
        .filter(
            Subscription.user_id == user_id,
            Subscription.status == SUBSCRIPTION_ACTIVE,
            (Subscription.last_tokens_granted_at.is_(None)) | (Subscription.last_tokens_granted_at < start),
        )
        .update({Subscription.last_tokens_granted_at: now}, synchronize_session=False)
    )
    return rowcount == 1
