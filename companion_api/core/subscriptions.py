"""
Premium subscriptions: activation on a paid plan checkout and the monthly
token grant run by the scheduler.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from companion_api.core.config import SUBSCRIPTION_PLANS
from companion_api.crud import crud_subscription, crud_token_wallet
from companion_api.models.subscription import Subscription, SUBSCRIPTION_ACTIVE
from companion_api.schemas.subscription import SubscriptionStatus, SubscriptionGrantStats

logger = logging.getLogger(__name__)

TOKEN_TYPE_SUBSCRIPTION_GRANT = "subscription_grant"


class UnknownPlan(Exception):
    pass


def activate_plan(db: Session, *, user_id: int, plan_id: str, now: Optional[datetime] = None) -> Subscription:
    """Activate or extend a plan without committing. Welcome tokens are credited by the caller."""
    plan = SUBSCRIPTION_PLANS.get(plan_id)
    if plan is None:
        raise UnknownPlan(plan_id)
    months, _, monthly_tokens = plan
    subscription = crud_subscription.activate(
        db, user_id=user_id, plan_id=plan_id, months=months, monthly_tokens=monthly_tokens, now=now, commit=False
    )
    logger.info(f"User {user_id} subscribed to {plan_id} until {subscription.expires_at}")
    return subscription


def get_status(db: Session, *, user_id: int, now: Optional[datetime] = None) -> SubscriptionStatus:
    now = now or crud_subscription.utcnow()
    subscription = crud_subscription.get_subscription(db, user_id=user_id)
    if subscription is None:
        return SubscriptionStatus(is_premium=False)
    return SubscriptionStatus(
        is_premium=subscription.status == SUBSCRIPTION_ACTIVE and subscription.expires_at > now,
        plan_id=subscription.plan_id,
        status=subscription.status,
        expires_at=subscription.expires_at,
        monthly_tokens=subscription.monthly_tokens,
    )


def grant_monthly_tokens(db: Session, now: Optional[datetime] = None) -> SubscriptionGrantStats:
    """
    Credit each active subscriber's monthly tokens once per calendar month.

    Lapsed subscriptions are marked expired first. Each grant claims the month on
    the subscription row and credits the tokens in one commit, so running the job
    twice in a month grants nothing the second time. A failing subscriber is
    counted in ``errors`` and the run goes on.
    """
    now = now or crud_subscription.utcnow()
    stats = SubscriptionGrantStats()

    try:
        stats.expired = crud_subscription.expire_lapsed(db, now=now)
        due = [(s.user_id, s.monthly_tokens, s.plan_id) for s in crud_subscription.get_due_for_grant(db, now=now)]
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Subscription grant could not load subscribers: {e}")
        raise

    logger.info(f"Granting monthly tokens: {len(due)} subscriber(s) due, {stats.expired} expired")

    for user_id, tokens, plan_id in due:
        stats.processed += 1
        try:
            if not crud_subscription.claim_monthly_grant(db, user_id=user_id, now=now):
                db.rollback()
                logger.info(f"User {user_id} already received this month's tokens")
                continue
            if tokens > 0:
                crud_token_wallet.credit_tokens(
                    db,
                    user_id=user_id,
                    amount=tokens,
                    type=TOKEN_TYPE_SUBSCRIPTION_GRANT,
                    description=f"Monthly {plan_id} tokens",
                    commit=False,
                )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            stats.errors += 1
            logger.error(f"Failed to grant monthly tokens to user {user_id}: {e}")
            continue
        stats.granted += 1
        stats.tokens_granted += tokens
        stats.granted_user_ids.append(user_id)

    logger.info(
        f"Monthly token grant finished: processed={stats.processed} granted={stats.granted} "
        f"tokens={stats.tokens_granted} errors={stats.errors}"
    )
    return stats
