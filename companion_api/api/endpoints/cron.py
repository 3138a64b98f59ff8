from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from companion_api.db.session import get_db
from companion_api.core import subscriptions
from companion_api.core.dependencies import verify_cron_secret
from companion_api.core.reconciliation import reconcile_missing_commissions
from companion_api.schemas.commission import ReconciliationStats
from companion_api.schemas.subscription import SubscriptionGrantStats

router = APIRouter()

@router.get("/fix-commissions", response_model=ReconciliationStats, dependencies=[Depends(verify_cron_secret)])
async def fix_missing_commissions(
    db: Session = Depends(get_db),
    limit: Optional[int] = Query(None, ge=1, le=1000),
):
    """
    Scheduled job: distribute commissions for recent payments that have none.
    """
    stats = await reconcile_missing_commissions(db, limit=limit)
    return stats

@router.post("/grant-subscription-tokens", response_model=SubscriptionGrantStats, dependencies=[Depends(verify_cron_secret)])
async def grant_subscription_tokens(db: Session = Depends(get_db)):
    """
    Scheduled job, run on the 1st of each month: credit monthly tokens to every
    active subscriber. Safe to repeat within a month.
    """
    return subscriptions.grant_monthly_tokens(db)
