import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from companion_api.core.commission_ledger import (
    distribute_commission,
    OUTCOME_DISTRIBUTED,
    OUTCOME_NOT_FOUND,
)
from companion_api.core.config import RECONCILIATION_SCAN_LIMIT
from companion_api.crud import crud_payment
from companion_api.schemas.commission import ReconciliationStats

logger = logging.getLogger(__name__)


async def reconcile_missing_commissions(db: Session, limit: Optional[int] = None) -> ReconciliationStats:
    """
    Re-run commission distribution over the most recent paid/completed payments.

    Payments that already have ledger rows are skipped by the ledger itself, so
    this is safe to run as often as needed.
    """
    if limit is None:
        limit = RECONCILIATION_SCAN_LIMIT
    if limit < 1:
        raise ValueError(f"limit must be a positive integer, got {limit}")
    stats = ReconciliationStats()

    try:
        payments = crud_payment.get_recent_successful_payments(db, limit=limit)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Reconciliation could not load payments: {e}")
        raise

    # Detach from the ORM rows up front; the ledger commits between payments
    payment_ids = [p.id for p in payments]
    stats.scanned = len(payment_ids)
    logger.info(f"Reconciliation scanning {stats.scanned} paid/completed payment(s) for missing commissions")

    for payment_id in payment_ids:
        try:
            outcome = await distribute_commission(db, payment_id)
        except Exception as e:
            db.rollback()
            logger.error(f"Unexpected error reconciling payment ID: {payment_id}: {e}", exc_info=True)
            stats.errors += 1
            continue

        if outcome.status == OUTCOME_NOT_FOUND:
            stats.errors += 1
        elif outcome.status == OUTCOME_DISTRIBUTED and outcome.levels_distributed > 0:
            stats.fixed += 1
            stats.fixed_ids.append(payment_id)
            logger.info(f"Reconciliation fixed payment ID: {payment_id} ({outcome.levels_distributed} level(s))")
        elif outcome.errors:
            stats.errors += 1
        else:
            stats.skipped += 1

    logger.info(
        f"Reconciliation finished: scanned={stats.scanned} fixed={stats.fixed} "
        f"skipped={stats.skipped} errors={stats.errors}"
    )
    return stats
