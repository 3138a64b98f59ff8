import logging
from decimal import Decimal, ROUND_DOWN, InvalidOperation
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from companion_api.core.config import COMMISSION_RATES, MAX_COMMISSION_LEVELS
from companion_api.crud import crud_bonus, crud_payment, crud_referral
from companion_api.models.payment import Payment, PAYMENT_SUCCESS_STATUSES
from companion_api.schemas.commission import CommissionOutcome

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

OUTCOME_DISTRIBUTED = "distributed"
OUTCOME_SKIPPED = "skipped"
OUTCOME_NOT_FOUND = "not_found"

LEVEL_CREDITED = "credited"
LEVEL_DUPLICATE = "duplicate"
LEVEL_FAILED = "failed"


def resolve_amount(payment: Payment) -> Optional[Decimal]:
    """The payment's amount as a positive Decimal, or None if it has none."""
    if payment.amount is None:
        return None
    try:
        amount = Decimal(str(payment.amount))
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def commission_for_level(amount: Decimal, level: int) -> Decimal:
    # Rounded down to the cent so the per-payment total never exceeds amount * sum(rates)
    return (amount * COMMISSION_RATES[level]).quantize(CENT, rounding=ROUND_DOWN)


def _credit_level(
    db: Session, *, payment_id: int, payer_id: int, beneficiary_id: int, level: int, amount: Decimal
) -> str:
    """
    Write one level's ledger row and wallet increment as a single commit.

    An IntegrityError is only a duplicate if the (payment, beneficiary) row is
    really there after the rollback. Anything else (two payments creating the
    same new wallet at once) is retried once before it counts as a failure.
    """
    for attempt in (1, 2):
        try:
            crud_bonus.add_commission_transaction(
                db,
                payment_id=payment_id,
                beneficiary_user_id=beneficiary_id,
                from_user_id=payer_id,
                level=level,
                amount=amount,
                commit=False,
            )
            crud_bonus.credit_wallet(db, user_id=beneficiary_id, amount=amount, commit=False)
            db.commit()
            return LEVEL_CREDITED
        except IntegrityError as e:
            db.rollback()
            try:
                duplicate = crud_bonus.commission_exists(db, payment_id=payment_id, beneficiary_user_id=beneficiary_id)
            except SQLAlchemyError as check_error:
                db.rollback()
                logger.error(f"Payment ID: {payment_id} - could not re-check level {level} commission for user {beneficiary_id}: {check_error}")
                return LEVEL_FAILED
            if duplicate:
                logger.warning(f"Payment ID: {payment_id} - level {level} commission for user {beneficiary_id} already recorded. Not crediting twice.")
                return LEVEL_DUPLICATE
            if attempt == 1:
                logger.warning(f"Payment ID: {payment_id} - level {level} credit for user {beneficiary_id} hit a conflict ({e.orig}). Retrying once.")
                continue
            logger.error(f"Payment ID: {payment_id} - level {level} credit for user {beneficiary_id} failed after retry: {e}")
            return LEVEL_FAILED
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Payment ID: {payment_id} - failed to credit level {level} commission to user {beneficiary_id}: {e}")
            return LEVEL_FAILED
    return LEVEL_FAILED


async def distribute_commission(db: Session, payment_id: int) -> CommissionOutcome:
    """
    Credit up to three referrer levels above the payer of a completed payment.

    Each level is committed on its own: the ledger row and the wallet increment
    either both land or both roll back. A failed level is counted in
    ``errors`` and the walk continues with the next ancestor. Nothing is raised
    to the caller; the returned outcome describes what happened.

    Running it again for a payment that already has ledger rows is a no-op.
    """
    logger.info(f"Starting commission distribution for payment ID: {payment_id}")

    try:
        payment = crud_payment.get_payment(db, payment_id=payment_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not load payment ID: {payment_id}: {e}")
        return CommissionOutcome(payment_id=payment_id, status=OUTCOME_SKIPPED, errors=1, reason="storage error")

    if not payment:
        logger.warning(f"Payment ID: {payment_id} not found. No commissions distributed.")
        return CommissionOutcome(payment_id=payment_id, status=OUTCOME_NOT_FOUND, reason="payment not found")

    if payment.status not in PAYMENT_SUCCESS_STATUSES:
        logger.info(f"Payment ID: {payment_id} has status '{payment.status}'. Commissions are only paid on completed payments.")
        return CommissionOutcome(payment_id=payment_id, status=OUTCOME_SKIPPED, reason="payment not completed")

    amount = resolve_amount(payment)
    if amount is None:
        logger.info(f"Payment ID: {payment_id} has no positive amount ({payment.amount}). Skipping.")
        return CommissionOutcome(payment_id=payment_id, status=OUTCOME_SKIPPED, reason="no amount")

    payer_id = payment.user_id

    try:
        already_distributed = crud_bonus.payment_has_commissions(db, payment_id=payment_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Could not check existing commissions for payment ID: {payment_id}: {e}")
        return CommissionOutcome(payment_id=payment_id, status=OUTCOME_SKIPPED, errors=1, reason="storage error")

    if already_distributed:
        logger.info(f"Payment ID: {payment_id} already has commission records. Skipping duplicate distribution.")
        return CommissionOutcome(payment_id=payment_id, status=OUTCOME_SKIPPED, reason="already distributed")

    outcome = CommissionOutcome(payment_id=payment_id, status=OUTCOME_DISTRIBUTED)
    current_user_id = payer_id
    visited = {payer_id}
    level = 1

    while level <= MAX_COMMISSION_LEVELS:
        try:
            referrer_id = crud_referral.get_referrer_id(db, user_id=current_user_id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Payment ID: {payment_id} - failed to look up referrer of user {current_user_id} at level {level}: {e}")
            outcome.errors += 1
            break

        if referrer_id is None:
            if level == 1:
                logger.info(f"Payer {payer_id} of payment ID: {payment_id} has no referrer. No commissions.")
            break

        if referrer_id in visited:
            logger.error(f"Referral cycle detected at user {referrer_id} while walking payment ID: {payment_id}. Stopping.")
            break
        visited.add(referrer_id)

        commission = commission_for_level(amount, level)
        result = _credit_level(
            db, payment_id=payment_id, payer_id=payer_id, beneficiary_id=referrer_id, level=level, amount=commission
        )
        if result == LEVEL_CREDITED:
            outcome.levels_distributed += 1
            outcome.beneficiaries.append(referrer_id)
            logger.info(f"Credited level {level} commission of {commission} to user {referrer_id} for payment ID: {payment_id}")
        elif result == LEVEL_FAILED:
            outcome.errors += 1

        current_user_id = referrer_id
        level += 1

    if outcome.levels_distributed == 0 and outcome.errors == 0:
        outcome.reason = "no referrer"

    logger.info(
        f"Commission distribution finished for payment ID: {payment_id}: "
        f"{outcome.levels_distributed} level(s) credited, {outcome.errors} error(s)"
    )
    return outcome
