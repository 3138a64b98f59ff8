import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from companion_api.db.session import get_db
from companion_api.crud import crud_bonus, crud_withdrawal
from companion_api.core import settings_service
from companion_api.core.commission_ledger import distribute_commission, OUTCOME_NOT_FOUND
from companion_api.core.dependencies import get_current_active_superuser
from companion_api.models.user import User as UserModel
from companion_api.models.withdrawal import (
    WITHDRAWAL_TRANSITIONS,
    WITHDRAWAL_REJECTED,
    WITHDRAWAL_COMPLETED,
)
from companion_api.schemas.commission import CommissionOutcome
from companion_api.schemas.setting import SettingsRead, SettingsUpdate
from companion_api.schemas.withdrawal import Withdrawal, WithdrawalStatusUpdate

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/settings", response_model=SettingsRead)
def read_admin_settings(
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_superuser),
):
    return SettingsRead(settings=settings_service.load_settings(db))

@router.put("/settings", response_model=SettingsRead)
def update_admin_settings(
    payload: SettingsUpdate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_superuser),
):
    try:
        settings = settings_service.save_settings(db, payload.settings)
    except settings_service.SettingsValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    logger.info(f"Admin {current_user.id} updated settings: {sorted(payload.settings)}")
    return SettingsRead(settings=settings)

@router.get("/withdrawals", response_model=List[Withdrawal])
def admin_read_withdrawals(
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_superuser),
    status: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
):
    return crud_withdrawal.get_all_withdrawals(db, status=status, skip=skip, limit=limit)

@router.patch("/withdrawals/{withdrawal_id}", response_model=Withdrawal)
def admin_update_withdrawal(
    withdrawal_id: int,
    payload: WithdrawalStatusUpdate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_superuser),
):
    """
    Admin: move a withdrawal through its review states.
    Rejecting gives the amount back to the user's bonus balance; completing
    records it as withdrawn.
    """
    withdrawal = crud_withdrawal.get_withdrawal(db, withdrawal_id=withdrawal_id)
    if not withdrawal:
        raise HTTPException(status_code=404, detail="Withdrawal not found")

    current_status = withdrawal.status
    if payload.action not in WITHDRAWAL_TRANSITIONS.get(current_status, set()):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot change withdrawal from '{current_status}' to '{payload.action}'",
        )

    try:
        applied = crud_withdrawal.transition_status(
            db,
            withdrawal_id=withdrawal.id,
            from_status=current_status,
            to_status=payload.action,
            processed_by=current_user.id,
            rejection_reason=payload.rejection_reason if payload.action == WITHDRAWAL_REJECTED else None,
            admin_notes=payload.admin_notes,
            commit=False,
        )
        if not applied:
            db.rollback()
            raise HTTPException(status_code=409, detail="Withdrawal was modified by another request")

        if payload.action == WITHDRAWAL_REJECTED:
            crud_bonus.credit_wallet(
                db, user_id=withdrawal.user_id, amount=withdrawal.amount, count_as_earnings=False, commit=False
            )
        elif payload.action == WITHDRAWAL_COMPLETED:
            crud_bonus.add_withdrawn_amount(db, user_id=withdrawal.user_id, amount=withdrawal.amount, commit=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update withdrawal {withdrawal_id} to {payload.action}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update withdrawal")

    logger.info(f"Admin {current_user.id} moved withdrawal {withdrawal_id} from {current_status} to {payload.action}")
    db.refresh(withdrawal)
    return withdrawal

@router.post("/payments/{payment_id}/distribute-commission", response_model=CommissionOutcome)
async def admin_distribute_commission(
    payment_id: int,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_superuser),
):
    """
    Admin: run commission distribution for one payment. Safe to repeat.
    """
    outcome = await distribute_commission(db, payment_id)
    if outcome.status == OUTCOME_NOT_FOUND:
        raise HTTPException(status_code=404, detail="Payment not found")
    return outcome
