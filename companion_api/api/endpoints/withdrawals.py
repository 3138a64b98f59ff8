import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from companion_api.db.session import get_db
from companion_api.crud import crud_bonus, crud_withdrawal
from companion_api.core.dependencies import get_current_active_user, require_monetization
from companion_api.core.settings_service import TypedSettings
from companion_api.models.user import User as UserModel
from companion_api.schemas.withdrawal import Withdrawal, WithdrawalCreate

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post("/", response_model=Withdrawal, status_code=201)
def request_withdrawal(
    payload: WithdrawalCreate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
    settings: TypedSettings = Depends(require_monetization),
):
    """
    Request a USDT payout from the bonus wallet. The amount is taken out of the
    balance immediately and given back if an admin rejects the request.
    """
    if not settings.withdrawals_enabled:
        raise HTTPException(status_code=403, detail="Withdrawals are currently disabled")

    if payload.amount < settings.min_withdrawal_amount:
        raise HTTPException(
            status_code=400,
            detail=f"Minimum withdrawal amount is ${settings.min_withdrawal_amount:.2f}",
        )

    wallet = crud_bonus.get_wallet(db, user_id=current_user.id)
    usdt_address = (payload.usdt_address or (wallet.usdt_address if wallet else None) or "").strip()
    if not usdt_address:
        raise HTTPException(status_code=400, detail="USDT address is required")

    if crud_withdrawal.has_pending_withdrawal(db, user_id=current_user.id):
        raise HTTPException(
            status_code=400,
            detail="You already have a pending withdrawal request. Please wait for it to be processed.",
        )

    try:
        if not crud_bonus.debit_wallet(db, user_id=current_user.id, amount=payload.amount, commit=False):
            db.rollback()
            raise HTTPException(status_code=400, detail="Insufficient balance")
        withdrawal = crud_withdrawal.create_withdrawal(
            db, user_id=current_user.id, amount=payload.amount, usdt_address=usdt_address, commit=False
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create withdrawal for user {current_user.id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to process withdrawal")

    db.refresh(withdrawal)
    logger.info(f"Withdrawal {withdrawal.id} of {payload.amount} requested by user {current_user.id}")
    return withdrawal

@router.get("/", response_model=List[Withdrawal])
def read_my_withdrawals(
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=200),
):
    return crud_withdrawal.get_withdrawals_by_user(db, user_id=current_user.id, skip=skip, limit=limit)
