from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from companion_api.db.session import get_db
from companion_api.crud import crud_bonus
from companion_api.core.dependencies import get_current_active_user
from companion_api.models.user import User as UserModel
from companion_api.schemas.bonus import BonusWallet, UsdtAddressUpdate
from companion_api.schemas.commission import CommissionTransactionPage

router = APIRouter()

@router.get("/wallet", response_model=BonusWallet)
def read_my_wallet(
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    """
    Get the current user's bonus wallet, creating an empty one on first access.
    """
    return crud_bonus.get_or_create_wallet(db, user_id=current_user.id)

@router.put("/wallet/usdt-address", response_model=BonusWallet)
def update_my_usdt_address(
    payload: UsdtAddressUpdate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    return crud_bonus.set_usdt_address(db, user_id=current_user.id, usdt_address=payload.usdt_address)

@router.get("/transactions", response_model=CommissionTransactionPage)
def read_my_commission_transactions(
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    transactions = crud_bonus.get_commissions_by_beneficiary(db, user_id=current_user.id, skip=offset, limit=limit)
    total = crud_bonus.count_commissions_by_beneficiary(db, user_id=current_user.id)
    return CommissionTransactionPage(transactions=transactions, total=total, limit=limit, offset=offset)
