from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy.orm import Session
from typing import Optional, List

from companion_api.models.withdrawal import UsdtWithdrawal, WITHDRAWAL_PENDING, WITHDRAWAL_COMPLETED

def create_withdrawal(
    db: Session, *, user_id: int, amount: Decimal, usdt_address: str, commit: bool = True
) -> UsdtWithdrawal:
    db_obj = UsdtWithdrawal(
        user_id=user_id,
        amount=amount,
        usdt_address=usdt_address,
        status=WITHDRAWAL_PENDING,
    )
    db.add(db_obj)
    db.flush()
    if commit:
        db.commit()
        db.refresh(db_obj)
    return db_obj

def get_withdrawal(db: Session, withdrawal_id: int) -> Optional[UsdtWithdrawal]:
    return db.query(UsdtWithdrawal).filter(UsdtWithdrawal.id == withdrawal_id).first()

def get_withdrawals_by_user(db: Session, *, user_id: int, skip: int = 0, limit: int = 100) -> List[UsdtWithdrawal]:
    return (
        db.query(UsdtWithdrawal)
        .filter(UsdtWithdrawal.user_id == user_id)
        .order_by(UsdtWithdrawal.requested_at.desc(), UsdtWithdrawal.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

def get_all_withdrawals(
    db: Session, *, status: Optional[str] = None, skip: int = 0, limit: int = 100
) -> List[UsdtWithdrawal]:
    query = db.query(UsdtWithdrawal)
    if status:
        query = query.filter(UsdtWithdrawal.status == status)
    return query.order_by(UsdtWithdrawal.requested_at.desc(), UsdtWithdrawal.id.desc()).offset(skip).limit(limit).all()

def has_pending_withdrawal(db: Session, *, user_id: int) -> bool:
    return (
        db.query(UsdtWithdrawal.id)
        .filter(UsdtWithdrawal.user_id == user_id, UsdtWithdrawal.status == WITHDRAWAL_PENDING)
        .first()
        is not None
    )

def transition_status(
    db: Session,
    *,
    withdrawal_id: int,
    from_status: str,
    to_status: str,
    processed_by: Optional[int] = None,
    rejection_reason: Optional[str] = None,
    admin_notes: Optional[str] = None,
    commit: bool = True,
) -> bool:
    """
    Move a withdrawal from from_status to to_status. The update only matches
    while the row still has from_status, so two admins acting on the same
    request cannot both apply a transition. Returns True if this call did.
    """
    values = {
        UsdtWithdrawal.status: to_status,
        UsdtWithdrawal.processed_by: processed_by,
    }
    if rejection_reason is not None:
        values[UsdtWithdrawal.rejection_reason] = rejection_reason
    if admin_notes is not None:
        values[UsdtWithdrawal.admin_notes] = admin_notes
    if to_status == WITHDRAWAL_COMPLETED:
        values[UsdtWithdrawal.processed_at] = datetime.now(timezone.utc)

    rowcount = (
        db.query(UsdtWithdrawal)
        .filter(UsdtWithdrawal.id == withdrawal_id, UsdtWithdrawal.status == from_status)
        .update(values, synchronize_session=False)
    )
    if commit:
        db.commit()
    return rowcount == 1
