from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import Optional, List

from companion_api.models.token_wallet import TokenWallet, TokenTransaction

def get_balance(db: Session, *, user_id: int) -> int:
    wallet = db.query(TokenWallet).filter(TokenWallet.user_id == user_id).first()
    return wallet.balance if wallet else 0

def credit_tokens(
    db: Session,
    *,
    user_id: int,
    amount: int,
    type: str,
    description: Optional[str] = None,
    payment_id: Optional[int] = None,
    commit: bool = True,
) -> None:
    """Add tokens and record the transaction."""
    rowcount = (
        db.query(TokenWallet)
        .filter(TokenWallet.user_id == user_id)
        .update({TokenWallet.balance: TokenWallet.balance + amount}, synchronize_session=False)
    )
    if rowcount == 0:
        db.add(TokenWallet(user_id=user_id, balance=amount))
    db.add(TokenTransaction(
        user_id=user_id, amount=amount, type=type, description=description, payment_id=payment_id
    ))
    if commit:
        db.commit()

def deduct_tokens(db: Session, *, user_id: int, amount: int, description: Optional[str] = None) -> bool:
    """
    Subtract tokens only if the balance covers them.
    Returns False (and changes nothing) when it does not.
    """
    rowcount = (
        db.query(TokenWallet)
        .filter(TokenWallet.user_id == user_id, TokenWallet.balance >= amount)
        .update({TokenWallet.balance: TokenWallet.balance - amount}, synchronize_session=False)
    )
    if rowcount == 0:
        db.rollback()
        return False
    db.add(TokenTransaction(user_id=user_id, amount=-amount, type="usage", description=description))
    db.commit()
    return True

def get_transactions(db: Session, *, user_id: int, skip: int = 0, limit: int = 50) -> List[TokenTransaction]:
    return (
        db.query(TokenTransaction)
        .filter(TokenTransaction.user_id == user_id)
        .order_by(TokenTransaction.created_at.desc(), TokenTransaction.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

def _sum_by_type(db: Session, *, user_id: int, type: str) -> int:
    total = (
        db.query(func.coalesce(func.sum(TokenTransaction.amount), 0))
        .filter(TokenTransaction.user_id == user_id, TokenTransaction.type == type)
        .scalar()
    )
    return int(total)

def get_total_usage(db: Session, *, user_id: int) -> int:
    """Tokens spent so far, as a positive number."""
    return -_sum_by_type(db, user_id=user_id, type="usage")

def get_total_refunded(db: Session, *, user_id: int) -> int:
    return _sum_by_type(db, user_id=user_id, type="refund")
