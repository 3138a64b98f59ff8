from decimal import Decimal
from sqlalchemy.orm import Session
from sqlalchemy import func
from typing import Optional, List

from companion_api.models.bonus import BonusWallet, CommissionTransaction

ZERO = Decimal("0")

# --- Wallets ---

def get_wallet(db: Session, *, user_id: int) -> Optional[BonusWallet]:
    return db.query(BonusWallet).filter(BonusWallet.user_id == user_id).first()

def get_or_create_wallet(db: Session, *, user_id: int) -> BonusWallet:
    wallet = get_wallet(db, user_id=user_id)
    if wallet:
        return wallet
    wallet = BonusWallet(user_id=user_id, balance=ZERO, lifetime_earnings=ZERO, withdrawn_amount=ZERO)
    db.add(wallet)
    db.commit()
    db.refresh(wallet)
    return wallet

def credit_wallet(
    db: Session, *, user_id: int, amount: Decimal, count_as_earnings: bool = True, commit: bool = True
) -> None:
    """
    Add amount to a wallet with a single UPDATE ... SET balance = balance + :amount,
    creating the wallet if the user has none yet.
    With commit=False the caller owns the transaction.
    """
    values = {BonusWallet.balance: BonusWallet.balance + amount}
    if count_as_earnings:
        values[BonusWallet.lifetime_earnings] = BonusWallet.lifetime_earnings + amount

    rowcount = (
        db.query(BonusWallet)
        .filter(BonusWallet.user_id == user_id)
        .update(values, synchronize_session=False)
    )
    if rowcount == 0:
        db.add(BonusWallet(
            user_id=user_id,
            balance=amount,
            lifetime_earnings=amount if count_as_earnings else ZERO,
            withdrawn_amount=ZERO,
        ))
        db.flush()
    if commit:
        db.commit()

def debit_wallet(db: Session, *, user_id: int, amount: Decimal, commit: bool = True) -> bool:
    """
    Subtract amount only if the balance covers it. Returns False when it does not
    (or when the user has no wallet).
    """
    rowcount = (
        db.query(BonusWallet)
        .filter(BonusWallet.user_id == user_id, BonusWallet.balance >= amount)
        .update({BonusWallet.balance: BonusWallet.balance - amount}, synchronize_session=False)
    )
    if commit:
        db.commit()
    return rowcount == 1

def add_withdrawn_amount(db: Session, *, user_id: int, amount: Decimal, commit: bool = True) -> None:
    (
        db.query(BonusWallet)
        .filter(BonusWallet.user_id == user_id)
        .update({BonusWallet.withdrawn_amount: BonusWallet.withdrawn_amount + amount}, synchronize_session=False)
    )
    if commit:
        db.commit()

def set_usdt_address(db: Session, *, user_id: int, usdt_address: str) -> BonusWallet:
    wallet = get_or_create_wallet(db, user_id=user_id)
    wallet.usdt_address = usdt_address.strip()
    db.add(wallet)
    db.commit()
    db.refresh(wallet)
    return wallet

# --- Commission ledger rows ---

def payment_has_commissions(db: Session, *, payment_id: int) -> bool:
    return (
        db.query(CommissionTransaction.id)
        .filter(CommissionTransaction.payment_id == payment_id)
        .first()
        is not None
    )

def commission_exists(db: Session, *, payment_id: int, beneficiary_user_id: int) -> bool:
    return (
        db.query(CommissionTransaction.id)
        .filter(
            CommissionTransaction.payment_id == payment_id,
            CommissionTransaction.beneficiary_user_id == beneficiary_user_id,
        )
        .first()
        is not None
    )

def add_commission_transaction(
    db: Session,
    *,
    payment_id: int,
    beneficiary_user_id: int,
    from_user_id: int,
    level: int,
    amount: Decimal,
    description: Optional[str] = None,
    commit: bool = True,
) -> CommissionTransaction:
    """
    Append a ledger row. The flush surfaces an IntegrityError right away if the
    (payment_id, beneficiary_user_id) pair already exists.
    """
    db_obj = CommissionTransaction(
        payment_id=payment_id,
        beneficiary_user_id=beneficiary_user_id,
        from_user_id=from_user_id,
        level=level,
        amount=amount,
        description=description or f"Level {level} commission from referral purchase",
    )
    db.add(db_obj)
    db.flush()
    if commit:
        db.commit()
        db.refresh(db_obj)
    return db_obj

def get_commissions_by_payment(db: Session, *, payment_id: int) -> List[CommissionTransaction]:
    return (
        db.query(CommissionTransaction)
        .filter(CommissionTransaction.payment_id == payment_id)
        .order_by(CommissionTransaction.level.asc())
        .all()
    )

def get_commissions_by_beneficiary(
    db: Session, *, user_id: int, skip: int = 0, limit: int = 50
) -> List[CommissionTransaction]:
    return (
        db.query(CommissionTransaction)
        .filter(CommissionTransaction.beneficiary_user_id == user_id)
        .order_by(CommissionTransaction.created_at.desc(), CommissionTransaction.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )

def count_commissions_by_beneficiary(db: Session, *, user_id: int) -> int:
    return db.query(CommissionTransaction).filter(CommissionTransaction.beneficiary_user_id == user_id).count()

def total_commission_for_payment(db: Session, *, payment_id: int) -> Decimal:
    total = (
        db.query(func.coalesce(func.sum(CommissionTransaction.amount), 0))
        .filter(CommissionTransaction.payment_id == payment_id)
        .scalar()
    )
    return Decimal(str(total))
