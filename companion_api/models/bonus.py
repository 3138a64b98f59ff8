from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, CheckConstraint, UniqueConstraint, func
from sqlalchemy.orm import relationship
from companion_api.db.base_class import Base

class BonusWallet(Base):
    __tablename__ = "bonus_wallets"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    lifetime_earnings = Column(Numeric(12, 2), nullable=False, default=0)
    withdrawn_amount = Column(Numeric(12, 2), nullable=False, default=0)
    usdt_address = Column(String(128), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_bonus_wallet_balance_non_negative"),
        CheckConstraint("lifetime_earnings >= 0", name="ck_bonus_wallet_earnings_non_negative"),
    )

    user = relationship("User", back_populates="bonus_wallet")

    def __repr__(self):
        return f"<BonusWallet(user_id={self.user_id}, balance={self.balance}, lifetime_earnings={self.lifetime_earnings})>"


class CommissionTransaction(Base):
    """Append-only commission ledger row. One row per (payment, beneficiary)."""
    __tablename__ = "commission_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    beneficiary_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    from_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)  # Payer who triggered it
    level = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("payment_id", "beneficiary_user_id", name="uq_commission_payment_beneficiary"),
        CheckConstraint("level BETWEEN 1 AND 3", name="ck_commission_level_range"),
    )

    payment = relationship("Payment", back_populates="commission_transactions")
    beneficiary = relationship("User", foreign_keys=[beneficiary_user_id])
    from_user = relationship("User", foreign_keys=[from_user_id])

    @property
    def transaction_type(self) -> str:
        return f"commission_level{self.level}"

    def __repr__(self):
        return f"<CommissionTransaction(id={self.id}, payment_id={self.payment_id}, beneficiary_user_id={self.beneficiary_user_id}, level={self.level}, amount={self.amount})>"
