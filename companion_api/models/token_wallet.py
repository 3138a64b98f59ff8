from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint, func
from companion_api.db.base_class import Base

class TokenWallet(Base):
    __tablename__ = "user_tokens"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    balance = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_user_tokens_balance_non_negative"),
    )

    def __repr__(self):
        return f"<TokenWallet(user_id={self.user_id}, balance={self.balance})>"


class TokenTransaction(Base):
    __tablename__ = "token_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # Positive for credits, negative for usage
    type = Column(String(30), nullable=False)  # purchase, subscription_grant, usage, refund, admin_grant
    description = Column(String(255), nullable=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<TokenTransaction(id={self.id}, user_id={self.user_id}, amount={self.amount}, type='{self.type}')>"
