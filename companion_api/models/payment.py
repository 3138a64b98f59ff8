from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, func
from sqlalchemy.orm import relationship
from companion_api.db.base_class import Base

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"

# Terminal success states the commission ledger acts on
PAYMENT_SUCCESS_STATUSES = (PAYMENT_PAID, PAYMENT_COMPLETED)

PAYMENT_KIND_TOKENS = "tokens"
PAYMENT_KIND_SUBSCRIPTION = "subscription"

class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # Payer

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="usd")
    status = Column(String(20), nullable=False, default=PAYMENT_PENDING, index=True)
    # pending, paid, completed, failed

    kind = Column(String(20), nullable=False, default=PAYMENT_KIND_TOKENS)  # tokens, subscription
    package_id = Column(String(50), nullable=True)  # Token package or subscription plan
    tokens = Column(Integer, nullable=False, default=0)  # Tokens credited on completion

    stripe_session_id = Column(String(255), nullable=True, unique=True, index=True)
    stripe_payment_intent_id = Column(String(255), nullable=True, index=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)
    completed_at = Column(DateTime, nullable=True)

    payer = relationship("User")
    commission_transactions = relationship("CommissionTransaction", back_populates="payment")

    def __repr__(self):
        return f"<Payment(id={self.id}, user_id={self.user_id}, amount={self.amount}, status='{self.status}')>"
