from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, ForeignKey, func
from sqlalchemy.orm import relationship
from companion_api.db.base_class import Base

WITHDRAWAL_PENDING = "pending"
WITHDRAWAL_APPROVED = "approved"
WITHDRAWAL_PROCESSING = "processing"
WITHDRAWAL_COMPLETED = "completed"
WITHDRAWAL_REJECTED = "rejected"

# current status -> statuses an admin may move it to
WITHDRAWAL_TRANSITIONS = {
    WITHDRAWAL_PENDING: {WITHDRAWAL_APPROVED, WITHDRAWAL_PROCESSING, WITHDRAWAL_REJECTED},
    WITHDRAWAL_APPROVED: {WITHDRAWAL_PROCESSING, WITHDRAWAL_COMPLETED, WITHDRAWAL_REJECTED},
    WITHDRAWAL_PROCESSING: {WITHDRAWAL_COMPLETED},
    WITHDRAWAL_COMPLETED: set(),
    WITHDRAWAL_REJECTED: set(),
}

class UsdtWithdrawal(Base):
    __tablename__ = "usdt_withdrawals"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    usdt_address = Column(String(128), nullable=False)
    status = Column(String(20), nullable=False, default=WITHDRAWAL_PENDING, index=True)
    rejection_reason = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    requested_at = Column(DateTime, server_default=func.now(), nullable=False)
    processed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", foreign_keys=[user_id])

    def __repr__(self):
        return f"<UsdtWithdrawal(id={self.id}, user_id={self.user_id}, amount={self.amount}, status='{self.status}')>"
