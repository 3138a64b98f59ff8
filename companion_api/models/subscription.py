from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from companion_api.db.base_class import Base

SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_EXPIRED = "expired"

class Subscription(Base):
    """Premium status of one user. Timestamps are naive UTC."""
    __tablename__ = "subscriptions"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    plan_id = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default=SUBSCRIPTION_ACTIVE, index=True)  # active, expired
    monthly_tokens = Column(Integer, nullable=False, default=0)

    started_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    last_tokens_granted_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Subscription(user_id={self.user_id}, plan_id='{self.plan_id}', status='{self.status}', expires_at={self.expires_at})>"
