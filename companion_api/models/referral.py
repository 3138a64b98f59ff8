from sqlalchemy import Column, Integer, DateTime, ForeignKey, CheckConstraint, func
from sqlalchemy.orm import relationship
from companion_api.db.base_class import Base

class ReferralEdge(Base):
    """Links a referred user to their single referrer. Written once at link time."""
    __tablename__ = "referral_edges"

    referred_user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    referrer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("referred_user_id <> referrer_id", name="ck_referral_edge_not_self"),
    )

    referred_user = relationship("User", foreign_keys=[referred_user_id], back_populates="referral_edge")
    referrer = relationship("User", foreign_keys=[referrer_id])

    def __repr__(self):
        return f"<ReferralEdge(referred_user_id={self.referred_user_id}, referrer_id={self.referrer_id})>"
