from sqlalchemy import Column, Integer, String, Boolean, DateTime, func
from sqlalchemy.orm import relationship
from companion_api.db.base_class import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=True)
    username = Column(String(100), nullable=True)
    referral_code = Column(String(16), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_superuser = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

    # Edge to this user's referrer, if any (a user has at most one)
    referral_edge = relationship(
        "ReferralEdge",
        foreign_keys="ReferralEdge.referred_user_id",
        uselist=False,
        back_populates="referred_user",
    )
    bonus_wallet = relationship("BonusWallet", uselist=False, back_populates="user")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', referral_code='{self.referral_code}')>"
