from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

class ReferralLinkRequest(BaseModel):
    referral_code: str = Field(..., min_length=1, max_length=16)

class ReferralLinkResponse(BaseModel):
    referrer_id: int
    referred_user_id: int

class Downline(BaseModel):
    user_id: int
    email: Optional[str] = None
    username: Optional[str] = None
    level: int
    joined_at: Optional[datetime] = None

class DownlineStats(BaseModel):
    level1: int = 0
    level2: int = 0
    level3: int = 0
    total: int = 0

class DownlinesResponse(BaseModel):
    downlines: List[Downline] = []
    stats: DownlineStats

class ReferralSummary(BaseModel):
    referral_code: str
    referrer_id: Optional[int] = None
    stats: DownlineStats
    lifetime_earnings: Decimal = Decimal("0")
