from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

class SubscriptionCheckoutRequest(BaseModel):
    plan_id: str = Field(..., max_length=50)

class SubscriptionStatus(BaseModel):
    """Premium status of the current user."""
    is_premium: bool
    plan_id: Optional[str] = None
    status: Optional[str] = None
    expires_at: Optional[datetime] = None
    monthly_tokens: int = 0

class SubscriptionGrantStats(BaseModel):
    processed: int = 0
    granted: int = 0
    expired: int = 0
    errors: int = 0
    tokens_granted: int = 0
    granted_user_ids: List[int] = []
