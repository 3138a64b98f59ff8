from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

class CheckoutSessionCreateRequest(BaseModel):
    package_id: str = Field(..., max_length=50)

class CheckoutSessionCreateResponse(BaseModel):
    checkout_url: Optional[str] = None
    session_id: str
    payment_id: int

class PaymentCreateInternal(BaseModel):
    """Fields set by the system when a checkout is started."""
    user_id: int
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(default="usd", max_length=3)
    status: str = Field(default="pending", max_length=20)
    kind: str = Field(default="tokens", max_length=20)
    package_id: Optional[str] = Field(default=None, max_length=50)
    tokens: int = Field(default=0, ge=0)
    stripe_session_id: Optional[str] = Field(default=None, max_length=255)

class Payment(BaseModel):
    id: int
    user_id: int
    amount: Decimal
    currency: str
    status: str
    kind: str
    package_id: Optional[str] = None
    tokens: int
    stripe_session_id: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class WebhookAck(BaseModel):
    received: bool = True
    status: str
    payment_id: Optional[int] = None
    commission_levels: Optional[int] = None
