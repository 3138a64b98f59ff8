from pydantic import BaseModel, Field
from typing import Optional, Literal
from datetime import datetime
from decimal import Decimal

class WithdrawalCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    usdt_address: Optional[str] = Field(default=None, max_length=128)  # Falls back to the wallet's address

class WithdrawalStatusUpdate(BaseModel):
    action: Literal["approved", "processing", "completed", "rejected"]
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None

class Withdrawal(BaseModel):
    id: int
    user_id: int
    amount: Decimal
    usdt_address: str
    status: str
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None
    requested_at: datetime
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True
