from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

class TokenBalance(BaseModel):
    user_id: int
    balance: int

class TokenDeductRequest(BaseModel):
    amount: int = Field(default=1, gt=0)
    description: str = Field(default="Chat message", max_length=255)

class TokenRefundRequest(BaseModel):
    amount: int = Field(..., gt=0)
    description: str = Field(default="Refund for failed generation", max_length=255)

class TokenTransaction(BaseModel):
    id: int
    user_id: int
    amount: int
    type: str
    description: Optional[str] = None
    payment_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True
