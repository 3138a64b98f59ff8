from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

class BonusWallet(BaseModel):
    user_id: int
    balance: Decimal
    lifetime_earnings: Decimal
    withdrawn_amount: Decimal
    usdt_address: Optional[str] = None
    updated_at: datetime

    class Config:
        from_attributes = True

class UsdtAddressUpdate(BaseModel):
    usdt_address: str = Field(..., min_length=1, max_length=128)
