from pydantic import BaseModel, Field
from typing import Any, Dict
from decimal import Decimal

class TypedSettings(BaseModel):
    """
    Runtime business settings stored as text in ``admin_settings``.
    Each field's type and default is the single source of truth for its key.
    """
    monetization_enabled: bool = True
    withdrawals_enabled: bool = True
    min_withdrawal_amount: Decimal = Field(default=Decimal("10.00"), ge=0, decimal_places=2)
    site_name: str = Field(default="Girlzone", min_length=1, max_length=100)
    language: str = Field(default="en", min_length=2, max_length=10)

    class Config:
        extra = "forbid"

class SettingsRead(BaseModel):
    settings: TypedSettings

class SettingsUpdate(BaseModel):
    settings: Dict[str, Any]

class MonetizationStatus(BaseModel):
    monetization_enabled: bool
