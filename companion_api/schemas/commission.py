from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

class CommissionTransaction(BaseModel):
    """A commission ledger row as returned to the beneficiary."""
    id: int
    payment_id: int
    beneficiary_user_id: int
    from_user_id: int
    level: int
    amount: Decimal
    transaction_type: str
    description: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class CommissionTransactionPage(BaseModel):
    transactions: List[CommissionTransaction] = []
    total: int
    limit: int
    offset: int

class CommissionOutcome(BaseModel):
    payment_id: int
    status: str  # distributed, skipped, not_found
    levels_distributed: int = 0
    errors: int = 0
    reason: Optional[str] = None
    beneficiaries: List[int] = []

class ReconciliationStats(BaseModel):
    scanned: int = 0
    fixed: int = 0
    skipped: int = 0
    errors: int = 0
    fixed_ids: List[int] = []
