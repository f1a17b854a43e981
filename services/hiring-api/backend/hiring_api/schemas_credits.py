from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from hiring_api.models import CreditTransactionType


class BalanceOut(BaseModel):
    balance: int
    price_per_credit_eur: int


class CreditTransactionOut(BaseModel):
    id: str
    type: CreditTransactionType
    amount: int
    balance_after: int
    description: Optional[str] = None
    related_developer_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TransactionHistory(BaseModel):
    transactions: list[CreditTransactionOut]
    total: int


class CheckoutCreate(BaseModel):
    credits: int = Field(..., description="Credit package size: 1, 10 or 25.")


class CheckoutOut(BaseModel):
    url: str
    session_id: str


class UnlockOut(BaseModel):
    developer_id: str
    new_balance: int
    already_unlocked: bool
    unlocked_at: datetime

    class Config:
        from_attributes = True


class ReportData(BaseModel):
    developer_id: str
    first_name: Optional[str] = None
    overall_score: Optional[int] = None
    project_count: int = 0
    tech_stack: list[str] = []
    is_unlocked: bool
    # Only filled once the report is unlocked.
    email: Optional[str] = None
    last_name: Optional[str] = None
    assessed_at: Optional[datetime] = None
    unlocked_at: Optional[datetime] = None


class ReportOut(BaseModel):
    type: Literal["preview", "full"]
    data: ReportData
