from pydantic import BaseModel
from datetime import datetime


class BalanceResponse(BaseModel):
    user_id: str
    free_credits: int
    paid_credits: int
    total_credits: int
    lifetime_generations: int


class CreditTransactionInfo(BaseModel):
    id: str
    type: str
    amount: int
    bucket: str
    reason: str
    reference_id: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class CreditHistoryResponse(BaseModel):
    balance: BalanceResponse
    transactions: list[CreditTransactionInfo]
