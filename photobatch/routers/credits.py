from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from photobatch.database import get_db
from photobatch.schemas import BalanceResponse, CreditHistoryResponse, CreditTransactionInfo
from photobatch.services import ledger

router = APIRouter(prefix="/credits", tags=["credits"])


def _to_response(user_id: str, balance: ledger.Balance) -> BalanceResponse:
    return BalanceResponse(
        user_id=user_id,
        free_credits=balance.free,
        paid_credits=balance.paid,
        total_credits=balance.total,
        lifetime_generations=balance.lifetime,
    )


@router.get("/{user_id}", response_model=BalanceResponse)
async def get_credits(
    user_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get a user's credit balance. Users without an account see the signup grant."""
    balance = await ledger.get_balance(db, user_id)
    return _to_response(user_id, balance)


@router.post("/{user_id}/init", response_model=BalanceResponse)
async def init_credits(
    user_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Create the credit account with its starting grant. Safe to call repeatedly."""
    await ledger.ensure_account(db, user_id)
    balance = await ledger.get_balance(db, user_id)
    return _to_response(user_id, balance)


@router.get("/{user_id}/history", response_model=CreditHistoryResponse)
async def get_credit_history(
    user_id: str,
    limit: int = 50,
    db: AsyncSession = Depends(get_db),
):
    """Get the balance together with the most recent ledger entries."""
    balance = await ledger.get_balance(db, user_id)
    transactions = await ledger.list_transactions(db, user_id, limit=min(limit, 200))
    return CreditHistoryResponse(
        balance=_to_response(user_id, balance),
        transactions=[CreditTransactionInfo.model_validate(t) for t in transactions],
    )
