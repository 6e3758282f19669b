"""Cross-user transaction history router."""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from shuttle_wallet.dependencies import get_transaction_log
from shuttle_wallet.schemas.transaction import TransactionListResponse
from shuttle_wallet.services.transaction_log import TransactionLog

router = APIRouter()


@router.get("", response_model=TransactionListResponse)
async def all_transactions(
    limit: Optional[int] = Query(default=None),
    transaction_log: TransactionLog = Depends(get_transaction_log),
):
    """Newest transactions across all users, including those of deleted users."""
    transactions = await transaction_log.all(limit)
    return TransactionListResponse(transactions=transactions, count=len(transactions))
