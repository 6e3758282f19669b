"""User and wallet API router."""
from typing import Optional
import logging

from fastapi import APIRouter, Depends, Query, Response, status

from shuttle_wallet.dependencies import get_ledger_store, get_transaction_log, get_user_directory
from shuttle_wallet.schemas.transaction import TransactionListResponse
from shuttle_wallet.schemas.user import (
    BalanceAudit,
    BalanceChangeRequest,
    BalanceChangeResponse,
    CreateUserRequest,
    UpdateCredentialRequest,
    User,
)
from shuttle_wallet.services.ledger_store import LedgerStore
from shuttle_wallet.services.transaction_log import TransactionLog
from shuttle_wallet.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[User])
async def list_users(directory: UserDirectory = Depends(get_user_directory)):
    """Current directory snapshot; may briefly lag the store."""
    return directory.current_users()


@router.post("", response_model=User, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    ledger: LedgerStore = Depends(get_ledger_store),
):
    return await ledger.add_user(
        name=request.name,
        credential=request.credential,
        initial_balance=request.initial_balance,
        role=request.role,
        regular_days=request.regular_days,
    )


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, ledger: LedgerStore = Depends(get_ledger_store)):
    await ledger.delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{user_id}/credential", status_code=status.HTTP_204_NO_CONTENT)
async def update_credential(
    user_id: str,
    request: UpdateCredentialRequest,
    ledger: LedgerStore = Depends(get_ledger_store),
):
    await ledger.update_credential(user_id, request.credential)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{user_id}/top-up", response_model=BalanceChangeResponse)
async def top_up(
    user_id: str,
    request: BalanceChangeRequest,
    ledger: LedgerStore = Depends(get_ledger_store),
):
    """Credit a member's wallet."""
    return await ledger.top_up(user_id, request.user_name, request.amount, request.description)


@router.post("/{user_id}/deduct", response_model=BalanceChangeResponse)
async def deduct(
    user_id: str,
    request: BalanceChangeRequest,
    ledger: LedgerStore = Depends(get_ledger_store),
):
    """Debit a member's wallet; the balance may go negative."""
    return await ledger.deduct(user_id, request.user_name, request.amount, request.description)


@router.get("/{user_id}/transactions", response_model=TransactionListResponse)
async def user_transactions(
    user_id: str,
    limit: Optional[int] = Query(default=None),
    transaction_log: TransactionLog = Depends(get_transaction_log),
):
    transactions = await transaction_log.for_user(user_id, limit)
    return TransactionListResponse(transactions=transactions, count=len(transactions))


@router.get("/{user_id}/audit", response_model=BalanceAudit)
async def audit_balance(user_id: str, ledger: LedgerStore = Depends(get_ledger_store)):
    return await ledger.audit_balance(user_id)
