"""FastAPI dependencies."""
from fastapi import Request

from shuttle_wallet.services.ledger_store import LedgerStore
from shuttle_wallet.services.notification_service import LineNotificationDispatcher
from shuttle_wallet.services.settlement_service import SettlementService
from shuttle_wallet.services.transaction_log import TransactionLog
from shuttle_wallet.services.user_directory import UserDirectory


# Services are built once in the application lifespan and shared by all requests.
def get_user_directory(request: Request) -> UserDirectory:
    return request.app.state.user_directory


def get_ledger_store(request: Request) -> LedgerStore:
    return request.app.state.ledger_store


def get_transaction_log(request: Request) -> TransactionLog:
    return request.app.state.transaction_log


def get_settlement_service(request: Request) -> SettlementService:
    return request.app.state.settlement_service


def get_dispatcher(request: Request) -> LineNotificationDispatcher:
    return request.app.state.dispatcher
