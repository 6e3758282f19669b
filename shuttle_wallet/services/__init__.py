"""Ledger services."""
from shuttle_wallet.services.user_directory import UserDirectory
from shuttle_wallet.services.ledger_store import LedgerStore, to_money
from shuttle_wallet.services.transaction_log import TransactionLog
from shuttle_wallet.services.settlement_service import SettlementReportEngine, SettlementService
from shuttle_wallet.services.notification_service import LineNotificationDispatcher, build_weekly_report_message

__all__ = [
    "UserDirectory",
    "LedgerStore",
    "to_money",
    "TransactionLog",
    "SettlementReportEngine",
    "SettlementService",
    "LineNotificationDispatcher",
    "build_weekly_report_message",
]
