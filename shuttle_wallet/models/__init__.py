"""Database models."""
from shuttle_wallet.models.user import UserDocument
from shuttle_wallet.models.transaction import TransactionDocument
from shuttle_wallet.models.settlement import SettlementState, WeeklyReportRecord, SETTLEMENT_STATE_ID

__all__ = [
    "UserDocument",
    "TransactionDocument",
    "SettlementState",
    "WeeklyReportRecord",
    "SETTLEMENT_STATE_ID",
]
