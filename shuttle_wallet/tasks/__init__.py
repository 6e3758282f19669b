"""Background tasks for the ledger."""
from shuttle_wallet.tasks.weekly_settlement import drain_notifications, run_weekly_settlement

__all__ = ["run_weekly_settlement", "drain_notifications"]
