"""API routers."""
from shuttle_wallet.routers import health, reports, transactions, users

__all__ = ["health", "reports", "transactions", "users"]
