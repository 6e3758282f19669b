"""Shuttle Wallet - badminton club wallet ledger and weekly settlement."""
from shuttle_wallet.version import APP_VERSION

__version__ = APP_VERSION
