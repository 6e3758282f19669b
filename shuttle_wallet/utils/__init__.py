"""Utilities module - lock client, change feed and datetime helpers."""
from shuttle_wallet.config import get_settings
from shuttle_wallet.utils.lock_client import LockClient
from shuttle_wallet.utils.change_feed import ChangeFeed
from shuttle_wallet.utils.datetime_helpers import ensure_utc

settings = get_settings()

# Create singleton instances
lock_client = LockClient(settings.redis_url if settings.redis_url else None)
change_feed = ChangeFeed()

__all__ = ["lock_client", "change_feed", "ensure_utc", "LockClient", "ChangeFeed"]
