"""Document store access shared by the ledger services.

The ledger talks to its backing database only through ``DocumentStore``:
every unit of work runs in one database transaction, is bounded by
``store_timeout_seconds`` and surfaces backend failures as
``StoreUnavailableError``. Writers publish collection changes on the
change feed after commit so live mirrors (``UserDirectory``) can refresh.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shuttle_wallet.config import Settings, get_settings
from shuttle_wallet.utils.change_feed import ChangeFeed, ChangeListener, Subscription
from shuttle_wallet.utils.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

USERS = "users"
TRANSACTIONS = "transactions"
WEEKLY_REPORTS = "weekly_reports"


class DocumentStore:
    """Bounded, error-translating access to the ledger database."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        change_feed: Optional[ChangeFeed] = None,
        settings: Optional[Settings] = None,
    ):
        if session_factory is None:
            from shuttle_wallet.database import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        if change_feed is None:
            from shuttle_wallet.utils import change_feed as default_feed
            change_feed = default_feed
        self.session_factory = session_factory
        self.change_feed = change_feed
        self.settings = settings or get_settings()

    @asynccontextmanager
    async def unit_of_work(self, label: str) -> AsyncIterator[AsyncSession]:
        """Run the enclosed block in one committed transaction.

        Errors raised by the block itself roll the transaction back and
        propagate unchanged; only backend errors and timeouts are translated.
        """
        timeout = self.settings.store_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                async with self.session_factory() as session:
                    async with session.begin():
                        yield session
        except TimeoutError as e:
            logger.error(f"Store call '{label}' exceeded {timeout}s")
            raise StoreUnavailableError(f"Store call '{label}' timed out after {timeout}s") from e
        except SQLAlchemyError as e:
            logger.error(f"Store call '{label}' failed: {e}")
            raise StoreUnavailableError(f"Store call '{label}' failed: {e}") from e

    def subscribe(self, collection: str, listener: ChangeListener) -> Subscription:
        return self.change_feed.listen(collection, listener)

    async def publish(self, collection: str) -> None:
        await self.change_feed.publish(collection)
