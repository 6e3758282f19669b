"""Pytest configuration and fixtures."""
import os

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Keep tests away from any real database or LINE group
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
os.environ["LINE_ACCESS_TOKEN"] = ""
os.environ["LINE_GROUP_ID"] = ""
os.environ["REDIS_URL"] = ""

from shuttle_wallet.config import Settings
from shuttle_wallet.database import Base
from shuttle_wallet.services.ledger_store import LedgerStore
from shuttle_wallet.services.settlement_service import SettlementService
from shuttle_wallet.services.transaction_log import TransactionLog
from shuttle_wallet.services.user_directory import UserDirectory
from shuttle_wallet.store import DocumentStore
from shuttle_wallet.utils.change_feed import ChangeFeed
from shuttle_wallet.utils.lock_client import LockClient
import shuttle_wallet.models  # noqa: F401  (registers tables on Base.metadata)


@pytest.fixture
def test_settings(tmp_path):
    """Settings bound to a throwaway SQLite file."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        store_timeout_seconds=5.0,
        balance_lock_timeout_seconds=5.0,
        settlement_timezone="Asia/Bangkok",
        line_access_token="",
        line_group_id="",
    )


@pytest.fixture
async def test_engine(test_settings):
    """Fresh database per test with all ledger tables created."""
    engine = create_async_engine(test_settings.database_url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def change_feed():
    return ChangeFeed()


@pytest.fixture
def lock_client():
    return LockClient(None)


@pytest.fixture
def store(session_factory, change_feed, test_settings):
    return DocumentStore(session_factory, change_feed, test_settings)


@pytest.fixture
async def directory(store):
    """Subscribed user directory, torn down after the test."""
    user_directory = UserDirectory(store, refresh_seconds=0)
    await user_directory.subscribe()

    yield user_directory

    await user_directory.teardown()


@pytest.fixture
def transaction_log(store):
    return TransactionLog(store)


@pytest.fixture
def ledger(store, directory, lock_client, transaction_log):
    return LedgerStore(store, directory, lock_client, transaction_log)


@pytest.fixture
def settlement_service(store, transaction_log, lock_client):
    return SettlementService(store, transaction_log, lock_client=lock_client)


@pytest.fixture
def user_factory(ledger):
    """Factory for creating wallet holders with default credentials."""
    import uuid

    async def _create_user(name: str | None = None, initial_balance="0", **kwargs):
        if name is None:
            name = f"player{uuid.uuid4().hex[:8]}"
        return await ledger.add_user(name, "TestPassword123!", initial_balance=initial_balance, **kwargs)

    return _create_user
