"""Read access to the immutable transaction history."""
from datetime import datetime
from typing import Optional
import logging

from sqlalchemy import select

from shuttle_wallet.models.transaction import TransactionDocument
from shuttle_wallet.schemas.transaction import Transaction
from shuttle_wallet.store import DocumentStore
from shuttle_wallet.utils.datetime_helpers import ensure_utc
from shuttle_wallet.utils.exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)


class TransactionLog:
    """Read-only projections over the ``transactions`` collection."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self.settings = store.settings

    @staticmethod
    def _check_limit(limit: int) -> None:
        if limit < 1:
            raise InvalidArgumentError(f"limit must be positive, got {limit}")

    async def for_user(self, user_id: str, limit: Optional[int] = None) -> list[Transaction]:
        """Most recent ``limit`` transactions for one user, newest first."""
        limit = self.settings.transaction_history_limit if limit is None else limit
        self._check_limit(limit)

        async with self.store.unit_of_work("transactions.for_user") as session:
            result = await session.execute(
                select(TransactionDocument)
                .where(TransactionDocument.user_id == user_id)
                .order_by(TransactionDocument.timestamp.desc())
                .limit(limit)
            )
            documents = list(result.scalars().all())

        logger.debug(f"Loaded {len(documents)} transactions for {user_id=}")
        return [Transaction.from_document(doc) for doc in documents]

    async def all(self, limit: Optional[int] = None) -> list[Transaction]:
        """Most recent ``limit`` transactions across all users (orphans included), newest first."""
        limit = self.settings.all_transactions_limit if limit is None else limit
        self._check_limit(limit)

        async with self.store.unit_of_work("transactions.all") as session:
            result = await session.execute(
                select(TransactionDocument)
                .order_by(TransactionDocument.timestamp.desc())
                .limit(limit)
            )
            documents = list(result.scalars().all())

        return [Transaction.from_document(doc) for doc in documents]

    async def in_period(self, start: datetime, end: datetime) -> list[Transaction]:
        """Every transaction with ``start <= timestamp < end``, oldest first."""
        start, end = ensure_utc(start), ensure_utc(end)
        if end <= start:
            raise InvalidArgumentError(f"Period end {end} must be after start {start}")

        async with self.store.unit_of_work("transactions.in_period") as session:
            result = await session.execute(
                select(TransactionDocument)
                .where(TransactionDocument.timestamp >= start)
                .where(TransactionDocument.timestamp < end)
                .order_by(TransactionDocument.timestamp.asc())
            )
            documents = list(result.scalars().all())

        return [Transaction.from_document(doc) for doc in documents]

    async def for_user_ascending(self, user_id: str) -> list[Transaction]:
        """Full history of one user, oldest first, for balance reconstruction."""
        async with self.store.unit_of_work("transactions.for_user_ascending") as session:
            result = await session.execute(
                select(TransactionDocument)
                .where(TransactionDocument.user_id == user_id)
                .order_by(TransactionDocument.timestamp.asc())
            )
            documents = list(result.scalars().all())

        return [Transaction.from_document(doc) for doc in documents]
