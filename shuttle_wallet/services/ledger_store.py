"""Ledger store for atomic balance updates."""
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shuttle_wallet.models.base import (
    DESCRIPTION_MAX_LENGTH,
    MAX_MONEY,
    NAME_MAX_LENGTH,
    new_document_id,
    utc_now,
)
from shuttle_wallet.models.transaction import TransactionDocument
from shuttle_wallet.models.user import UserDocument
from shuttle_wallet.schemas.transaction import Transaction
from shuttle_wallet.schemas.user import BalanceAudit, BalanceChangeResponse, User
from shuttle_wallet.services.transaction_log import TransactionLog
from shuttle_wallet.services.user_directory import UserDirectory
from shuttle_wallet.store import DocumentStore, TRANSACTIONS, USERS
from shuttle_wallet.utils import lock_client as default_lock_client
from shuttle_wallet.utils.datetime_helpers import ensure_utc
from shuttle_wallet.utils.exceptions import (
    ConcurrentModificationError,
    InvalidArgumentError,
    NotFoundError,
    UserNotFoundError,
)
from shuttle_wallet.utils.lock_client import LockClient
from shuttle_wallet.utils.passwords import hash_password

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
TIMESTAMP_STEP = timedelta(microseconds=1)


def to_money(value, field: str = "amount") -> Decimal:
    """Coerce to a two-decimal amount, rejecting anything finer than a cent or too large to store."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise InvalidArgumentError(f"{field} is not a number: {value!r}") from e
    if not amount.is_finite():
        raise InvalidArgumentError(f"{field} must be finite, got {value!r}")
    if abs(amount) > MAX_MONEY:
        raise InvalidArgumentError(f"{field} is outside the storable range of +/-{MAX_MONEY}: {value!r}")
    if amount != amount.quantize(CENT):
        raise InvalidArgumentError(f"{field} has more than two decimal places: {value!r}")
    return amount.quantize(CENT)


def check_length(value: Optional[str], field: str, max_length: int) -> None:
    if value is not None and len(value) > max_length:
        raise InvalidArgumentError(f"{field} is longer than {max_length} characters")


class LedgerStore:
    """Owns every write to a user's balance and its transaction trail.

    ``top_up`` and ``deduct`` commit the balance change and its transaction
    record in a single store transaction. The balance is re-read inside that
    transaction and written with a compare-and-swap on ``version``, and
    mutations for one user are serialized through a keyed lock, so neither
    a stale directory snapshot nor a concurrent writer can lose an update.
    """

    def __init__(
        self,
        store: DocumentStore,
        directory: UserDirectory,
        lock_client: Optional[LockClient] = None,
        transaction_log: Optional[TransactionLog] = None,
    ):
        self.store = store
        self.directory = directory
        self.transaction_log = transaction_log or TransactionLog(store)
        self.lock_client = lock_client or default_lock_client
        self.settings = store.settings

    # ------------------------------------------------------------------
    # User lifecycle

    async def add_user(
        self,
        name: str,
        credential: str,
        initial_balance=Decimal("0"),
        role: Optional[str] = None,
        regular_days: Optional[list[int]] = None,
    ) -> User:
        """Create a user; ``initial_balance`` is the baseline the transaction sum is added to."""
        name = (name or "").strip()
        if not name:
            raise InvalidArgumentError("name is required")
        check_length(name, "name", NAME_MAX_LENGTH)
        if not credential:
            raise InvalidArgumentError("credential is required")
        initial_balance = to_money(initial_balance, "initial_balance")

        async with self.store.unit_of_work("users.add") as session:
            document = UserDocument(
                id=new_document_id(),
                name=name,
                balance=initial_balance,
                initial_balance=initial_balance,
                credential_hash=hash_password(credential),
                role=role,
                regular_days=regular_days,
                version=0,
                created_at=utc_now(),
            )
            session.add(document)
            await session.flush()
            user = User.from_document(document)

        logger.info(f"User added: id={user.id}, name={user.name}, initial_balance={initial_balance}")
        await self.store.publish(USERS)
        return user

    async def delete_user(self, user_id: str) -> None:
        """Delete a user; its transactions stay behind as orphaned history."""
        async with self.store.unit_of_work("users.delete") as session:
            document = await session.get(UserDocument, user_id)
            if document is None:
                raise NotFoundError(f"User not found: {user_id}")
            await session.delete(document)

        logger.info(f"User deleted: id={user_id} (transactions kept)")
        await self.store.publish(USERS)

    async def update_credential(self, user_id: str, credential: str) -> None:
        if not credential:
            raise InvalidArgumentError("credential is required")

        async with self.store.unit_of_work("users.update_credential") as session:
            result = await session.execute(
                update(UserDocument)
                .where(UserDocument.id == user_id)
                .values(credential_hash=hash_password(credential))
            )
            if result.rowcount != 1:
                raise NotFoundError(f"User not found: {user_id}")

        logger.info(f"Credential updated for user {user_id}")
        await self.store.publish(USERS)

    # ------------------------------------------------------------------
    # Primitive writes

    async def set_balance(self, user_id: str, new_balance) -> User:
        """Overwrite the stored balance. Records no transaction."""
        new_balance = to_money(new_balance, "new_balance")

        async with self._balance_lock(user_id):
            async with self.store.unit_of_work("users.set_balance") as session:
                document = await session.get(UserDocument, user_id, with_for_update=True)
                if document is None:
                    raise NotFoundError(f"User not found: {user_id}")
                document.balance = new_balance
                document.version = document.version + 1
                await session.flush()
                user = User.from_document(document)

        logger.info(f"Balance set: user={user_id}, new_balance={new_balance}")
        await self.store.publish(USERS)
        return user

    async def record_transaction(self, user_id: str, user_name: str, amount, description: str) -> Transaction:
        """Append one immutable transaction. Not idempotent: a retry appends a duplicate."""
        amount = to_money(amount)
        if amount == 0:
            raise InvalidArgumentError("Transaction amount must be non-zero")
        check_length(user_name, "user_name", NAME_MAX_LENGTH)
        check_length(description, "description", DESCRIPTION_MAX_LENGTH)

        async with self._balance_lock(user_id):
            async with self.store.unit_of_work("transactions.record") as session:
                document = await self._append_transaction(session, user_id, user_name, amount, description)
                transaction = Transaction.from_document(document)

        logger.info(f"Transaction recorded: user={user_id}, amount={amount}, description={description!r}")
        await self.store.publish(TRANSACTIONS)
        return transaction

    # ------------------------------------------------------------------
    # Balance mutations

    async def top_up(self, user_id: str, user_name: Optional[str], amount, description: str) -> BalanceChangeResponse:
        """Credit ``amount`` (> 0) to the user."""
        amount = self._require_positive(amount)
        return await self._apply_balance_change(user_id, user_name, amount, description)

    async def deduct(self, user_id: str, user_name: Optional[str], amount, description: str) -> BalanceChangeResponse:
        """Debit ``amount`` (> 0) from the user; overdraft is allowed."""
        amount = self._require_positive(amount)
        return await self._apply_balance_change(user_id, user_name, -amount, description)

    async def audit_balance(self, user_id: str) -> BalanceAudit:
        """Compare the stored balance with ``initial_balance + sum(transactions)`` without correcting it.

        Both reads happen under the user's balance lock so an in-flight top-up
        cannot show up as drift.
        """
        async with self._balance_lock(user_id):
            async with self.store.unit_of_work("ledger.audit") as session:
                document = await session.get(UserDocument, user_id)
                if document is None:
                    raise NotFoundError(f"User not found: {user_id}")
                user = User.from_document(document)
            history = await self.transaction_log.for_user_ascending(user_id)

        amounts = [transaction.amount for transaction in history]
        transaction_total = sum(amounts, Decimal("0"))
        computed = user.initial_balance + transaction_total
        difference = user.balance - computed
        if difference != 0:
            logger.warning(
                f"Balance drift for user {user_id}: stored={user.balance}, computed={computed}, {difference=}"
            )

        return BalanceAudit(
            user_id=user_id,
            stored_balance=user.balance,
            initial_balance=user.initial_balance,
            transaction_total=transaction_total,
            computed_balance=computed,
            difference=difference,
            transaction_count=len(amounts),
            is_consistent=difference == 0,
        )

    # ------------------------------------------------------------------
    # Internals

    def _balance_lock(self, user_id: str):
        return self.lock_client.lock(f"balance:{user_id}", timeout=self.settings.balance_lock_timeout_seconds)

    @staticmethod
    def _require_positive(amount) -> Decimal:
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidArgumentError(f"Amount must be greater than 0, got {amount}")
        return amount

    async def _apply_balance_change(
        self,
        user_id: str,
        user_name: Optional[str],
        delta: Decimal,
        description: str,
    ) -> BalanceChangeResponse:
        cached = self.directory.get(user_id)
        if cached is None:
            raise UserNotFoundError(f"User not found in directory: {user_id}")
        user_name = user_name or cached.name
        check_length(user_name, "user_name", NAME_MAX_LENGTH)
        check_length(description, "description", DESCRIPTION_MAX_LENGTH)

        max_attempts = self.settings.balance_cas_max_attempts
        async with self._balance_lock(user_id):
            for attempt in range(1, max_attempts + 1):
                try:
                    response = await self._commit_balance_change(user_id, user_name, delta, description)
                    break
                except ConcurrentModificationError:
                    # Nothing was committed, so re-reading and trying again is safe.
                    if attempt == max_attempts:
                        logger.error(f"Balance change for {user_id} lost {attempt} compare-and-swap races")
                        raise
                    logger.warning(f"Balance version moved for {user_id}, retrying ({attempt}/{max_attempts})")

        logger.info(
            f"Balance change committed: user={user_id}, name={user_name}, amount={delta}, "
            f"previous={response.previous_balance}, new={response.new_balance}"
        )
        await self.store.publish(USERS)
        await self.store.publish(TRANSACTIONS)
        return response

    async def _commit_balance_change(
        self,
        user_id: str,
        user_name: str,
        delta: Decimal,
        description: str,
    ) -> BalanceChangeResponse:
        async with self.store.unit_of_work("ledger.apply_balance_change") as session:
            document = await session.get(UserDocument, user_id, with_for_update=True)
            if document is None:
                raise NotFoundError(f"User not found: {user_id}")

            previous_balance = Decimal(document.balance)
            expected_version = document.version
            new_balance = previous_balance + delta
            if abs(new_balance) > MAX_MONEY:
                raise InvalidArgumentError(
                    f"Balance for {user_id} would leave the storable range: {previous_balance} + {delta}"
                )

            result = await session.execute(
                update(UserDocument)
                .where(UserDocument.id == user_id)
                .where(UserDocument.version == expected_version)
                .values(balance=new_balance, version=expected_version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConcurrentModificationError(
                    f"User {user_id} changed since version {expected_version} was read"
                )

            transaction = await self._append_transaction(session, user_id, user_name, delta, description)

        return BalanceChangeResponse(
            user_id=user_id,
            previous_balance=previous_balance,
            new_balance=new_balance,
            transaction_id=transaction.id,
        )

    async def _append_transaction(
        self,
        session: AsyncSession,
        user_id: str,
        user_name: str,
        amount: Decimal,
        description: str,
    ) -> TransactionDocument:
        document = TransactionDocument(
            id=new_document_id(),
            user_id=user_id,
            user_name=user_name,
            amount=amount,
            description=description or "",
            timestamp=await self._next_timestamp(session, user_id),
        )
        session.add(document)
        await session.flush()
        return document

    @staticmethod
    async def _next_timestamp(session: AsyncSession, user_id: str):
        """Commit time, nudged forward so one user's timestamps strictly increase."""
        now = utc_now()
        result = await session.execute(
            select(TransactionDocument.timestamp)
            .where(TransactionDocument.user_id == user_id)
            .order_by(TransactionDocument.timestamp.desc())
            .limit(1)
        )
        latest = ensure_utc(result.scalar_one_or_none())
        if latest is not None and latest >= now:
            return latest + TIMESTAMP_STEP
        return now
