"""Live, eventually consistent mirror of all users."""
import asyncio
from typing import Awaitable, Callable, Optional, Union
import logging

from sqlalchemy import select

from shuttle_wallet.models.user import UserDocument
from shuttle_wallet.schemas.user import User
from shuttle_wallet.store import DocumentStore, USERS
from shuttle_wallet.utils.change_feed import Subscription

logger = logging.getLogger(__name__)

SnapshotObserver = Callable[[list[User]], Union[None, Awaitable[None]]]
ErrorObserver = Callable[[Exception], Union[None, Awaitable[None]]]


class UserDirectory:
    """
    In-memory snapshot of the ``users`` collection.

    Every upstream change re-materializes the whole set; observers always
    receive a full replacement list, never a diff. A failed reload keeps the
    last good snapshot and is reported to error observers instead of
    raising. The snapshot may lag the store, so it must never be trusted for
    the balance value that actually gets committed.
    """

    def __init__(self, store: DocumentStore, refresh_seconds: Optional[float] = None):
        self.store = store
        self.refresh_seconds = (
            store.settings.user_directory_refresh_seconds if refresh_seconds is None else refresh_seconds
        )
        self._users: list[User] = []
        self._by_id: dict[str, User] = {}
        self._observers: list[SnapshotObserver] = []
        self._error_observers: list[ErrorObserver] = []
        self._subscription: Optional[Subscription] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._reload_lock = asyncio.Lock()
        self.last_error: Optional[Exception] = None
        self.loaded = False

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def add_observer(self, observer: SnapshotObserver) -> None:
        self._observers.append(observer)

    def add_error_observer(self, observer: ErrorObserver) -> None:
        self._error_observers.append(observer)

    async def subscribe(self) -> None:
        """Start mirroring; loads an initial snapshot before returning."""
        if self.is_subscribed:
            return

        self._subscription = self.store.subscribe(USERS, self._on_change)
        await self.refresh()

        if self.refresh_seconds and self.refresh_seconds > 0:
            self._refresh_task = asyncio.create_task(self._refresh_cycle())
            logger.info(f"User directory polling every {self.refresh_seconds}s")

        logger.info(f"User directory subscribed with {len(self._users)} users")

    def current_users(self) -> list[User]:
        """Most recently materialized snapshot (may be stale)."""
        return list(self._users)

    def get(self, user_id: str) -> Optional[User]:
        return self._by_id.get(user_id)

    async def teardown(self) -> None:
        """Release the subscription; safe to call more than once."""
        if self._subscription is not None:
            self._subscription.remove()
            self._subscription = None
            logger.info("User directory subscription released")

        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

    async def refresh(self) -> bool:
        """Reload the full user set; returns False (keeping the old snapshot) on failure."""
        async with self._reload_lock:
            try:
                async with self.store.unit_of_work("users.snapshot") as session:
                    result = await session.execute(select(UserDocument).order_by(UserDocument.name))
                    users = [User.from_document(doc) for doc in result.scalars().all()]
            except Exception as e:
                self.last_error = e
                logger.error(f"User directory reload failed, keeping {len(self._users)} cached users: {e}")
                await self._notify(self._error_observers, e)
                return False

            self._users = users
            self._by_id = {user.id: user for user in users}
            self.last_error = None
            self.loaded = True

        logger.debug(f"User directory materialized {len(users)} users")
        await self._notify(self._observers, self.current_users())
        return True

    async def _on_change(self, collection: str) -> None:
        if self.is_subscribed:
            await self.refresh()

    async def _refresh_cycle(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_seconds)
            await self.refresh()

    @staticmethod
    async def _notify(observers, payload) -> None:
        for observer in list(observers):
            try:
                result = observer(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"User directory observer failed: {e}")
