"""Keyed lock client abstraction - Redis or in-process fallback."""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
import logging

from shuttle_wallet.utils.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


class LockClient:
    """Serializes work per key - uses Redis if available, else asyncio locks.

    The Redis backend lets several API processes share the same database
    without racing on a user's balance; the in-process backend only protects
    writers living in this event loop.
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.backend = "memory"
        self._memory_locks: dict[str, asyncio.Lock] = {}
        self._memory_users: dict[str, int] = {}  # Holders plus waiters per key

        if redis_url:
            try:
                import redis.asyncio as redis_asyncio
                self.redis = redis_asyncio.from_url(redis_url, decode_responses=True)
                self.backend = "redis"
                logger.info("Using Redis for locks")
            except Exception as e:
                logger.warning(f"Redis not available, using in-process locks: {e}")
        else:
            logger.info("Using in-process locks (Redis URL not provided)")

    def _checkout_memory_lock(self, name: str) -> asyncio.Lock:
        self._memory_users[name] = self._memory_users.get(name, 0) + 1
        return self._memory_locks.setdefault(name, asyncio.Lock())

    def _return_memory_lock(self, name: str) -> None:
        remaining = self._memory_users[name] - 1
        if remaining:
            self._memory_users[name] = remaining
        else:
            # Nobody holds or waits for this key any more
            del self._memory_users[name]
            del self._memory_locks[name]

    @asynccontextmanager
    async def lock(self, name: str, timeout: float = 10.0) -> AsyncIterator[None]:
        """Hold the lock for ``name``; give up with StoreUnavailableError after ``timeout`` seconds."""
        if self.backend == "redis":
            redis_lock = self.redis.lock(f"lock:{name}", timeout=timeout * 3, blocking_timeout=timeout)
            try:
                acquired = await redis_lock.acquire()
            except Exception as e:
                raise StoreUnavailableError(f"Lock backend failed for {name}: {e}") from e
            if not acquired:
                raise StoreUnavailableError(f"Timed out after {timeout}s waiting for lock {name}")
            try:
                yield
            finally:
                try:
                    await redis_lock.release()
                except Exception as e:
                    logger.warning(f"Failed to release Redis lock {name}: {e}")
        else:
            memory_lock = self._checkout_memory_lock(name)
            try:
                try:
                    await asyncio.wait_for(memory_lock.acquire(), timeout=timeout)
                except asyncio.TimeoutError as e:
                    raise StoreUnavailableError(f"Timed out after {timeout}s waiting for lock {name}") from e
                try:
                    yield
                finally:
                    memory_lock.release()
            finally:
                self._return_memory_lock(name)
