"""In-process change notifications for store collections."""
from typing import Awaitable, Callable
import logging

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str], Awaitable[None]]


class Subscription:
    """Handle returned by ``ChangeFeed.listen``; ``remove()`` is idempotent."""

    def __init__(self, feed: "ChangeFeed", collection: str, listener: ChangeListener):
        self._feed = feed
        self.collection = collection
        self._listener = listener
        self.active = True

    def remove(self) -> None:
        if not self.active:
            return
        self.active = False
        self._feed._detach(self.collection, self._listener)


class ChangeFeed:
    """Fan-out of "collection changed" events to live subscribers.

    Events carry only the collection name; subscribers re-read whatever
    they mirror. Listener failures are logged and never reach the writer
    that published the change.
    """

    def __init__(self):
        self._listeners: dict[str, list[ChangeListener]] = {}

    def listen(self, collection: str, listener: ChangeListener) -> Subscription:
        self._listeners.setdefault(collection, []).append(listener)
        return Subscription(self, collection, listener)

    def _detach(self, collection: str, listener: ChangeListener) -> None:
        listeners = self._listeners.get(collection, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, collection: str) -> int:
        return len(self._listeners.get(collection, []))

    async def publish(self, collection: str) -> None:
        for listener in list(self._listeners.get(collection, [])):
            try:
                await listener(collection)
            except Exception as e:
                logger.error(f"Change listener for {collection} failed: {e}")
