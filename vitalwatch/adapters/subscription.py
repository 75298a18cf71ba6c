"""Queue-backed subscription shared by the in-memory adapters."""

import asyncio
import logging
from typing import Callable, Generic, Optional, TypeVar

from vitalwatch.domain.ports import Subscription

logger = logging.getLogger(__name__)

T = TypeVar('T')

_CLOSED = object()


class QueueSubscription(Subscription[T], Generic[T]):
    """Subscription fed by ``push()`` from the owning adapter.

    Parameters:
        on_cancel: Called once when the subscription is cancelled, so the
            owner can stop pushing to it
        maxsize: Pending items kept before new pushes are dropped (0 = unbounded)
    """

    def __init__(self, on_cancel: Optional[Callable[['QueueSubscription[T]'], None]] = None, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._on_cancel = on_cancel
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, item: T) -> bool:
        """Deliver an item. Returns False when the subscription is closed or full."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.warning("Subscription queue full; dropping item")
            return False
        return True

    def cancel(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Discard pending items; the sentinel wakes a waiting consumer
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)
        if self._on_cancel is not None:
            self._on_cancel(self)

    async def __anext__(self) -> T:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item
