"""In-memory broadcast hub (BroadcastPort).

Topic-based publish/subscribe for the update channel. Every published
message is fanned out to the topic's live subscriptions and kept in a
message history for late inspection.

The history is an evictable cache: it may grow past ``history_limit``
between optimizations (up to twice the limit, after which ``publish`` trims
it), and ``evict()`` trims it back to the limit.
"""

import logging
from threading import Lock
from typing import Any, Optional

from vitalwatch.adapters.subscription import QueueSubscription
from vitalwatch.domain.models import BroadcastMessage
from vitalwatch.domain.ports import BroadcastPort, EvictableCache

logger = logging.getLogger(__name__)


class BroadcastHub(BroadcastPort, EvictableCache):
    """In-memory topic hub.

    Parameters:
        history_limit: Messages retained after eviction
    """

    name = "broadcast_history"

    def __init__(self, history_limit: int = 1000):
        if history_limit < 1:
            raise ValueError("history_limit must be at least 1")
        self.history_limit = history_limit
        self._subscribers: dict[str, set[QueueSubscription[BroadcastMessage]]] = {}
        self._history: list[BroadcastMessage] = []
        self._lock = Lock()

    def subscribe(self, topic: str) -> QueueSubscription[BroadcastMessage]:
        subscription: QueueSubscription[BroadcastMessage] = QueueSubscription(
            on_cancel=lambda sub: self._unsubscribe(topic, sub)
        )
        with self._lock:
            self._subscribers.setdefault(topic, set()).add(subscription)
        logger.debug(f"Subscribed to topic {topic}")
        return subscription

    def _unsubscribe(self, topic: str, subscription: QueueSubscription[BroadcastMessage]) -> None:
        with self._lock:
            subscribers = self._subscribers.get(topic)
            if subscribers is None:
                return
            subscribers.discard(subscription)
            if not subscribers:
                del self._subscribers[topic]

    def publish(
        self,
        topic: str,
        message_type: str,
        data: dict[str, Any],
        sender_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None
    ) -> BroadcastMessage:
        """Publish a message on ``topic``.

        Returns:
            BroadcastMessage: The message as delivered to subscribers
        """
        message = BroadcastMessage(
            type=message_type,
            channel=topic,
            data=data,
            sender_id=sender_id,
            metadata=metadata,
        )
        with self._lock:
            self._history.append(message)
            if len(self._history) > self.history_limit * 2:
                del self._history[:-self.history_limit]
            subscribers = list(self._subscribers.get(topic, ()))

        delivered = sum(1 for subscription in subscribers if subscription.push(message))
        logger.debug(f"Published {message_type} on {topic} to {delivered} subscriber(s)")
        return message

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))

    def get_history(self, topic: Optional[str] = None, limit: Optional[int] = None) -> list[BroadcastMessage]:
        """Retained messages, oldest first, optionally filtered by topic."""
        with self._lock:
            messages = [m for m in self._history if topic is None or m.channel == topic]
        if limit is not None:
            messages = messages[-limit:]
        return messages

    def evict(self) -> int:
        with self._lock:
            excess = len(self._history) - self.history_limit
            if excess <= 0:
                return 0
            del self._history[:excess]
        return excess
