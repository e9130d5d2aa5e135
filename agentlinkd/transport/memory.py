"""In-memory transport for testing and single-process demos.

Messages published to a topic are delivered to every subscriber and kept in
history. New subscribers receive the history first, so a node that subscribes
after a peer announced still sees the announcement.
"""

import logging
import threading
from concurrent.futures import Executor
from typing import Optional

from .base import MessageCallback, Subscription

logger = logging.getLogger(__name__)


class InMemoryTransport:
    """Shared in-process bus. Give the same instance to every node."""

    def __init__(self, replay_history: bool = True, executor: Optional[Executor] = None):
        self.replay_history = replay_history
        self._executor = executor
        self._subscribers: dict[str, list[Subscription]] = {}
        self._history: dict[str, list[bytes]] = {}
        self._lock = threading.Lock()
        self.published: list[tuple[str, bytes]] = []

    async def publish(self, topic: str, payload: bytes) -> None:
        data = bytes(payload)
        with self._lock:
            self.published.append((topic, data))
            self._history.setdefault(topic, []).append(data)
            subscribers = list(self._subscribers.get(topic, []))
        for sub in subscribers:
            self._dispatch(sub, data)

    async def subscribe(self, topic: str, on_message: MessageCallback) -> Subscription:
        sub = Subscription(topic, on_message, on_cancel=self._remove)
        with self._lock:
            history = list(self._history.get(topic, [])) if self.replay_history else []
            self._subscribers.setdefault(topic, []).append(sub)
        for data in history:
            self._dispatch(sub, data)
        return sub

    async def close(self) -> None:
        """Nothing to release; the bus outlives the nodes sharing it."""

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))

    def _remove(self, sub: Subscription):
        with self._lock:
            subs = self._subscribers.get(sub.topic, [])
            if sub in subs:
                subs.remove(sub)

    def _dispatch(self, sub: Subscription, data: bytes):
        if self._executor is not None:
            self._executor.submit(self._deliver, sub, data)
        else:
            self._deliver(sub, data)

    @staticmethod
    def _deliver(sub: Subscription, data: bytes):
        try:
            sub.deliver(data)
        except Exception as e:
            logger.error(f"Subscriber on {sub.topic} raised: {e}")
