"""Pub/sub transport contract.

A transport only has to publish bytes to a topic and deliver bytes published
on a topic to subscribed callbacks. Delivery may be duplicated, reordered,
or lost, and callbacks may run on any thread.
"""

import threading
from typing import Callable, Optional, Protocol

MessageCallback = Callable[[bytes], None]


class Subscription:
    """Handle returned by ``subscribe``. ``cancel`` is idempotent."""

    def __init__(self, topic: str, callback: MessageCallback,
                 on_cancel: Optional[Callable[["Subscription"], None]] = None):
        self.topic = topic
        self._callback = callback
        self._on_cancel = on_cancel
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, payload: bytes):
        if not self._active:
            return
        self._callback(payload)

    def cancel(self):
        with self._lock:
            if not self._active:
                return
            self._active = False
        if self._on_cancel:
            self._on_cancel(self)


class PubSubTransport(Protocol):
    async def publish(self, topic: str, payload: bytes) -> None:
        """Publish a payload. Raises ``TransportPublishError`` on failure."""
        ...

    async def subscribe(self, topic: str, on_message: MessageCallback) -> Subscription:
        """Register a callback for a topic. Raises ``TransportError`` on failure."""
        ...

    async def close(self) -> None:
        ...
