"""Acknowledged delivery on top of any pub/sub transport.

Waku relay is fire-and-forget. For task requests the sender wants to know the
receiver picked the request up, so this layer adds a minimal ACK protocol:

- The sender listens on ``/waku-a2a/1/ack/{message_id}/proto`` and publishes.
- The receiver publishes ``{"type": "ack", "message_id": ...}`` on that topic
  once it has handed the task to its application.
- Without an ACK within ``ack_timeout`` the sender retransmits the same bytes,
  up to ``max_retries`` times, then gives up.

Inbound payloads are deduplicated by their ``msg_id`` so retransmissions are
delivered once.
"""

import asyncio
import json
import logging
import threading
from collections import OrderedDict
from typing import Callable, Optional

from ..errors import TransportError
from ..models import ack_topic
from .base import MessageCallback, PubSubTransport, Subscription

logger = logging.getLogger(__name__)

ACK_TIMEOUT = 10.0
MAX_RETRIES = 3
ACK_POLL_INTERVAL = 0.5
SEEN_HISTORY = 10_000


class PendingAck:
    """Sender-side wait for one message's ACK. Set from any thread."""

    def __init__(self, message_id: str):
        self.message_id = message_id
        self.subscription: Optional[Subscription] = None
        self._event = threading.Event()

    @property
    def acked(self) -> bool:
        return self._event.is_set()

    def on_ack(self, payload: bytes):
        try:
            ack = json.loads(payload)
        except ValueError:
            return
        if isinstance(ack, dict) and ack.get("type") == "ack" and ack.get("message_id") == self.message_id:
            self._event.set()

    def cancel(self):
        if self.subscription:
            self.subscription.cancel()


class ReliableTransport:
    """Wraps a transport with ACK/retransmit for tracked messages and dedup.

    ``publish`` and ``subscribe`` behave like the inner transport's (with
    deduplication on inbound). ``publish_reliable`` waits for the ACK;
    ``publish_tracked`` publishes once and keeps retransmitting in the
    background. ``close`` stops background retransmissions; the inner
    transport is closed by whoever owns it.
    """

    def __init__(
        self,
        inner: PubSubTransport,
        ack_timeout: float = ACK_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        poll_interval: float = ACK_POLL_INTERVAL,
        on_give_up: Optional[Callable[[str], None]] = None,
    ):
        self.inner = inner
        self.ack_timeout = ack_timeout
        self.max_retries = max_retries
        self.poll_interval = poll_interval
        self.on_give_up = on_give_up
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._acked: OrderedDict[str, None] = OrderedDict()
        self._seen_lock = threading.Lock()
        self._tracking: set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # --- PubSubTransport ---

    async def publish(self, topic: str, payload: bytes) -> None:
        await self.inner.publish(topic, payload)

    async def subscribe(self, topic: str, on_message: MessageCallback) -> Subscription:
        self._loop = asyncio.get_running_loop()

        def deliver(payload: bytes):
            if self.is_duplicate(payload):
                logger.debug(f"Dropping duplicate delivery on {topic}")
                self._reack(_message_id(payload))
                return
            on_message(payload)

        return await self.inner.subscribe(topic, deliver)

    async def close(self) -> None:
        for task in list(self._tracking):
            task.cancel()
        if self._tracking:
            await asyncio.gather(*self._tracking, return_exceptions=True)
        self._tracking.clear()

    # --- Acknowledged delivery ---

    async def publish_reliable(self, topic: str, payload: bytes, message_id: str) -> bool:
        """Publish and wait for the ACK, retransmitting on timeout.

        Returns True once acknowledged, False after ``max_retries``
        retransmissions. Failure of the first publish raises.
        """
        pending = await self._expect_ack(message_id)
        try:
            await self.inner.publish(topic, payload)
            return await self._confirm(topic, payload, pending)
        finally:
            pending.cancel()

    async def publish_tracked(self, topic: str, payload: bytes, message_id: str) -> asyncio.Task:
        """Publish once, then wait for the ACK in the background.

        Failure of the first publish raises. The returned task resolves to
        whether the message was acknowledged.
        """
        pending = await self._expect_ack(message_id)
        try:
            await self.inner.publish(topic, payload)
        except BaseException:
            pending.cancel()
            raise
        task = asyncio.create_task(self._track(topic, payload, pending))
        self._tracking.add(task)
        task.add_done_callback(self._tracking.discard)
        task.add_done_callback(lambda _: pending.cancel())
        return task

    async def send_ack(self, message_id: str) -> None:
        ack = {"type": "ack", "message_id": message_id}
        await self.inner.publish(ack_topic(message_id), json.dumps(ack).encode())
        with self._seen_lock:
            _remember(self._acked, message_id)

    def is_duplicate(self, payload: bytes) -> bool:
        """Record the payload's ``msg_id``; True if it was already seen."""
        message_id = _message_id(payload)
        if message_id is None:
            return False
        with self._seen_lock:
            if message_id in self._seen:
                return True
            _remember(self._seen, message_id)
        return False

    def ack_soon(self, message_id: str):
        """Schedule ``send_ack`` on the subscription loop. Safe from any thread."""
        if self._loop is None:
            logger.warning(f"Cannot ACK {message_id}, nothing subscribed yet")
            return
        future = asyncio.run_coroutine_threadsafe(self.send_ack(message_id), self._loop)
        future.add_done_callback(_log_failure)

    # --- Helpers ---

    def _reack(self, message_id: str):
        # A retransmission of an acknowledged message means our ACK was lost.
        with self._seen_lock:
            if message_id not in self._acked:
                return
        self.ack_soon(message_id)

    async def _expect_ack(self, message_id: str) -> PendingAck:
        pending = PendingAck(message_id)
        pending.subscription = await self.inner.subscribe(ack_topic(message_id), pending.on_ack)
        return pending

    async def _track(self, topic: str, payload: bytes, pending: PendingAck) -> bool:
        acked = await self._confirm(topic, payload, pending)
        if not acked and self.on_give_up:
            self.on_give_up(pending.message_id)
        return acked

    async def _confirm(self, topic: str, payload: bytes, pending: PendingAck) -> bool:
        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                logger.info(f"Retransmit {attempt}/{self.max_retries} for {pending.message_id}")
                try:
                    await self.inner.publish(topic, payload)
                except TransportError as e:
                    logger.warning(f"Retransmit of {pending.message_id} failed: {e}")
            if await self._wait_for_ack(pending):
                logger.debug(f"ACK received for {pending.message_id}")
                return True
        logger.warning(f"No ACK for {pending.message_id} after {self.max_retries} retries")
        return False

    async def _wait_for_ack(self, pending: PendingAck) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.ack_timeout
        while not pending.acked:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(self.poll_interval, remaining))
        return True


def _remember(ids: OrderedDict, message_id: str):
    ids[message_id] = None
    while len(ids) > SEEN_HISTORY:
        ids.popitem(last=False)


def _log_failure(future):
    if not future.cancelled() and future.exception() is not None:
        logger.warning(f"ACK publish failed: {future.exception()}")


def _message_id(payload: bytes) -> Optional[str]:
    try:
        data = json.loads(payload)
    except ValueError:
        return None
    message_id = data.get("msg_id") if isinstance(data, dict) else None
    return message_id if isinstance(message_id, str) else None
