"""Peer discovery over the shared pub/sub discovery topic."""

import asyncio
import logging
from typing import Callable, Optional

from .crypto import Identity
from .directory import AgentDirectory
from .errors import DecryptionError, MalformedEnvelopeError, NodeError
from .models import DISCOVERY_TOPIC, AgentCard, Envelope, EnvelopeKind, task_topic
from .router import MessageRouter
from .transport.base import PubSubTransport

logger = logging.getLogger(__name__)


class DiscoveryService:
    """Advertise this node's AgentCard and ingest cards published by peers."""

    def __init__(
        self,
        card: AgentCard,
        router: MessageRouter,
        directory: AgentDirectory,
        pubsub: PubSubTransport,
        on_peer_found: Optional[Callable[[AgentCard], None]] = None,
        on_drop: Optional[Callable[[NodeError], None]] = None,
    ):
        self.card = card
        self.router = router
        self.directory = directory
        self.pubsub = pubsub
        self.on_peer_found = on_peer_found
        self.on_drop = on_drop
        self._announce_task: Optional[asyncio.Task] = None

    async def announce(self) -> Envelope:
        """Publish the card once. Success means the transport accepted it."""
        envelope = self.router.seal(EnvelopeKind.AGENT_CARD, "", self.card, encrypt=False)
        await self.pubsub.publish(DISCOVERY_TOPIC, envelope.to_bytes())
        logger.info(f"Announced: {self.card.name} ({self.card.public_key[:16]})")
        return envelope

    def handle_announcement(self, raw: bytes):
        """Subscription callback for the discovery topic."""
        try:
            card, envelope = self._decode_card(raw)
        except (MalformedEnvelopeError, DecryptionError) as e:
            logger.warning(f"Dropped discovery payload: {e}")
            if self.on_drop:
                self.on_drop(e)
            return

        # Our own announcements (or replays of them) come back on this topic.
        if card.public_key == self.card.public_key:
            return

        if self.directory.upsert(card, envelope.sent_at_dt):
            logger.info(f"Discovered agent: {card.name} ({card.public_key[:16]})")
            if self.on_peer_found:
                self.on_peer_found(card)

    def _decode_card(self, raw: bytes) -> tuple[AgentCard, Envelope]:
        envelope = self.router.decode(raw)
        if envelope.kind is not EnvelopeKind.AGENT_CARD or envelope.encrypted:
            raise MalformedEnvelopeError(f"Unexpected {envelope.kind.value} envelope on discovery topic")
        card = self.router.open_body(envelope)
        if card.public_key != envelope.sender:
            raise MalformedEnvelopeError(f"Card for {card.public_key[:16]} published by another node")
        if not Identity.verify_card(card):
            raise MalformedEnvelopeError(f"Invalid signature on card {card.name}")
        if card.topic != task_topic(card.public_key):
            raise MalformedEnvelopeError(f"Card {card.name} advertises a foreign topic")
        return card, envelope

    def start_periodic(self, interval: float):
        """Re-announce every ``interval`` seconds until ``stop``."""
        if self._announce_task is None or self._announce_task.done():
            self._announce_task = asyncio.create_task(self._announce_loop(interval))

    async def _announce_loop(self, interval: float):
        while True:
            try:
                await self.announce()
            except NodeError as e:
                logger.error(f"Periodic announce failed: {e}")
            await asyncio.sleep(interval)

    async def stop(self):
        if self._announce_task:
            self._announce_task.cancel()
            try:
                await self._announce_task
            except asyncio.CancelledError:
                pass
            self._announce_task = None
