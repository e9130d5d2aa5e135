"""Envelope encoding, encryption, and routing between this node and its peers."""

import logging
from base64 import b64encode
from typing import Callable, Optional

from pydantic import BaseModel

from .crypto import Identity
from .directory import AgentDirectory
from .errors import (
    DecryptionError,
    InboxFullError,
    MalformedEnvelopeError,
    NodeError,
    NotReadyError,
    UnknownPeerError,
)
from .models import (
    DirectoryEntry,
    Envelope,
    EnvelopeKind,
    ReceivedMessage,
    Task,
    TaskRequest,
    TaskResult,
    TextMessage,
    decode_body,
    task_topic,
)
from .transport.base import PubSubTransport
from .transport.reliable import ReliableTransport

logger = logging.getLogger(__name__)


class MessageRouter:
    """Routes envelopes to peers' direct topics and classifies inbound ones.

    Outbound: peers must be in the directory before they can be messaged.
    Envelopes are encrypted when this node runs encrypted or the peer's card
    requires it.

    Inbound: ``handle_direct`` is the subscription callback for this node's
    direct topic. Tasks go to ``on_task``, results to ``on_result``, plain
    messages to ``on_message``. Anything malformed, misaddressed, forged, or
    undecryptable is dropped and reported to ``on_drop``.

    With ``acks`` set, task requests are published through the reliable
    layer and retransmitted until the receiver acknowledges them.
    """

    def __init__(
        self,
        identity: Identity,
        directory: AgentDirectory,
        pubsub: PubSubTransport,
        encrypted: bool = False,
        on_task: Optional[Callable[[Task], None]] = None,
        on_result: Optional[Callable[[str, TaskResult], None]] = None,
        on_message: Optional[Callable[[ReceivedMessage], None]] = None,
        on_drop: Optional[Callable[[NodeError], None]] = None,
        acks: Optional[ReliableTransport] = None,
    ):
        self.identity = identity
        self.directory = directory
        self.pubsub = pubsub
        self.encrypted = encrypted
        self.on_task = on_task
        self.on_result = on_result
        self.on_message = on_message
        self.on_drop = on_drop
        self.acks = acks

    @property
    def direct_topic(self) -> str:
        return task_topic(self.identity.public_id)

    # --- Outbound ---

    async def send_task(self, peer_id: str, request: TaskRequest) -> Envelope:
        entry = self._require_peer(peer_id)
        envelope = self.seal(EnvelopeKind.TASK, peer_id, request, self._should_encrypt(peer_id))
        if self.acks is not None:
            await self.acks.publish_tracked(entry.card.topic, envelope.to_bytes(), envelope.msg_id)
        else:
            await self.pubsub.publish(entry.card.topic, envelope.to_bytes())
        logger.info(f"Sent task {request.task_id} to {peer_id[:16]}")
        return envelope

    async def send_message(self, peer_id: str, text: str) -> Envelope:
        entry = self._require_peer(peer_id)
        envelope = self.seal(EnvelopeKind.MESSAGE, peer_id, TextMessage(text=text), self._should_encrypt(peer_id))
        await self.pubsub.publish(entry.card.topic, envelope.to_bytes())
        logger.info(f"Sent message {envelope.msg_id} to {peer_id[:16]}")
        return envelope

    async def send_result(self, requester_id: str, task_id: str, text: str, encrypt: bool = False) -> Envelope:
        """Publish a task result. The requester need not be in the directory.

        The result is encrypted if ``encrypt`` is set (the request was), this
        node runs encrypted, or the requester's card requires it.
        """
        entry = self.directory.get(requester_id)
        topic = entry.card.topic if entry else task_topic(requester_id)
        result = TaskResult(task_id=task_id, text=text)
        encrypt = encrypt or self._should_encrypt(requester_id)
        envelope = self.seal(EnvelopeKind.RESULT, requester_id, result, encrypt)
        await self.pubsub.publish(topic, envelope.to_bytes())
        logger.info(f"Responded to task {task_id}")
        return envelope

    def seal(self, kind: EnvelopeKind, recipient: str, body: BaseModel, encrypt: bool) -> Envelope:
        """Build a signed envelope, encrypting the body for ``recipient`` if asked."""
        envelope = Envelope(kind=kind, sender=self.identity.public_id, recipient=recipient)
        data = body.model_dump_json().encode()
        if encrypt:
            nonce, ciphertext = self.identity.encrypt_for(recipient, data)
            envelope.encrypted = True
            envelope.nonce = b64encode(nonce).decode()
            envelope.set_payload(ciphertext)
        else:
            envelope.set_payload(data)
        envelope.signature = self.identity.sign(envelope.signing_bytes())
        return envelope

    # --- Inbound ---

    def decode(self, raw: bytes) -> Envelope:
        """Parse and authenticate an envelope. The sender id is its own verify key."""
        envelope = Envelope.from_bytes(raw)
        if not Identity.verify(envelope.sender, envelope.signing_bytes(), envelope.signature):
            raise MalformedEnvelopeError(f"Invalid signature on envelope {envelope.msg_id}")
        return envelope

    def open_body(self, envelope: Envelope) -> BaseModel:
        data = envelope.payload_bytes()
        if envelope.encrypted:
            data = self.identity.decrypt_from(envelope.sender, envelope.nonce_bytes(), data)
        return decode_body(envelope.kind, data)

    def handle_direct(self, raw: bytes):
        """Subscription callback for this node's direct topic. Never raises node errors."""
        try:
            self._route(raw)
        except (MalformedEnvelopeError, DecryptionError, InboxFullError) as e:
            logger.warning(f"Dropped inbound envelope: {e}")
            if self.on_drop:
                self.on_drop(e)
        except NotReadyError:
            logger.debug("Discarding envelope received while shutting down")

    def _route(self, raw: bytes):
        envelope = self.decode(raw)
        if envelope.recipient != self.identity.public_id:
            raise MalformedEnvelopeError(f"Envelope {envelope.msg_id} is addressed to another node")
        if self.encrypted and not envelope.encrypted:
            raise MalformedEnvelopeError(f"Plaintext envelope {envelope.msg_id} rejected in encrypted mode")

        body = self.open_body(envelope)
        if isinstance(body, TaskRequest):
            logger.info(f"Received task {body.task_id} from {envelope.sender[:16]}")
            if self.on_task:
                self.on_task(
                    Task(
                        id=body.task_id,
                        requester=envelope.sender,
                        payload=body.text,
                        msg_id=envelope.msg_id,
                        encrypted=envelope.encrypted,
                    )
                )
        elif isinstance(body, TaskResult):
            logger.info(f"Received result for task {body.task_id} from {envelope.sender[:16]}")
            if self.on_result:
                self.on_result(envelope.sender, body)
        elif isinstance(body, TextMessage):
            logger.info(f"Received message {envelope.msg_id} from {envelope.sender[:16]}")
            if self.on_message:
                self.on_message(ReceivedMessage(msg_id=envelope.msg_id, sender=envelope.sender, text=body.text))
        else:
            raise MalformedEnvelopeError(f"Unexpected {envelope.kind.value} envelope on direct topic")

    # --- Helpers ---

    def _require_peer(self, peer_id: str) -> DirectoryEntry:
        entry = self.directory.get(peer_id)
        if entry is None:
            raise UnknownPeerError(peer_id)
        return entry

    def _should_encrypt(self, peer_id: str) -> bool:
        if self.encrypted:
            return True
        entry = self.directory.get(peer_id)
        return bool(entry and entry.card.encryption_required)
