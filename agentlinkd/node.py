"""A2A node: announce, discover, send/receive tasks over a pub/sub transport."""

import logging
import threading
from collections import OrderedDict, deque
from enum import Enum
from typing import Callable, Optional

from .config import NodeConfig
from .crypto import Identity
from .directory import AgentDirectory
from .discovery import DiscoveryService
from .errors import InitializationError, NodeError, NotReadyError, UnknownTaskError
from .events import EventBus, EventKind
from .inbox import ResponseDispatcher, TaskInbox
from .models import (
    DISCOVERY_TOPIC,
    AgentCard,
    AgentListing,
    ReceivedMessage,
    SentTask,
    SentTaskState,
    Task,
    TaskRequest,
    TaskResult,
    utc_now,
)
from .router import MessageRouter
from .transport.base import PubSubTransport, Subscription
from .transport.nwaku_rest import NwakuRestTransport
from .transport.reliable import ReliableTransport

logger = logging.getLogger(__name__)

MESSAGE_HISTORY = 500
SENT_HISTORY = 1_000


class NodeState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class A2ANode:
    """One agent on the network.

    ``init`` generates the identity and subscribes to the discovery and direct
    topics. Operations require the ``ready`` state. ``shutdown`` cancels
    subscriptions and wipes key material; it is idempotent.

    If no transport is given, the node builds an ``NwakuRestTransport`` for
    ``config.waku_url`` and closes it on shutdown. A supplied transport is
    left open so it can be shared between nodes.

    With ``config.reliable_delivery`` the transport is wrapped in a
    ``ReliableTransport``: task requests are retransmitted until the receiver
    acknowledges them, and the receiver acknowledges when ``poll_tasks``
    hands them out.
    """

    def __init__(
        self,
        config: NodeConfig,
        transport: Optional[PubSubTransport] = None,
        events: Optional[EventBus] = None,
    ):
        self.config = config
        self.events = events or EventBus()
        self.directory = AgentDirectory()
        self.inbox = TaskInbox(max_pending=config.inbox_max_pending)
        self._transport = transport
        self._owns_transport = transport is None
        self._reliable: Optional[ReliableTransport] = None

        self.identity: Optional[Identity] = None
        self.card: Optional[AgentCard] = None
        self.router: Optional[MessageRouter] = None
        self.discovery: Optional[DiscoveryService] = None
        self.dispatcher: Optional[ResponseDispatcher] = None

        self._state = NodeState.UNINITIALIZED
        self._state_lock = threading.Lock()
        self._initializing = False
        self._accepting = False
        self._subscriptions: list[Subscription] = []
        self._sent: OrderedDict[str, SentTask] = OrderedDict()  # newest last, capped at SENT_HISTORY
        self._sent_lock = threading.Lock()
        self._messages: deque[ReceivedMessage] = deque(maxlen=MESSAGE_HISTORY)

    @property
    def state(self) -> NodeState:
        return self._state

    @property
    def encrypted(self) -> bool:
        return self.config.encrypted

    # --- Lifecycle ---

    async def init(self):
        with self._state_lock:
            if self._state is not NodeState.UNINITIALIZED or self._initializing:
                raise InitializationError(f"Cannot init a node that is {self._state.value}")
            self._initializing = True
        try:
            await self._setup()
        except NodeError as e:
            await self._teardown()
            logger.error(f"Node init failed: {e}")
            self._report("init", e)
            raise InitializationError(f"Node init failed: {e}") from e
        finally:
            with self._state_lock:
                self._initializing = False

        with self._state_lock:
            self._state = NodeState.READY
        logger.info(f"Node ready: {self.card.name} ({self.identity.public_id})")
        self.events.emit(EventKind.INITIALIZED, pubkey=self.identity.public_id, name=self.card.name)
        if self.config.announce_interval:
            self.discovery.start_periodic(self.config.announce_interval)

    async def _setup(self):
        self.identity = Identity.generate()
        self.card = self.identity.build_card(
            self.config.node_name,
            self.config.agent_description,
            self.config.capabilities,
            encryption_required=self.config.encrypted,
        )
        if self._transport is None:
            self._transport = NwakuRestTransport(self.config.waku_url, poll_interval=self.config.poll_interval)
        pubsub = self._transport
        if self.config.reliable_delivery:
            self._reliable = ReliableTransport(
                self._transport,
                ack_timeout=self.config.ack_timeout,
                max_retries=self.config.max_retries,
                on_give_up=self._on_give_up,
            )
            pubsub = self._reliable

        self.router = MessageRouter(
            self.identity,
            self.directory,
            pubsub,
            encrypted=self.config.encrypted,
            on_task=self._on_task,
            on_result=self._on_result,
            on_message=self._on_message,
            on_drop=self._on_drop,
            acks=self._reliable,
        )
        self.discovery = DiscoveryService(
            self.card,
            self.router,
            self.directory,
            pubsub,
            on_peer_found=self._on_peer_found,
            on_drop=self._on_drop,
        )
        self.dispatcher = ResponseDispatcher(self.inbox, self.router)

        # Transports may replay history during subscribe, so accept inbound
        # payloads before the state flips to ready.
        self._accepting = True
        self._subscriptions.append(
            await pubsub.subscribe(DISCOVERY_TOPIC, self._inbound(self.discovery.handle_announcement))
        )
        self._subscriptions.append(
            await pubsub.subscribe(self.router.direct_topic, self._inbound(self.router.handle_direct))
        )

    async def _teardown(self):
        self._accepting = False
        for sub in self._subscriptions:
            sub.cancel()
        self._subscriptions.clear()
        if self.discovery:
            await self.discovery.stop()
        if self._reliable is not None:
            await self._reliable.close()
        if self._owns_transport and self._transport is not None:
            await self._transport.close()
            self._transport = None
        if self.identity:
            self.identity.wipe()

    async def shutdown(self):
        with self._state_lock:
            if self._state is not NodeState.READY:
                logger.debug(f"Shutdown ignored, node is {self._state.value}")
                return
            self._state = NodeState.SHUTTING_DOWN
            self._accepting = False
        logger.info(f"Shutting down {self.card.name}")
        try:
            await self._teardown()
        finally:
            with self._state_lock:
                self._state = NodeState.STOPPED
        self.events.emit(EventKind.STOPPED, pubkey=self.identity.public_id)
        logger.info("Node stopped.")

    def _report(self, operation: str, error: NodeError):
        self.events.emit(EventKind.ERROR_OCCURRED, operation=operation, error=error.kind, detail=str(error))

    def _require_ready(self):
        if self._state is not NodeState.READY:
            raise NotReadyError(f"Node is {self._state.value}")

    # --- Operations ---

    def pubkey(self) -> str:
        self._require_ready()
        return self.identity.public_id

    def agent_card(self) -> AgentCard:
        self._require_ready()
        return self.card

    def agent_card_json(self) -> str:
        return self.agent_card().model_dump_json()

    async def announce(self):
        self._require_ready()
        try:
            await self.discovery.announce()
        except NodeError as e:
            self._report("announce", e)
            raise

    def discover(self) -> list[AgentListing]:
        """Known peers with their freshness. Never waits on the network."""
        self._require_ready()
        now = utc_now()
        entries = self.directory.snapshot(max_age=self.config.discover_max_age, now=now)
        return [
            AgentListing(card=e.card, last_seen=e.last_seen, freshness=e.freshness(self.config.directory_ttl, now))
            for e in entries
            if e.card.public_key != self.identity.public_id
        ]

    async def send_text(self, peer_id: str, text: str) -> SentTask:
        """Send ``text`` to a discovered peer as a task request."""
        self._require_ready()
        request = TaskRequest(text=text)
        sent = SentTask(id=request.task_id, recipient=peer_id, text=text)
        # Record first: the result may arrive before publish returns.
        with self._sent_lock:
            self._sent[sent.id] = sent
            while len(self._sent) > SENT_HISTORY:
                self._sent.popitem(last=False)
        try:
            await self.router.send_task(peer_id, request)
        except BaseException as e:
            with self._sent_lock:
                self._sent.pop(sent.id, None)
            if isinstance(e, NodeError):
                self._report("send_text", e)
            raise
        self.events.emit(EventKind.MESSAGE_SENT, intent="task", task_id=sent.id, to=peer_id)
        return sent.model_copy()

    async def send_message(self, peer_id: str, text: str) -> str:
        """Send a plain message (no response expected). Returns the message id."""
        self._require_ready()
        envelope = await self.router.send_message(peer_id, text)
        self.events.emit(EventKind.MESSAGE_SENT, intent="message", msg_id=envelope.msg_id, to=peer_id)
        return envelope.msg_id

    def poll_tasks(self) -> list[Task]:
        self._require_ready()
        tasks = self.inbox.poll()
        if self._reliable is not None:
            for task in tasks:
                if task.msg_id:
                    self._reliable.ack_soon(task.msg_id)
        if tasks:
            self.events.emit(EventKind.TASKS_CHANGED, pending=0, in_flight=self.inbox.in_flight_count)
        return tasks

    async def respond(self, task_id: str, text: str, requester: Optional[str] = None) -> Task:
        """Publish the result for a polled task.

        Task ids are chosen by requesters; name the ``requester`` when two of
        them picked the same id.
        """
        self._require_ready()
        try:
            task = await self.dispatcher.respond(task_id, text, requester)
        except NodeError as e:
            self._report("respond", e)
            raise
        self.events.emit(EventKind.MESSAGE_SENT, intent="result", task_id=task_id, to=task.requester)
        return task

    def task_result(self, task_id: str) -> SentTask:
        """Status of a task this node sent."""
        self._require_ready()
        with self._sent_lock:
            sent = self._sent.get(task_id)
            if sent is None:
                raise UnknownTaskError(task_id)
            return sent.model_copy()

    def messages(self) -> list[ReceivedMessage]:
        self._require_ready()
        return list(self._messages)

    def add_listener(self, listener: Callable) -> Callable[[], None]:
        return self.events.subscribe(listener)

    # --- Inbound callbacks ---

    def _inbound(self, handler: Callable[[bytes], None]) -> Callable[[bytes], None]:
        def callback(payload: bytes):
            if not self._accepting:
                logger.debug("Discarding inbound payload, node is not accepting")
                return
            handler(payload)

        return callback

    def _on_peer_found(self, card: AgentCard):
        self.events.emit(EventKind.AGENTS_CHANGED, pubkey=card.public_key, name=card.name)

    def _on_task(self, task: Task):
        if not self.inbox.add(task):
            logger.debug(f"Duplicate task {task.id} ignored")
            return
        self.events.emit(EventKind.TASKS_CHANGED, task_id=task.id, pending=self.inbox.pending_count)

    def _on_result(self, sender: str, result: TaskResult):
        with self._sent_lock:
            sent = self._sent.get(result.task_id)
            if sent is None or sent.recipient != sender:
                logger.warning(f"Result for unknown task {result.task_id} from {sender[:16]}")
                return
            if sent.state is SentTaskState.COMPLETED:
                logger.debug(f"Duplicate result for task {result.task_id} ignored")
                return
            sent.state = SentTaskState.COMPLETED
            sent.result = result.text
            sent.completed_at = utc_now()
        self.events.emit(EventKind.TASK_RESULT, task_id=result.task_id, sender=sender, text=result.text)

    def _on_give_up(self, msg_id: str):
        logger.warning(f"Task request {msg_id} was never acknowledged")
        self.events.emit(EventKind.DELIVERY_FAILED, msg_id=msg_id)

    def _on_message(self, message: ReceivedMessage):
        self._messages.append(message)
        self.events.emit(EventKind.MESSAGE_RECEIVED, msg_id=message.msg_id, sender=message.sender, text=message.text)

    def _on_drop(self, error: NodeError):
        self.events.emit(EventKind.ENVELOPE_DROPPED, error=error.kind, detail=str(error))
