"""Synchronous boundary over an A2ANode.

The nine calls a host binding (UI shell, FFI, plugin) needs: ``init``,
``pubkey``, ``agent_card_json``, ``announce``, ``discover``, ``send_text``,
``poll_tasks``, ``respond`` and ``shutdown``. Each returns an :class:`OpResult`
and never raises. Lists are returned as JSON arrays of objects.

The bridge owns an asyncio loop running on a daemon thread; calls block the
caller until the node operation finishes, including the transport publish.
"""

import asyncio
import json
import logging
import threading
from typing import Any, Callable, Optional

from pydantic import BaseModel

from .config import NodeConfig
from .errors import InitializationError, NodeError, NotReadyError
from .events import Listener
from .node import A2ANode, NodeState
from .transport.base import PubSubTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[NodeConfig], PubSubTransport]


class OpError(BaseModel):
    kind: str
    message: str


class OpResult(BaseModel):
    ok: bool
    value: Any = None
    error: Optional[OpError] = None

    @classmethod
    def success(cls, value: Any = None) -> "OpResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: str, message: str) -> "OpResult":
        return cls(ok=False, error=OpError(kind=kind, message=message))


class NodeBridge:
    """One node handle. Create several bridges to run several nodes."""

    def __init__(self, transport_factory: Optional[TransportFactory] = None):
        self._transport_factory = transport_factory
        self._node: Optional[A2ANode] = None
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name="agentlink-bridge", daemon=True)
        self._thread.start()

    @property
    def node(self) -> Optional[A2ANode]:
        return self._node

    def add_listener(self, listener: Listener):
        """Register an event listener; attached to every node this bridge creates."""
        self._listeners.append(listener)
        if self._node is not None:
            self._node.add_listener(listener)

    # --- Boundary operations ---

    def init(
        self,
        name: str,
        description: str,
        endpoint: str,
        encrypted: bool = False,
        capabilities: Optional[list[str]] = None,
    ) -> OpResult:
        def op():
            with self._lock:
                if self._node is not None and self._node.state is NodeState.READY:
                    raise InitializationError("Node is already initialized")
                config = NodeConfig(node_name=name, description=description, waku_url=endpoint, encrypted=encrypted)
                if capabilities is not None:
                    config.capabilities = list(capabilities)
                transport = self._transport_factory(config) if self._transport_factory else None
                node = A2ANode(config, transport)
                for listener in self._listeners:
                    node.add_listener(listener)
                self._run(node.init())
                self._node = node
            return None

        return self._call("init", op)

    def pubkey(self) -> OpResult:
        return self._call("pubkey", lambda: self._ready_node().pubkey())

    def agent_card_json(self) -> OpResult:
        return self._call("agent_card_json", lambda: self._ready_node().agent_card_json())

    def announce(self) -> OpResult:
        return self._call("announce", lambda: self._run(self._ready_node().announce()))

    def discover(self) -> OpResult:
        def op():
            listings = self._ready_node().discover()
            return json.dumps([listing.model_dump(mode="json") for listing in listings])

        return self._call("discover", op)

    def send_text(self, to: str, text: str) -> OpResult:
        return self._call("send_text", lambda: self._run(self._ready_node().send_text(to, text)).id)

    def poll_tasks(self) -> OpResult:
        def op():
            tasks = self._ready_node().poll_tasks()
            return json.dumps([task.model_dump(mode="json") for task in tasks])

        return self._call("poll_tasks", op)

    def respond(self, task_id: str, text: str, requester: Optional[str] = None) -> OpResult:
        def op():
            self._run(self._ready_node().respond(task_id, text, requester))

        return self._call("respond", op)

    def shutdown(self) -> OpResult:
        def op():
            if self._node is not None:
                self._run(self._node.shutdown())

        return self._call("shutdown", op)

    # --- Extras ---

    def task_result(self, task_id: str) -> OpResult:
        return self._call("task_result", lambda: self._ready_node().task_result(task_id).model_dump_json())

    def close(self):
        """Shut the node down and stop the bridge loop."""
        self.shutdown()
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)

    def __enter__(self) -> "NodeBridge":
        return self

    def __exit__(self, *exc):
        self.close()

    # --- Helpers ---

    def _ready_node(self) -> A2ANode:
        if self._node is None:
            raise NotReadyError("Node is uninitialized")
        return self._node

    def _run(self, coro):
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result()

    def _call(self, name: str, op: Callable[[], Any]) -> OpResult:
        try:
            return OpResult.success(op())
        except NodeError as e:
            logger.debug(f"{name} failed: {e}")
            return OpResult.failure(e.kind, str(e))
        except Exception as e:
            logger.exception(f"{name} failed unexpectedly")
            return OpResult.failure("internal", str(e))
