"""Node event notifications for presentation layers."""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    INITIALIZED = "initialized"
    AGENTS_CHANGED = "agents_changed"
    TASKS_CHANGED = "tasks_changed"
    MESSAGE_RECEIVED = "message_received"
    TASK_RESULT = "task_result"
    MESSAGE_SENT = "message_sent"
    ENVELOPE_DROPPED = "envelope_dropped"
    DELIVERY_FAILED = "delivery_failed"
    ERROR_OCCURRED = "error_occurred"
    STOPPED = "stopped"


@dataclass
class NodeEvent:
    kind: EventKind
    data: dict[str, Any] = field(default_factory=dict)


Listener = Callable[[NodeEvent], None]


class EventBus:
    """Fan-out of node events. A failing listener never affects the node."""

    def __init__(self):
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, kind: EventKind, /, **data: Any):
        event = NodeEvent(kind=kind, data=data)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(f"Event listener failed on {kind.value}")
