"""Task inbox and response dispatch."""

import logging
import threading
from collections import OrderedDict
from itertools import chain
from typing import Optional

from .errors import AlreadyRespondedError, AmbiguousTaskError, InboxFullError, UnknownTaskError
from .models import Task, TaskState
from .router import MessageRouter

logger = logging.getLogger(__name__)

RESPONDED_HISTORY = 10_000

TaskKey = tuple[str, str]  # (requester, task id)


class TaskInbox:
    """Concurrency-safe store of task requests addressed to this node.

    Tasks move pending -> in-flight (on ``poll``) -> responded (on
    ``complete``). Task ids are chosen by requesters, so tasks are keyed by
    ``(requester, id)``. Inserts are deduplicated across all three sets, so a
    retransmitted request never surfaces twice. Only the most recent
    ``responded_history`` responded keys are remembered.
    """

    def __init__(self, max_pending: Optional[int] = None, responded_history: int = RESPONDED_HISTORY):
        self.max_pending = max_pending
        self.responded_history = responded_history
        self._pending: dict[TaskKey, Task] = {}
        self._in_flight: dict[TaskKey, Task] = {}
        self._responding: set[TaskKey] = set()
        self._responded: OrderedDict[TaskKey, None] = OrderedDict()
        self._lock = threading.Lock()

    def add(self, task: Task) -> bool:
        """Queue a task. Returns False for a duplicate."""
        key = task.key
        with self._lock:
            if key in self._pending or key in self._in_flight or key in self._responded:
                return False
            if self.max_pending is not None and len(self._pending) >= self.max_pending:
                raise InboxFullError(f"Inbox full ({self.max_pending} pending), dropping task {task.id}")
            self._pending[key] = task
        return True

    def poll(self) -> list[Task]:
        """Return every pending task, oldest first, and move them to in-flight."""
        with self._lock:
            tasks = list(self._pending.values())
            self._pending.clear()
            for task in tasks:
                self._in_flight[task.key] = task
        return [task.model_copy() for task in tasks]

    def claim(self, task_id: str, requester: Optional[str] = None) -> Task:
        """Reserve an in-flight task for responding."""
        with self._lock:
            key = self._resolve(task_id, requester)
            if key in self._responded or key in self._responding:
                raise AlreadyRespondedError(task_id)
            task = self._in_flight.get(key)
            if task is None:
                raise UnknownTaskError(task_id)
            self._responding.add(key)
            return task.model_copy()

    def complete(self, key: TaskKey) -> Task:
        with self._lock:
            self._responding.discard(key)
            task = self._in_flight.pop(key)
            task.state = TaskState.RESPONDED
            self._responded[key] = None
            while len(self._responded) > self.responded_history:
                self._responded.popitem(last=False)
            return task.model_copy()

    def release(self, key: TaskKey):
        """Return a claimed task to in-flight after a failed response."""
        with self._lock:
            self._responding.discard(key)

    def _resolve(self, task_id: str, requester: Optional[str]) -> TaskKey:
        # Caller holds self._lock.
        if requester is not None:
            return (requester, task_id)
        keys = {k for k in chain(self._in_flight, self._responded) if k[1] == task_id}
        if not keys:
            raise UnknownTaskError(task_id)
        if len(keys) == 1:
            return keys.pop()
        open_keys = [k for k in keys if k in self._in_flight and k not in self._responding]
        if len(open_keys) > 1:
            raise AmbiguousTaskError(task_id)
        return open_keys[0] if open_keys else keys.pop()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)


class ResponseDispatcher:
    """Publishes exactly one correlated result per task. Never retries."""

    def __init__(self, inbox: TaskInbox, router: MessageRouter):
        self.inbox = inbox
        self.router = router

    async def respond(self, task_id: str, text: str, requester: Optional[str] = None) -> Task:
        task = self.inbox.claim(task_id, requester)
        try:
            # An encrypted request always gets an encrypted result.
            await self.router.send_result(task.requester, task.id, text, encrypt=task.encrypted)
        except BaseException:
            self.inbox.release(task.key)
            raise
        return self.inbox.complete(task.key)
