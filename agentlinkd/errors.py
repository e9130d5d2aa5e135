"""Error types for the node engine.

Every error carries a stable ``kind`` string so binding layers can report
failures without leaking Python class names.
"""


class NodeError(Exception):
    """Base error for all node failures."""

    kind = "node_error"


class KeyGenerationError(NodeError):
    """The entropy source failed while creating a keypair."""

    kind = "key_generation"


class InitializationError(NodeError):
    """``init`` failed; the node stays uninitialized and may be retried."""

    kind = "initialization"


class NotReadyError(NodeError):
    """An operation was attempted outside the ``ready`` state."""

    kind = "not_ready"


class UnknownPeerError(NodeError):
    """Direct send to a peer that has not been discovered."""

    kind = "unknown_peer"

    def __init__(self, peer_id: str) -> None:
        self.peer_id = peer_id
        super().__init__(f"Unknown peer: {peer_id}")


class MalformedEnvelopeError(NodeError):
    """Inbound data failed structural decoding or signature checks."""

    kind = "malformed_envelope"


class DecryptionError(NodeError):
    """Inbound ciphertext could not be opened."""

    kind = "decryption"


class InboxFullError(NodeError):
    """The task inbox reached its configured bound."""

    kind = "inbox_full"


class UnknownTaskError(NodeError):
    kind = "unknown_task"

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Unknown task: {task_id}")


class AmbiguousTaskError(NodeError):
    """Several requesters used the same task id; the requester must be named."""

    kind = "ambiguous_task"

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task id {task_id} is pending for several requesters")


class AlreadyRespondedError(NodeError):
    kind = "already_responded"

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task already responded: {task_id}")


class TransportError(NodeError):
    """The pub/sub transport could not be reached or set up."""

    kind = "transport"


class TransportPublishError(TransportError):
    """The external publish primitive failed."""

    kind = "transport_publish"

    def __init__(self, topic: str, detail: str = "") -> None:
        self.topic = topic
        self.detail = detail
        super().__init__(f"Publish to {topic} failed" + (f": {detail}" if detail else ""))
