"""Wire, directory and task models."""

import binascii
import json
import uuid
from base64 import b64decode, b64encode
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import MalformedEnvelopeError

PROTOCOL_VERSION = 1
CARD_VERSION = "0.1.0"

DISCOVERY_TOPIC = "/waku-a2a/1/discovery/proto"


def task_topic(public_id: str) -> str:
    """Direct topic on which a node receives tasks, results and messages."""
    return f"/waku-a2a/1/task/{public_id}/proto"


def ack_topic(message_id: str) -> str:
    """Topic on which the receiver acknowledges one message."""
    return f"/waku-a2a/1/ack/{message_id}/proto"


def new_msg_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return utc_now().isoformat()


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp without timezone: {value!r}")
    return parsed


def _canonical(data: dict) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode()


class EnvelopeKind(str, Enum):
    AGENT_CARD = "agent_card"
    TASK = "task"
    RESULT = "result"
    MESSAGE = "message"


class AgentCard(BaseModel):
    name: str
    description: str = ""
    version: str = CARD_VERSION
    public_key: str  # hex Ed25519 verify key, the agent identity
    topic: str
    capabilities: list[str] = []
    encryption_key: str  # hex Curve25519 public key
    encryption_required: bool = False
    signature: Optional[str] = None

    def signing_bytes(self) -> bytes:
        return _canonical(self.model_dump(mode="json", exclude={"signature"}))


class Envelope(BaseModel):
    v: int = PROTOCOL_VERSION
    kind: EnvelopeKind
    msg_id: str = Field(default_factory=new_msg_id)
    sender: str
    recipient: str = ""  # empty for broadcasts
    sent_at: str = Field(default_factory=now_iso)
    encrypted: bool = False
    nonce: Optional[str] = None  # base64, only when encrypted
    payload: str = ""  # base64
    signature: Optional[str] = None

    @field_validator("sent_at")
    @classmethod
    def _check_sent_at(cls, value: str) -> str:
        parse_timestamp(value)
        return value

    @model_validator(mode="after")
    def _check_nonce(self) -> "Envelope":
        if self.encrypted and not self.nonce:
            raise ValueError("encrypted envelope without nonce")
        return self

    @property
    def sent_at_dt(self) -> datetime:
        return parse_timestamp(self.sent_at)

    def signing_bytes(self) -> bytes:
        return _canonical(self.model_dump(mode="json", exclude={"signature"}))

    def set_payload(self, data: bytes):
        self.payload = b64encode(data).decode()

    def payload_bytes(self) -> bytes:
        return _b64(self.payload, "payload")

    def nonce_bytes(self) -> bytes:
        return _b64(self.nonce or "", "nonce")

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode()

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Envelope":
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedEnvelopeError(f"Invalid envelope: {e.error_count()} validation error(s)") from e


def _b64(value: str, field_name: str) -> bytes:
    try:
        return b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedEnvelopeError(f"Invalid base64 in {field_name}") from e


# --- Envelope bodies ---


class TaskRequest(BaseModel):
    task_id: str = Field(default_factory=new_msg_id)
    text: str


class TaskResult(BaseModel):
    task_id: str
    text: str


class TextMessage(BaseModel):
    text: str


BODY_TYPES = {
    EnvelopeKind.TASK: TaskRequest,
    EnvelopeKind.RESULT: TaskResult,
    EnvelopeKind.MESSAGE: TextMessage,
    EnvelopeKind.AGENT_CARD: AgentCard,
}


def decode_body(kind: EnvelopeKind, data: bytes) -> BaseModel:
    try:
        return BODY_TYPES[kind].model_validate_json(data)
    except ValidationError as e:
        raise MalformedEnvelopeError(f"Invalid {kind.value} body") from e


# --- Tasks ---


class TaskState(str, Enum):
    PENDING = "pending"
    RESPONDED = "responded"


class Task(BaseModel):
    id: str
    requester: str
    payload: str
    received_at: datetime = Field(default_factory=utc_now)
    state: TaskState = TaskState.PENDING
    # Envelope metadata: kept for routing the result and the ACK, not exposed.
    msg_id: Optional[str] = Field(default=None, exclude=True)
    encrypted: bool = Field(default=False, exclude=True)

    @property
    def key(self) -> tuple[str, str]:
        """Task ids are chosen by requesters, so identity is (requester, id)."""
        return (self.requester, self.id)


class SentTaskState(str, Enum):
    SUBMITTED = "submitted"
    COMPLETED = "completed"


class SentTask(BaseModel):
    id: str
    recipient: str
    text: str
    sent_at: datetime = Field(default_factory=utc_now)
    state: SentTaskState = SentTaskState.SUBMITTED
    result: Optional[str] = None
    completed_at: Optional[datetime] = None


class ReceivedMessage(BaseModel):
    msg_id: str
    sender: str
    text: str
    received_at: datetime = Field(default_factory=utc_now)


# --- Directory ---


class Freshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"


class DirectoryEntry(BaseModel):
    card: AgentCard
    last_seen: datetime  # sender's timestamp, orders updates
    received_at: datetime = Field(default_factory=utc_now)  # local clock, drives freshness

    def freshness(self, ttl: float, now: Optional[datetime] = None) -> Freshness:
        age = ((now or utc_now()) - self.received_at).total_seconds()
        return Freshness.STALE if age > ttl else Freshness.FRESH


class AgentListing(BaseModel):
    card: AgentCard
    last_seen: datetime
    freshness: Freshness
