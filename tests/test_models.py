"""Tests for envelope and body models."""

from datetime import datetime, timedelta, timezone

import pytest

from agentlinkd.errors import MalformedEnvelopeError
from agentlinkd.models import (
    AgentCard,
    DirectoryEntry,
    Envelope,
    EnvelopeKind,
    Freshness,
    TaskRequest,
    TaskResult,
    TextMessage,
    decode_body,
    parse_timestamp,
    task_topic,
)


def _card(public_key: str = "ab" * 32) -> AgentCard:
    return AgentCard(
        name="alice",
        public_key=public_key,
        topic=task_topic(public_key),
        encryption_key="cd" * 32,
    )


class TestTopics:
    def test_task_topic(self) -> None:
        assert task_topic("abc") == "/waku-a2a/1/task/abc/proto"


class TestTimestamps:
    def test_parse_aware(self) -> None:
        ts = parse_timestamp("2025-01-01T00:00:00+00:00")
        assert ts.tzinfo is not None

    def test_parse_naive_rejected(self) -> None:
        with pytest.raises(ValueError):
            parse_timestamp("2025-01-01T00:00:00")


class TestEnvelope:
    def test_defaults(self) -> None:
        env = Envelope(kind=EnvelopeKind.TASK, sender="a")
        assert env.v == 1
        assert env.msg_id
        assert env.encrypted is False
        assert env.sent_at_dt.tzinfo is not None

    def test_to_bytes_from_bytes(self) -> None:
        env = Envelope(kind=EnvelopeKind.MESSAGE, sender="a", recipient="b")
        env.set_payload(b"payload")
        parsed = Envelope.from_bytes(env.to_bytes())
        assert parsed == env
        assert parsed.payload_bytes() == b"payload"

    def test_signing_bytes_exclude_signature(self) -> None:
        env = Envelope(kind=EnvelopeKind.TASK, sender="a")
        before = env.signing_bytes()
        env.signature = "00"
        assert env.signing_bytes() == before

    @pytest.mark.parametrize(
        "raw",
        [
            b"not json",
            b"{}",
            b'{"kind": "bogus", "sender": "a"}',
            b'{"kind": "task", "sender": "a", "sent_at": "yesterday"}',
            b'{"kind": "task", "sender": "a", "sent_at": "2025-01-01T00:00:00"}',
            b'{"kind": "task", "sender": "a", "encrypted": true}',
        ],
    )
    def test_malformed(self, raw: bytes) -> None:
        with pytest.raises(MalformedEnvelopeError):
            Envelope.from_bytes(raw)

    def test_bad_base64_payload(self) -> None:
        env = Envelope(kind=EnvelopeKind.TASK, sender="a", payload="!!!")
        with pytest.raises(MalformedEnvelopeError):
            env.payload_bytes()


class TestBodies:
    def test_task_request_generates_id(self) -> None:
        assert TaskRequest(text="hi").task_id != TaskRequest(text="hi").task_id

    def test_decode_each_kind(self) -> None:
        assert isinstance(decode_body(EnvelopeKind.TASK, b'{"task_id": "t", "text": "x"}'), TaskRequest)
        assert isinstance(decode_body(EnvelopeKind.RESULT, b'{"task_id": "t", "text": "x"}'), TaskResult)
        assert isinstance(decode_body(EnvelopeKind.MESSAGE, b'{"text": "x"}'), TextMessage)
        assert isinstance(decode_body(EnvelopeKind.AGENT_CARD, _card().model_dump_json().encode()), AgentCard)

    def test_decode_invalid_body(self) -> None:
        with pytest.raises(MalformedEnvelopeError):
            decode_body(EnvelopeKind.RESULT, b'{"text": "missing task id"}')


class TestFreshness:
    def test_fresh_and_stale(self) -> None:
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        entry = DirectoryEntry(card=_card(), last_seen=now, received_at=now - timedelta(seconds=100))
        assert entry.freshness(300, now) is Freshness.FRESH
        assert entry.freshness(60, now) is Freshness.STALE

    def test_sender_clock_does_not_affect_freshness(self) -> None:
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        entry = DirectoryEntry(card=_card(), last_seen=now - timedelta(hours=1), received_at=now)
        assert entry.freshness(300, now) is Freshness.FRESH
