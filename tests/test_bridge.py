"""Tests for NodeBridge: the synchronous, never-raising operation boundary."""

import json

import pytest

from agentlinkd.bridge import NodeBridge, OpResult
from agentlinkd.events import EventKind
from agentlinkd.transport import InMemoryTransport


@pytest.fixture
def bridges(bus: InMemoryTransport):
    created: list[NodeBridge] = []

    def factory() -> NodeBridge:
        bridge = NodeBridge(transport_factory=lambda config: bus)
        created.append(bridge)
        return bridge

    yield factory

    for bridge in created:
        bridge.close()


def _ok(result: OpResult):
    assert result.ok, result.error
    assert result.error is None
    return result.value


def _failed(result: OpResult) -> str:
    assert not result.ok
    assert result.value is None
    return result.error.kind


def _started(bridge: NodeBridge, name: str, **kwargs) -> str:
    _ok(bridge.init(name, f"{name} agent", "http://unused:8645", **kwargs))
    _ok(bridge.announce())
    return _ok(bridge.pubkey())


class TestBridgeLifecycle:
    def test_calls_before_init_fail_cleanly(self, bridges) -> None:
        bridge = bridges()
        assert _failed(bridge.pubkey()) == "not_ready"
        assert _failed(bridge.agent_card_json()) == "not_ready"
        assert _failed(bridge.announce()) == "not_ready"
        assert _failed(bridge.discover()) == "not_ready"
        assert _failed(bridge.send_text("ab" * 32, "hi")) == "not_ready"
        assert _failed(bridge.poll_tasks()) == "not_ready"
        assert _failed(bridge.respond("t1", "x")) == "not_ready"
        _ok(bridge.shutdown())

    def test_init_and_identity(self, bridges) -> None:
        bridge = bridges()
        _ok(bridge.init("alice", "Alice", "http://unused:8645", capabilities=["text", "code"]))
        pubkey = _ok(bridge.pubkey())
        card = json.loads(_ok(bridge.agent_card_json()))
        assert card["public_key"] == pubkey
        assert card["name"] == "alice"
        assert card["capabilities"] == ["text", "code"]

    def test_init_twice(self, bridges) -> None:
        bridge = bridges()
        _ok(bridge.init("alice", "", "http://unused:8645"))
        assert _failed(bridge.init("alice", "", "http://unused:8645")) == "initialization"

    def test_shutdown_then_reinit(self, bridges) -> None:
        bridge = bridges()
        _ok(bridge.init("alice", "", "http://unused:8645"))
        first = _ok(bridge.pubkey())
        _ok(bridge.shutdown())
        _ok(bridge.shutdown())
        assert _failed(bridge.pubkey()) == "not_ready"
        _ok(bridge.init("alice", "", "http://unused:8645"))
        assert _ok(bridge.pubkey()) != first

    def test_unexpected_error_is_internal(self) -> None:
        def broken(config):
            raise RuntimeError("factory bug")

        with NodeBridge(transport_factory=broken) as bridge:
            assert _failed(bridge.init("alice", "", "http://unused:8645")) == "internal"

    def test_listener_receives_events(self, bridges) -> None:
        bridge = bridges()
        seen = []
        bridge.add_listener(lambda event: seen.append(event.kind))
        _ok(bridge.init("alice", "", "http://unused:8645"))
        assert EventKind.INITIALIZED in seen


class TestBridgeExchange:
    def test_discover_json(self, bridges) -> None:
        alice, bob = bridges(), bridges()
        alice_id = _started(alice, "alice")
        bob_id = _started(bob, "bob")
        listings = json.loads(_ok(alice.discover()))
        assert [entry["card"]["public_key"] for entry in listings] == [bob_id]
        assert listings[0]["freshness"] == "fresh"
        assert [entry["card"]["public_key"] for entry in json.loads(_ok(bob.discover()))] == [alice_id]

    @pytest.mark.parametrize("encrypted", [False, True])
    def test_task_round_trip(self, bridges, encrypted: bool) -> None:
        alice, bob = bridges(), bridges()
        alice_id = _started(alice, "alice", encrypted=encrypted)
        bob_id = _started(bob, "bob", encrypted=encrypted)

        task_id = _ok(alice.send_text(bob_id, "ping"))
        tasks = json.loads(_ok(bob.poll_tasks()))
        assert len(tasks) == 1
        assert tasks[0]["id"] == task_id
        assert tasks[0]["requester"] == alice_id
        assert tasks[0]["payload"] == "ping"
        assert json.loads(_ok(bob.poll_tasks())) == []

        _ok(bob.respond(task_id, "pong"))
        assert _failed(bob.respond(task_id, "again")) == "already_responded"

        record = json.loads(_ok(alice.task_result(task_id)))
        assert record["state"] == "completed"
        assert record["result"] == "pong"

    def test_error_kinds(self, bridges) -> None:
        alice = bridges()
        _started(alice, "alice")
        assert _failed(alice.send_text("ab" * 32, "hi")) == "unknown_peer"
        assert _failed(alice.respond("nope", "x")) == "unknown_task"
        assert _failed(alice.task_result("nope")) == "unknown_task"
