"""Tests for AgentLinkClient against a mocked daemon."""

import json

import httpx
import pytest

from agentlink import AgentLinkClient

PEER = "ab" * 32


class FakeDaemon:
    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.result_states = ["submitted", "completed"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/v0/identity":
            return httpx.Response(200, json={"pubkey": PEER, "name": "alice", "encrypted": False, "state": "ready"})
        if path == "/v0/send":
            body = json.loads(request.content)
            key = "task_id" if body["intent"] == "task" else "msg_id"
            return httpx.Response(200, json={"status": "ok", key: "id-1"})
        if path == "/v0/tasks":
            return httpx.Response(200, json=[{"id": "t1", "requester": PEER, "payload": "hi"}])
        if path.endswith("/respond"):
            return httpx.Response(200, json={"status": "ok", "task_id": path.split("/")[3]})
        if path.startswith("/v0/results/"):
            state = self.result_states.pop(0) if len(self.result_states) > 1 else self.result_states[0]
            return httpx.Response(200, json={"id": "t1", "state": state, "result": "done"})
        return httpx.Response(404, json={"error": {"kind": "not_found", "message": path}})

    def client(self) -> AgentLinkClient:
        return AgentLinkClient("http://node.test:7443/", transport=httpx.MockTransport(self.handler))


class TestAgentLinkClient:
    def test_identity(self) -> None:
        assert FakeDaemon().client().identity()["pubkey"] == PEER

    def test_send_task(self) -> None:
        fake = FakeDaemon()
        assert fake.client().send(PEER, "hello")["task_id"] == "id-1"
        assert json.loads(fake.requests[0].content) == {"to": PEER, "text": "hello", "intent": "task"}

    def test_send_message(self) -> None:
        fake = FakeDaemon()
        assert fake.client().send_message(PEER, "fyi")["msg_id"] == "id-1"
        assert json.loads(fake.requests[0].content)["intent"] == "message"

    def test_tasks_and_respond(self) -> None:
        fake = FakeDaemon()
        client = fake.client()
        task = client.tasks()[0]
        assert client.respond(task["id"], "ok") == {"status": "ok", "task_id": "t1"}
        assert json.loads(fake.requests[-1].content) == {"text": "ok"}

    def test_respond_naming_requester(self) -> None:
        fake = FakeDaemon()
        fake.client().respond("t1", "ok", requester=PEER)
        assert json.loads(fake.requests[-1].content) == {"text": "ok", "requester": PEER}

    def test_wait_for_result(self) -> None:
        record = FakeDaemon().client().wait_for_result("t1", timeout=5, poll_interval=0)
        assert record["state"] == "completed"

    def test_wait_for_result_timeout(self) -> None:
        fake = FakeDaemon()
        fake.result_states = ["submitted"]
        assert fake.client().wait_for_result("t1", timeout=0.05, poll_interval=0.01) is None

    def test_http_error_raises(self) -> None:
        with pytest.raises(httpx.HTTPStatusError):
            FakeDaemon().client().card()
