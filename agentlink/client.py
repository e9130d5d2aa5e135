"""agentlink Client SDK — for agents and scripts to talk to a running node daemon.

Usage:
    from agentlink import AgentLinkClient

    # Connect to a running agentlink node
    client = AgentLinkClient("http://localhost:7443")

    # Announce and list peers
    client.announce()
    for agent in client.agents():
        print(agent["card"]["name"], agent["card"]["public_key"], agent["freshness"])

    # Delegate a task and wait for the answer
    task_id = client.send("<peer pubkey>", "Summarize the latest news")["task_id"]
    result = client.wait_for_result(task_id)

    # Serve tasks sent to this node
    for task in client.tasks():
        client.respond(task["id"], f"Echo: {task['payload']}")
"""

import time
from typing import Optional

import httpx


class AgentLinkClient:
    """Client for interacting with a running agentlink daemon."""

    def __init__(self, base_url: str = "http://localhost:7443", timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        """Connect to an agentlink node.

        Args:
            base_url: URL of the running daemon
            timeout: Request timeout in seconds
            transport: Optional httpx transport (mainly for tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self._transport)

    def _get(self, path: str) -> dict | list:
        with self._client() as c:
            resp = c.get(f"{self.base_url}{path}")
            resp.raise_for_status()
            return resp.json()

    def _post(self, path: str, data: Optional[dict] = None) -> dict:
        with self._client() as c:
            resp = c.post(f"{self.base_url}{path}", json=data or {})
            resp.raise_for_status()
            return resp.json()

    # --- Identity & Peers ---

    def identity(self) -> dict:
        """This node's public id, name, encryption mode and state."""
        return self._get("/v0/identity")

    def card(self) -> dict:
        """This node's signed AgentCard."""
        return self._get("/v0/card")

    def announce(self) -> dict:
        return self._post("/v0/announce")

    def agents(self) -> list[dict]:
        """Discovered peers as ``{card, last_seen, freshness}`` records."""
        return self._get("/v0/agents")

    # --- Tasks & Messages ---

    def send(self, to: str, text: str) -> dict:
        """Send a task to a peer.

        Returns:
            {"status": "ok", "task_id": "..."}
        """
        return self._post("/v0/send", {"to": to, "text": text, "intent": "task"})

    def send_message(self, to: str, text: str) -> dict:
        """Send a plain message (no response expected)."""
        return self._post("/v0/send", {"to": to, "text": text, "intent": "message"})

    def tasks(self) -> list[dict]:
        """Drain tasks sent to this node. Each task is returned once."""
        return self._get("/v0/tasks")

    def respond(self, task_id: str, text: str, requester: Optional[str] = None) -> dict:
        body = {"text": text}
        if requester:
            body["requester"] = requester
        return self._post(f"/v0/tasks/{task_id}/respond", body)

    def result(self, task_id: str) -> dict:
        """Status of a task this node sent (``submitted`` or ``completed``)."""
        return self._get(f"/v0/results/{task_id}")

    def messages(self) -> list[dict]:
        """Plain messages received by this node."""
        return self._get("/v0/messages")

    # --- Convenience ---

    def wait_for_result(self, task_id: str, timeout: float = 60, poll_interval: float = 2) -> Optional[dict]:
        """Block until a sent task is completed.

        Returns:
            The completed task record, or None if timeout
        """
        start = time.time()
        while time.time() - start < timeout:
            record = self.result(task_id)
            if record["state"] == "completed":
                return record
            time.sleep(poll_interval)
        return None
