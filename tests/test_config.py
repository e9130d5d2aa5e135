"""Tests for NodeConfig environment loading."""

from agentlinkd.config import NodeConfig


class TestNodeConfig:
    def test_defaults(self, monkeypatch) -> None:
        for name in ("NAME", "ENCRYPTED", "PORT", "CAPABILITIES", "INBOX_MAX_PENDING", "RELIABLE", "MAX_RETRIES"):
            monkeypatch.delenv(f"AGENTLINK_{name}", raising=False)
        config = NodeConfig.from_env()
        assert config.node_name == "my-node"
        assert config.encrypted is False
        assert config.port == 7443
        assert config.capabilities == ["text"]
        assert config.inbox_max_pending is None
        assert config.reliable_delivery is False
        assert config.max_retries == 3

    def test_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("AGENTLINK_NAME", "alice")
        monkeypatch.setenv("AGENTLINK_CAPABILITIES", "text, code ,")
        monkeypatch.setenv("AGENTLINK_ENCRYPTED", "true")
        monkeypatch.setenv("AGENTLINK_DIRECTORY_TTL", "60")
        monkeypatch.setenv("AGENTLINK_INBOX_MAX_PENDING", "10")
        monkeypatch.setenv("AGENTLINK_PORT", "7444")
        config = NodeConfig.from_env()
        assert config.node_name == "alice"
        assert config.capabilities == ["text", "code"]
        assert config.encrypted is True
        assert config.directory_ttl == 60.0
        assert config.inbox_max_pending == 10
        assert config.port == 7444

    def test_reliable_delivery_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("AGENTLINK_RELIABLE", "1")
        monkeypatch.setenv("AGENTLINK_ACK_TIMEOUT", "2.5")
        monkeypatch.setenv("AGENTLINK_MAX_RETRIES", "0")
        config = NodeConfig.from_env()
        assert config.reliable_delivery is True
        assert config.ack_timeout == 2.5
        assert config.max_retries == 0

    def test_agent_description(self) -> None:
        assert NodeConfig(node_name="bob").agent_description == "bob agent"
        assert NodeConfig(node_name="bob", description="Bob").agent_description == "Bob"
