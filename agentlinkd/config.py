"""Node configuration."""

import os
from dataclasses import dataclass, field
from typing import Optional

ENV_PREFIX = "AGENTLINK_"


def _env_float(name: str) -> Optional[float]:
    raw = os.environ.get(ENV_PREFIX + name, "").strip()
    return float(raw) if raw else None


def _env_int(name: str) -> Optional[int]:
    raw = os.environ.get(ENV_PREFIX + name, "").strip()
    return int(raw) if raw else None


@dataclass
class NodeConfig:
    node_name: str = "my-node"
    description: str = ""
    capabilities: list[str] = field(default_factory=lambda: ["text"])
    waku_url: str = "http://localhost:8645"  # nwaku REST API
    encrypted: bool = False
    directory_ttl: float = 300.0  # seconds before an entry reads as stale
    discover_max_age: Optional[float] = None  # None = list every known peer
    announce_interval: Optional[float] = None  # None = announce only on request
    inbox_max_pending: Optional[int] = None  # None = unbounded
    poll_interval: float = 1.0
    reliable_delivery: bool = False  # ACK and retransmit task requests
    ack_timeout: float = 10.0
    max_retries: int = 3
    host: str = "0.0.0.0"
    port: int = 7443

    @property
    def agent_description(self) -> str:
        return self.description or f"{self.node_name} agent"

    @classmethod
    def from_env(cls) -> "NodeConfig":
        """Build a config from ``AGENTLINK_*`` environment variables."""
        config = cls()
        env = os.environ
        config.node_name = env.get(ENV_PREFIX + "NAME", config.node_name)
        config.description = env.get(ENV_PREFIX + "DESCRIPTION", config.description)
        caps = env.get(ENV_PREFIX + "CAPABILITIES")
        if caps:
            config.capabilities = [c.strip() for c in caps.split(",") if c.strip()]
        config.waku_url = env.get(ENV_PREFIX + "WAKU_URL", config.waku_url)
        config.encrypted = env.get(ENV_PREFIX + "ENCRYPTED", "").lower() in ("1", "true", "yes")
        config.directory_ttl = _env_float("DIRECTORY_TTL") or config.directory_ttl
        config.discover_max_age = _env_float("DISCOVER_MAX_AGE")
        config.announce_interval = _env_float("ANNOUNCE_INTERVAL")
        config.inbox_max_pending = _env_int("INBOX_MAX_PENDING")
        config.poll_interval = _env_float("POLL_INTERVAL") or config.poll_interval
        config.reliable_delivery = env.get(ENV_PREFIX + "RELIABLE", "").lower() in ("1", "true", "yes")
        config.ack_timeout = _env_float("ACK_TIMEOUT") or config.ack_timeout
        max_retries = _env_int("MAX_RETRIES")
        if max_retries is not None:
            config.max_retries = max_retries
        config.host = env.get(ENV_PREFIX + "HOST", config.host)
        config.port = _env_int("PORT") or config.port
        return config
