"""agentlink — Client SDK for agent-to-agent messaging over Waku."""

__version__ = "0.1.0"

from agentlink.client import AgentLinkClient

__all__ = ["AgentLinkClient", "__version__"]
