"""agentlink node engine — agent-to-agent messaging over pub/sub."""

__version__ = "0.1.0"

from .config import NodeConfig
from .node import A2ANode, NodeState

__all__ = ["A2ANode", "NodeConfig", "NodeState", "__version__"]
