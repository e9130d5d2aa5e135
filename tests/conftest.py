"""Shared fixtures: an in-memory bus and a factory for nodes attached to it."""

from typing import Awaitable, Callable

import pytest

from agentlinkd import A2ANode, NodeConfig
from agentlinkd.crypto import Identity
from agentlinkd.transport import InMemoryTransport

NodeFactory = Callable[..., Awaitable[A2ANode]]


@pytest.fixture
def bus() -> InMemoryTransport:
    return InMemoryTransport()


@pytest.fixture
async def make_node(bus: InMemoryTransport):
    """Create, init and eventually shut down nodes sharing ``bus``."""
    nodes: list[A2ANode] = []

    async def factory(name: str, **config) -> A2ANode:
        node = A2ANode(NodeConfig(node_name=name, **config), bus)
        await node.init()
        nodes.append(node)
        return node

    yield factory

    for node in nodes:
        await node.shutdown()


@pytest.fixture
def identity() -> Identity:
    return Identity.generate()
