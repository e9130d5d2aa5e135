"""Swappable pub/sub transports."""

from .base import MessageCallback, PubSubTransport, Subscription
from .memory import InMemoryTransport
from .nwaku_rest import NwakuRestTransport
from .reliable import ReliableTransport

__all__ = [
    "InMemoryTransport",
    "MessageCallback",
    "NwakuRestTransport",
    "PubSubTransport",
    "ReliableTransport",
    "Subscription",
]
