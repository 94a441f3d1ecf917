"""Events subsystem: change sources, subscriber registry and broadcasting."""
from orderfeed.events.hub import BroadcastHub
from orderfeed.events.registry import Subscriber, SubscriberRegistry, SubscriberState
from orderfeed.events.sources import (
    ChangeSource,
    PostgresChangeSource,
    SyntheticChangeSource,
)
from orderfeed.events.transport import ConnectionHandle, SSEConnection, WebSocketConnection
from orderfeed.events.types import ChangeEvent, Operation, WireMessage

__all__ = [
    "BroadcastHub",
    "ChangeEvent",
    "ChangeSource",
    "ConnectionHandle",
    "Operation",
    "PostgresChangeSource",
    "SSEConnection",
    "Subscriber",
    "SubscriberRegistry",
    "SubscriberState",
    "SyntheticChangeSource",
    "WebSocketConnection",
    "WireMessage",
]
