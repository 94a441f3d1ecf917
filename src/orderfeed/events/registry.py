"""Registry of live subscriber connections."""

import uuid
from dataclasses import dataclass, field
from enum import Enum

import structlog

from orderfeed.errors import RegistryInvariantError
from orderfeed.events.transport import ConnectionHandle

logger = structlog.get_logger()


class SubscriberState(str, Enum):
    """Lifecycle states of a subscriber."""

    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Subscriber:
    """One connected client entitled to receive broadcasts.

    Subscribers compare by identity. The state only moves forward:
    active, then closing, then closed.

    Attributes:
        handle: Outbound push channel owned by this subscriber.
        id: Identifier used in logs.
        state: Current lifecycle state.
    """

    handle: ConnectionHandle
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: SubscriberState = SubscriberState.ACTIVE

    @property
    def is_active(self) -> bool:
        """Whether the subscriber may still receive pushes."""
        return self.state is SubscriberState.ACTIVE

    def mark_closing(self) -> None:
        """Move an active subscriber to closing. No-op once closing or closed."""
        if self.state is SubscriberState.ACTIVE:
            self.state = SubscriberState.CLOSING

    def mark_closed(self) -> None:
        """Move the subscriber to its terminal state."""
        self.state = SubscriberState.CLOSED


class SubscriberRegistry:
    """Set of active subscribers keyed by connection handle identity.

    Not thread-safe: every operation must run on the event loop that owns
    the broadcast hub. None of the operations await, so each one is atomic
    with respect to other tasks on that loop.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._members: dict[int, Subscriber] = {}

    def add(self, handle: ConnectionHandle) -> Subscriber:
        """Register a new active subscriber for a connection.

        Args:
            handle: Newly accepted connection.

        Returns:
            The registered subscriber.

        Raises:
            RegistryInvariantError: If the handle is already registered.
        """
        key = id(handle)
        if key in self._members:
            raise RegistryInvariantError("Connection handle registered twice")

        subscriber = Subscriber(handle=handle)
        self._members[key] = subscriber
        return subscriber

    def get(self, handle: ConnectionHandle) -> Subscriber | None:
        """Look up the subscriber for a connection, if registered."""
        return self._members.get(id(handle))

    def remove(self, handle: ConnectionHandle) -> Subscriber | None:
        """Remove a subscriber and mark it closed.

        Safe to call repeatedly for the same handle.

        Args:
            handle: Connection to unregister.

        Returns:
            The removed subscriber, or None if it was not registered.
        """
        subscriber = self._members.pop(id(handle), None)
        if subscriber is not None:
            subscriber.mark_closed()
        return subscriber

    def snapshot(self) -> tuple[Subscriber, ...]:
        """Current membership as an immutable sequence.

        Later additions and removals do not affect the returned tuple.
        """
        return tuple(self._members.values())

    def count(self) -> int:
        """Number of registered subscribers."""
        return len(self._members)

    def __len__(self) -> int:
        return len(self._members)
