"""Tests for the subscriber registry."""

from collections.abc import Callable

import pytest

from orderfeed.errors import RegistryInvariantError
from orderfeed.events.registry import SubscriberRegistry, SubscriberState


class TestSubscriberRegistry:
    """Membership, removal and snapshots."""

    def test_add_registers_active_subscriber(self, make_connection: Callable) -> None:
        registry = SubscriberRegistry()
        conn = make_connection()

        subscriber = registry.add(conn)

        assert subscriber.handle is conn
        assert subscriber.state is SubscriberState.ACTIVE
        assert registry.get(conn) is subscriber
        assert registry.count() == 1

    def test_add_same_handle_twice_is_a_defect(self, make_connection: Callable) -> None:
        registry = SubscriberRegistry()
        conn = make_connection()
        registry.add(conn)

        with pytest.raises(RegistryInvariantError):
            registry.add(conn)

    def test_remove_closes_subscriber(self, make_connection: Callable) -> None:
        registry = SubscriberRegistry()
        conn = make_connection()
        subscriber = registry.add(conn)

        removed = registry.remove(conn)

        assert removed is subscriber
        assert subscriber.state is SubscriberState.CLOSED
        assert registry.get(conn) is None

    def test_remove_is_idempotent(self, make_connection: Callable) -> None:
        registry = SubscriberRegistry()
        conn = make_connection()
        registry.add(conn)

        registry.remove(conn)
        assert registry.remove(conn) is None
        assert registry.remove(make_connection()) is None
        assert registry.count() == 0

    @pytest.mark.parametrize(("added", "removed"), [(0, 0), (1, 1), (5, 2), (10, 10), (7, 0)])
    def test_count_after_adds_and_removes(
        self,
        make_connection: Callable,
        added: int,
        removed: int,
    ) -> None:
        registry = SubscriberRegistry()
        conns = [make_connection() for _ in range(added)]
        for conn in conns:
            registry.add(conn)
        for conn in conns[:removed]:
            registry.remove(conn)

        assert registry.count() == added - removed
        assert len(registry) == added - removed

    def test_snapshot_unaffected_by_later_changes(self, make_connection: Callable) -> None:
        registry = SubscriberRegistry()
        first, second = make_connection(), make_connection()
        registry.add(first)
        registry.add(second)

        snapshot = registry.snapshot()
        registry.remove(first)
        registry.add(make_connection())

        assert [s.handle for s in snapshot] == [first, second]
        assert registry.count() == 2

    def test_closed_subscriber_never_returns_to_active(self, make_connection: Callable) -> None:
        registry = SubscriberRegistry()
        conn = make_connection()
        subscriber = registry.add(conn)

        subscriber.mark_closing()
        assert subscriber.state is SubscriberState.CLOSING
        registry.remove(conn)
        subscriber.mark_closing()

        assert subscriber.state is SubscriberState.CLOSED
        assert not subscriber.is_active
