"""Tests for the broadcast hub fan-out and lifecycle."""

import asyncio
import json
from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from orderfeed.errors import HubClosedError, RegistryInvariantError
from orderfeed.events.hub import BroadcastHub
from orderfeed.events.registry import SubscriberRegistry, SubscriberState
from orderfeed.events.sources import SyntheticChangeSource
from orderfeed.events.transport import SSEConnection
from orderfeed.events.types import ChangeEvent, Operation


def _event(
    entity_id: int,
    operation: Operation = Operation.UPDATED,
    status: str = "pending",
) -> ChangeEvent:
    return ChangeEvent(
        operation=operation,
        entity_id=entity_id,
        snapshot={
            "customer_name": "John Doe",
            "product_name": "Laptop",
            "status": status,
            "updated_at": "2024-01-15T12:00:00+00:00",
        },
        occurred_at=datetime.now(UTC),
    )


def _ids(messages: list[str]) -> list[int]:
    return [json.loads(m)["data"]["id"] for m in messages]


@pytest.fixture
def hub() -> BroadcastHub:
    return BroadcastHub(SubscriberRegistry(), push_timeout=0.2, heartbeat_interval=0.05)


@pytest.mark.asyncio
async def test_every_subscriber_receives_every_event_in_order(
    hub: BroadcastHub,
    make_connection: Callable,
) -> None:
    conns = [make_connection() for _ in range(4)]
    for conn in conns:
        hub.connect(conn)

    for entity_id in range(1, 11):
        assert await hub.on_change_event(_event(entity_id)) == 4

    for conn in conns:
        assert _ids(conn.messages) == list(range(1, 11))


@pytest.mark.asyncio
async def test_created_event_reaches_subscriber(
    hub: BroadcastHub,
    make_connection: Callable,
) -> None:
    conn = make_connection()
    hub.connect(conn)

    await hub.on_change_event(_event(1, Operation.CREATED))

    message = json.loads(conn.messages[0])
    assert message["type"] == "order_change"
    assert message["data"]["operation"] == "INSERT"
    assert message["data"]["id"] == 1
    assert message["data"]["customer_name"] == "John Doe"
    assert message["data"]["product_name"] == "Laptop"
    assert message["data"]["status"] == "pending"


@pytest.mark.asyncio
async def test_late_subscriber_gets_no_replay(
    hub: BroadcastHub,
    make_connection: Callable,
) -> None:
    early = make_connection()
    hub.connect(early)
    await hub.on_change_event(_event(1))
    await hub.on_change_event(_event(2))

    late = make_connection()
    hub.connect(late)
    await hub.on_change_event(_event(3))

    assert _ids(early.messages) == [1, 2, 3]
    assert _ids(late.messages) == [3]


@pytest.mark.asyncio
async def test_failed_push_drops_only_that_subscriber(
    hub: BroadcastHub,
    make_connection: Callable,
) -> None:
    before, broken, after = make_connection(), make_connection(fail=True), make_connection()
    for conn in (before, broken, after):
        hub.connect(conn)

    delivered = await hub.on_change_event(_event(1))
    await hub.on_change_event(_event(2))

    assert delivered == 2
    assert _ids(before.messages) == [1, 2]
    assert _ids(after.messages) == [1, 2]
    assert broken.messages == []
    assert broken.closed
    assert not before.closed and not after.closed
    assert hub.subscriber_count == 2
    assert hub.failed_pushes == 1


@pytest.mark.asyncio
async def test_slow_subscriber_times_out_without_stalling_others(
    hub: BroadcastHub,
    make_connection: Callable,
) -> None:
    fast, slow = make_connection(), make_connection(delay=5.0)
    hub.connect(fast)
    hub.connect(slow)

    loop = asyncio.get_running_loop()
    started = loop.time()
    delivered = await hub.on_change_event(_event(1))

    assert loop.time() - started < 1.0
    assert delivered == 1
    assert _ids(fast.messages) == [1]
    assert hub.subscriber_count == 1


@pytest.mark.asyncio
async def test_disconnected_subscriber_stops_receiving(
    hub: BroadcastHub,
    make_connection: Callable,
) -> None:
    first, second = make_connection(), make_connection()
    hub.connect(first)
    subscriber = hub.connect(second)

    hub.disconnect(second)
    await hub.on_change_event(_event(1, Operation.UPDATED, status="shipped"))

    assert json.loads(first.messages[0])["data"]["status"] == "shipped"
    assert second.messages == []
    assert subscriber.state is SubscriberState.CLOSED
    assert hub.subscriber_count == 1


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(hub: BroadcastHub, make_connection: Callable) -> None:
    conn = make_connection()
    hub.connect(conn)

    hub.disconnect(conn)
    hub.disconnect(conn)

    assert hub.subscriber_count == 0


@pytest.mark.asyncio
async def test_disconnect_during_fan_out_keeps_others_intact(
    hub: BroadcastHub,
    make_connection: Callable,
) -> None:
    steady = make_connection()
    leaving = make_connection(delay=0.05)
    hub.connect(steady)
    hub.connect(leaving)

    async def leave_midway() -> None:
        await asyncio.sleep(0.01)
        leaving.closed = True
        hub.disconnect(leaving)

    await asyncio.gather(hub.on_change_event(_event(1)), leave_midway())
    await hub.on_change_event(_event(2))

    assert _ids(steady.messages) == [1, 2]
    assert leaving.messages == []
    assert hub.subscriber_count == 1


@pytest.mark.asyncio
async def test_closed_member_in_registry_is_a_defect(make_connection: Callable) -> None:
    registry = SubscriberRegistry()
    hub = BroadcastHub(registry)
    subscriber = hub.connect(make_connection())
    subscriber.mark_closed()

    with pytest.raises(RegistryInvariantError):
        await hub.on_change_event(_event(1))


@pytest.mark.asyncio
async def test_shutdown_closes_transports_and_refuses_work(
    hub: BroadcastHub,
    make_connection: Callable,
) -> None:
    conns = [make_connection() for _ in range(3)]
    for conn in conns:
        hub.connect(conn)

    await hub.shutdown()
    await hub.shutdown()

    assert all(conn.closed for conn in conns)
    assert hub.subscriber_count == 0
    assert not hub.accepting
    assert await hub.on_change_event(_event(1)) == 0
    with pytest.raises(HubClosedError):
        hub.connect(make_connection())


@pytest.mark.asyncio
async def test_run_consumes_source_in_order(
    hub: BroadcastHub,
    make_connection: Callable,
) -> None:
    source = SyntheticChangeSource()
    conns = [make_connection(), make_connection()]
    for conn in conns:
        hub.connect(conn)
    task = asyncio.create_task(hub.run(source))

    for entity_id in range(1, 6):
        source.emit(Operation.CREATED, {"id": entity_id, "status": "pending"})
    await asyncio.sleep(0.3)

    await source.close()
    await asyncio.wait_for(task, timeout=1.0)
    for conn in conns:
        assert _ids(conn.messages) == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_sse_generator_yields_changes_and_heartbeats(hub: BroadcastHub) -> None:
    connection = SSEConnection(buffer_size=4)
    generator = hub.create_sse_generator(connection)

    heartbeat = await anext(generator)
    assert heartbeat.comment == "heartbeat"
    assert hub.subscriber_count == 1

    await hub.on_change_event(_event(42))
    change = await anext(generator)
    assert change.event == "order_change"
    assert json.loads(change.data)["data"]["id"] == 42

    await generator.aclose()
    assert hub.subscriber_count == 0


@pytest.mark.asyncio
async def test_sse_generator_ends_on_shutdown(hub: BroadcastHub) -> None:
    connection = SSEConnection()
    generator = hub.create_sse_generator(connection)
    await anext(generator)

    await hub.shutdown()

    with pytest.raises(StopAsyncIteration):
        await anext(generator)
    assert connection.closed


@pytest.mark.asyncio
async def test_saturated_sse_subscriber_is_dropped(
    hub: BroadcastHub,
    make_connection: Callable,
) -> None:
    stalled = SSEConnection(buffer_size=2)
    healthy = make_connection()
    hub.connect(stalled)
    hub.connect(healthy)

    for entity_id in range(1, 4):
        await hub.on_change_event(_event(entity_id))

    assert _ids(healthy.messages) == [1, 2, 3]
    assert hub.subscriber_count == 1
    assert stalled.closed


@pytest.mark.asyncio
async def test_sse_stream_ends_when_subscriber_falls_behind(hub: BroadcastHub) -> None:
    connection = SSEConnection(buffer_size=1)
    generator = hub.create_sse_generator(connection)
    assert (await anext(generator)).comment == "heartbeat"

    await hub.on_change_event(_event(1))
    await hub.on_change_event(_event(2))

    assert connection.closed
    assert hub.subscriber_count == 0
    with pytest.raises(StopAsyncIteration):
        await anext(generator)


@pytest.mark.asyncio
async def test_timed_out_subscriber_is_closed(
    hub: BroadcastHub,
    make_connection: Callable,
) -> None:
    slow = make_connection(delay=5.0)
    hub.connect(slow)

    assert await hub.on_change_event(_event(1)) == 0
    assert slow.closed


@pytest.mark.asyncio
async def test_sse_stream_opened_after_shutdown_ends_immediately(hub: BroadcastHub) -> None:
    await hub.shutdown()
    connection = SSEConnection()

    with pytest.raises(StopAsyncIteration):
        await anext(hub.create_sse_generator(connection))
    assert hub.subscriber_count == 0
