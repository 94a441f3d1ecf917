"""Broadcast hub fanning order changes out to live subscribers."""

import asyncio
from collections.abc import AsyncIterator

import structlog
from sse_starlette import ServerSentEvent

from orderfeed.errors import HubClosedError, RegistryInvariantError
from orderfeed.events.codec import encode_wire_message
from orderfeed.events.registry import Subscriber, SubscriberRegistry, SubscriberState
from orderfeed.events.sources import ChangeSource
from orderfeed.events.transport import ConnectionHandle, SSEConnection
from orderfeed.events.types import WIRE_MESSAGE_TYPE, ChangeEvent

logger = structlog.get_logger()


class BroadcastHub:
    """Sole consumer of a change source and sole fan-out point to subscribers.

    Delivery is at-most-once and best-effort: each event is pushed once to
    every active subscriber, a failed push drops and closes that
    subscriber, and nothing is retried or replayed. Events are handled one
    at a time, so every subscriber observes them in source order.

    Attributes:
        push_timeout: Seconds a single push may take before it counts as failed.
        heartbeat_interval: Seconds between SSE heartbeat comments.
    """

    def __init__(
        self,
        registry: SubscriberRegistry,
        push_timeout: float = 1.0,
        heartbeat_interval: float = 15.0,
    ) -> None:
        """Initialize broadcast hub.

        Args:
            registry: Subscriber registry owned by this hub from now on.
            push_timeout: Upper bound for one push to one subscriber.
            heartbeat_interval: Seconds between SSE heartbeats.
        """
        self._registry = registry
        self._push_timeout = push_timeout
        self._heartbeat_interval = heartbeat_interval
        self._accepting = True
        self._delivered_count = 0
        self._failed_count = 0

    @property
    def subscriber_count(self) -> int:
        """Number of currently registered subscribers."""
        return self._registry.count()

    @property
    def accepting(self) -> bool:
        """Whether the hub still accepts connections and events."""
        return self._accepting

    @property
    def delivered_messages(self) -> int:
        """Total successful pushes since startup."""
        return self._delivered_count

    @property
    def failed_pushes(self) -> int:
        """Total pushes that failed and dropped their subscriber."""
        return self._failed_count

    def connect(self, handle: ConnectionHandle) -> Subscriber:
        """Register a newly accepted connection.

        The subscriber only sees events broadcast after this call.

        Args:
            handle: Push channel of the new client.

        Returns:
            The registered subscriber.

        Raises:
            HubClosedError: If the hub has shut down.
        """
        if not self._accepting:
            raise HubClosedError("Broadcast hub is shut down")

        subscriber = self._registry.add(handle)
        logger.info(
            "subscriber_connected",
            subscriber_id=subscriber.id,
            transport=type(handle).__name__,
            active_connections=self._registry.count(),
        )
        return subscriber

    def disconnect(self, handle: ConnectionHandle) -> None:
        """Unregister a connection whose transport signalled closure.

        Safe to call for a connection that was already dropped.

        Args:
            handle: Push channel that closed.
        """
        subscriber = self._registry.get(handle)
        if subscriber is None:
            return
        self._drop(subscriber, reason="transport_closed")

    def _drop(self, subscriber: Subscriber, reason: str) -> None:
        subscriber.mark_closing()
        if self._registry.remove(subscriber.handle) is None:
            return
        logger.info(
            "subscriber_disconnected",
            subscriber_id=subscriber.id,
            reason=reason,
            active_connections=self._registry.count(),
        )

    async def on_change_event(self, event: ChangeEvent) -> int:
        """Push one change event to every active subscriber.

        The event is encoded once. A push that fails or exceeds the push
        timeout drops and closes its subscriber without affecting the others.

        Args:
            event: Change event received from the source.

        Returns:
            Number of subscribers that received the event.

        Raises:
            RegistryInvariantError: If a closed subscriber is still registered.
        """
        if not self._accepting:
            logger.debug("change_ignored_after_shutdown", entity_id=event.entity_id)
            return 0

        payload = encode_wire_message(event)
        members = self._registry.snapshot()

        targets: list[Subscriber] = []
        for subscriber in members:
            if subscriber.state is SubscriberState.CLOSED:
                raise RegistryInvariantError(
                    f"Closed subscriber {subscriber.id} reachable from registry"
                )
            if subscriber.is_active:
                targets.append(subscriber)

        results = await asyncio.gather(*(self._push(s, payload) for s in targets))
        delivered = sum(results)

        logger.debug(
            "change_broadcast",
            operation=event.operation.value,
            entity_id=event.entity_id,
            delivered_to=delivered,
            dropped=len(targets) - delivered,
        )
        return delivered

    async def _close_handle(self, subscriber: Subscriber) -> None:
        # Ends the SSE stream or closes the socket with 1001.
        try:
            await asyncio.wait_for(subscriber.handle.close(), timeout=self._push_timeout)
        except Exception as e:
            logger.warning(
                "subscriber_close_failed",
                subscriber_id=subscriber.id,
                error=type(e).__name__,
                detail=str(e),
            )

    async def _push(self, subscriber: Subscriber, payload: str) -> bool:
        try:
            await asyncio.wait_for(
                subscriber.handle.send(payload),
                timeout=self._push_timeout,
            )
        except Exception as e:
            self._failed_count += 1
            logger.warning(
                "subscriber_push_failed",
                subscriber_id=subscriber.id,
                error=type(e).__name__,
                detail=str(e),
            )
            self._drop(subscriber, reason="push_failed")
            await self._close_handle(subscriber)
            return False

        self._delivered_count += 1
        return True

    async def run(self, source: ChangeSource) -> None:
        """Consume a change source until it ends or the hub shuts down.

        Each event is fully fanned out before the next is taken from the
        source.

        Args:
            source: Change source to consume.
        """
        logger.info("broadcast_hub_started", source=type(source).__name__)
        try:
            async for event in source.stream():
                if not self._accepting:
                    break
                await self.on_change_event(event)
        except asyncio.CancelledError:
            logger.info("broadcast_hub_stopped", source=type(source).__name__)
            raise
        logger.info("broadcast_hub_source_ended", source=type(source).__name__)

    async def create_sse_generator(
        self,
        connection: SSEConnection,
    ) -> AsyncIterator[ServerSentEvent]:
        """Create the SSE event generator for one client connection.

        Registers the connection, then yields each pushed wire message as an
        ``order_change`` event, with heartbeat comments while idle.

        Args:
            connection: Push channel of the SSE client.

        Yields:
            Server-sent events for the client.
        """
        try:
            self.connect(connection)
        except HubClosedError:
            logger.info("sse_stream_refused", reason="hub_shutdown")
            return

        try:
            while True:
                try:
                    message = await asyncio.wait_for(
                        connection.receive(),
                        timeout=self._heartbeat_interval,
                    )
                except TimeoutError:
                    yield ServerSentEvent(comment="heartbeat")
                    continue

                if message is None:
                    break
                yield ServerSentEvent(event=WIRE_MESSAGE_TYPE, data=message)
        finally:
            self.disconnect(connection)

    async def shutdown(self) -> None:
        """Stop accepting work and close every open subscriber transport.

        Idempotent. Events in flight are not drained.
        """
        if not self._accepting:
            return
        self._accepting = False

        members = self._registry.snapshot()
        for subscriber in members:
            self._drop(subscriber, reason="hub_shutdown")

        for subscriber in members:
            await self._close_handle(subscriber)

        logger.info(
            "broadcast_hub_shutdown",
            closed_connections=len(members),
            delivered_messages=self._delivered_count,
            failed_pushes=self._failed_count,
        )
