"""Change sources feeding the broadcast hub."""

import asyncio
import time
from collections.abc import AsyncIterator, Mapping
from datetime import UTC, datetime
from typing import Any, Protocol

import psycopg
import structlog
from psycopg import sql
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    wait_exponential_jitter,
)

from orderfeed.errors import ChangePayloadError
from orderfeed.events.codec import decode_notification
from orderfeed.events.types import ChangeEvent, Operation

logger = structlog.get_logger()

# Fixed hand-off delay of the synthetic source, mimicking the latency of a
# trigger-driven notification. Not a retry or backoff.
SYNTHETIC_EMIT_DELAY = 0.1

DEFAULT_CHANNEL = "order_changes"


class ChangeSource(Protocol):
    """Producer of change events, in production order."""

    @property
    def connected(self) -> bool:
        """Whether the source is currently able to deliver events."""
        ...

    def stream(self) -> AsyncIterator[ChangeEvent]:
        """Iterate change events until the source is closed."""
        ...

    async def close(self) -> None:
        """Stop producing events."""
        ...


class SyntheticChangeSource:
    """Change source driven directly by in-process mutations.

    ``emit`` never blocks; each event is released to the consumer
    ``SYNTHETIC_EMIT_DELAY`` seconds after it was emitted, in emission order.
    Must be used from the event loop that consumes ``stream``.
    """

    def __init__(self) -> None:
        """Initialize an open source with no pending events."""
        self._queue: asyncio.Queue[tuple[float, ChangeEvent] | None] = asyncio.Queue()
        self._closed = False

    @property
    def connected(self) -> bool:
        """Whether the source is still open."""
        return not self._closed

    @property
    def pending(self) -> int:
        """Number of emitted events not yet handed to the consumer."""
        return self._queue.qsize()

    def emit(self, operation: Operation, snapshot: Mapping[str, Any]) -> ChangeEvent | None:
        """Emit a change event for a completed mutation.

        Args:
            operation: Kind of mutation that was applied.
            snapshot: Full row state after the mutation, or before deletion.
                Must include the row ``id``.

        Returns:
            The emitted event, or None if the source is closed.
        """
        event = ChangeEvent(
            operation=operation,
            entity_id=snapshot["id"],
            snapshot=dict(snapshot),
            occurred_at=datetime.now(UTC),
        )
        return event if self.emit_event(event) else None

    def emit_event(self, event: ChangeEvent) -> bool:
        """Schedule a prebuilt event for delivery.

        Args:
            event: Change event to deliver.

        Returns:
            True if the event was accepted.
        """
        if self._closed:
            logger.warning(
                "synthetic_emit_after_close",
                operation=event.operation.value,
                entity_id=event.entity_id,
            )
            return False

        logger.debug(
            "synthetic_change_emitted",
            operation=event.operation.value,
            entity_id=event.entity_id,
        )
        self._queue.put_nowait((time.monotonic() + SYNTHETIC_EMIT_DELAY, event))
        return True

    async def stream(self) -> AsyncIterator[ChangeEvent]:
        """Yield emitted events once their hand-off delay has elapsed."""
        while True:
            item = await self._queue.get()
            if item is None:
                return
            due, event = item
            delay = due - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            yield event

    async def close(self) -> None:
        """Close the source; events still pending are discarded."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)


class PostgresChangeSource:
    """Change source subscribed to a PostgreSQL notification channel.

    Holds one dedicated autocommit connection running ``LISTEN`` on the
    channel fed by the ``notify_order_changes`` trigger. Malformed payloads
    are logged and dropped. A lost connection is logged as an error and
    re-established with exponential backoff until the source is closed.

    Attributes:
        channel: Notification channel name.
        poll_interval: Seconds between checks for closure while idle.
        reconnect_max_delay: Upper bound of the reconnect backoff.
    """

    def __init__(
        self,
        conninfo: str,
        channel: str = DEFAULT_CHANNEL,
        poll_interval: float = 1.0,
        reconnect_max_delay: float = 30.0,
    ) -> None:
        """Initialize the source without connecting.

        Args:
            conninfo: libpq connection string.
            channel: Channel to LISTEN on.
            poll_interval: Idle wake-up interval used to observe ``close``.
            reconnect_max_delay: Maximum seconds between reconnect attempts.
        """
        self._conninfo = conninfo
        self._channel = channel
        self._poll_interval = poll_interval
        self._reconnect_max_delay = reconnect_max_delay
        self._connected = False
        self._closed = False
        self._dropped_count = 0
        self._reconnect_count = 0

    @property
    def channel(self) -> str:
        """Notification channel name."""
        return self._channel

    @property
    def connected(self) -> bool:
        """Whether the LISTEN connection is currently established."""
        return self._connected

    @property
    def dropped_payloads(self) -> int:
        """Number of notifications dropped because they failed to decode."""
        return self._dropped_count

    @property
    def reconnects(self) -> int:
        """Number of times the subscription was re-established."""
        return self._reconnect_count

    def handle_notification(self, payload: str) -> ChangeEvent | None:
        """Decode one notification payload.

        Args:
            payload: Raw notification text.

        Returns:
            The decoded event, or None if the payload was malformed.
        """
        try:
            return decode_notification(payload)
        except ChangePayloadError as e:
            self._dropped_count += 1
            logger.warning(
                "change_payload_invalid",
                channel=self._channel,
                error=str(e),
                payload=e.payload[:200],
            )
            return None

    def _log_reconnect(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        logger.error(
            "change_source_connect_failed",
            channel=self._channel,
            attempt=retry_state.attempt_number,
            retry_in=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
            error=str(error),
        )

    def _should_stop(self, retry_state: RetryCallState) -> bool:
        return self._closed

    async def _connect(self) -> psycopg.AsyncConnection:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(psycopg.OperationalError),
            wait=wait_exponential_jitter(initial=0.5, max=self._reconnect_max_delay),
            stop=self._should_stop,
            before_sleep=self._log_reconnect,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                conn = await psycopg.AsyncConnection.connect(self._conninfo, autocommit=True)
                try:
                    await conn.execute(
                        sql.SQL("LISTEN {}").format(sql.Identifier(self._channel))
                    )
                except BaseException:
                    await conn.close()
                    raise
        return conn

    async def stream(self) -> AsyncIterator[ChangeEvent]:
        """Yield decoded events, reconnecting whenever the channel drops."""
        while not self._closed:
            try:
                conn = await self._connect()
            except psycopg.OperationalError:
                if self._closed:
                    return
                raise

            self._connected = True
            logger.info("change_source_listening", channel=self._channel)

            try:
                while not self._closed:
                    async for notify in conn.notifies(timeout=self._poll_interval):
                        event = self.handle_notification(notify.payload)
                        if event is not None:
                            yield event
            except psycopg.OperationalError as e:
                logger.error(
                    "change_source_connection_lost",
                    channel=self._channel,
                    error=str(e),
                )
                self._reconnect_count += 1
            finally:
                self._connected = False
                await conn.close()

        logger.info("change_source_closed", channel=self._channel)

    async def close(self) -> None:
        """Stop listening. The active stream ends at its next wake-up."""
        self._closed = True
