"""Server-Sent Events reader for the order change stream."""

from collections.abc import AsyncIterator

import httpx
import structlog

from orderfeed.events.codec import decode_wire_message
from orderfeed.events.types import WIRE_MESSAGE_TYPE, WireMessage

logger = structlog.get_logger()

STREAM_PATH = "/api/v1/events/stream"


async def parse_sse_lines(lines: AsyncIterator[str]) -> AsyncIterator[tuple[str, str]]:
    """Group raw SSE lines into (event, data) pairs.

    Comment lines are skipped; multi-line data fields are joined with
    newlines.

    Args:
        lines: Lines of an ``text/event-stream`` body.

    Yields:
        Event name and data of each dispatched event.
    """
    event = "message"
    data: list[str] = []
    async for line in lines:
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value.removeprefix(" ")
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)


async def iter_order_changes(
    client: httpx.AsyncClient,
    base_url: str,
) -> AsyncIterator[WireMessage]:
    """Follow the server's change stream.

    Args:
        client: HTTP client to use; must not apply a read timeout.
        base_url: Base URL of the server.

    Yields:
        Each order change message, in delivery order.
    """
    url = base_url.rstrip("/") + STREAM_PATH
    async with client.stream("GET", url, headers={"Accept": "text/event-stream"}) as response:
        response.raise_for_status()
        async for event, data in parse_sse_lines(response.aiter_lines()):
            if event != WIRE_MESSAGE_TYPE:
                continue
            yield decode_wire_message(data)
