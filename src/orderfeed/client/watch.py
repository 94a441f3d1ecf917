"""Terminal client printing order changes as they arrive."""

import httpx
import structlog

from orderfeed.client.stream import iter_order_changes
from orderfeed.events.types import WireMessage

logger = structlog.get_logger()

ACTIONS: dict[str, str] = {
    "INSERT": "created",
    "UPDATE": "updated",
    "DELETE": "deleted",
}


def format_change(message: WireMessage) -> str:
    """Render one change message for the terminal.

    Args:
        message: Received wire message.

    Returns:
        Multi-line human-readable description.
    """
    data = message.data
    action = ACTIONS.get(str(data.get("operation")), "modified")
    return "\n".join(
        [
            f"Order {action}:",
            f"   ID: {data.get('id')}",
            f"   Customer: {data.get('customer_name')}",
            f"   Product: {data.get('product_name')}",
            f"   Status: {data.get('status')}",
            f"   Time: {message.timestamp.astimezone():%Y-%m-%d %H:%M:%S}",
            "   " + "-" * 50,
        ]
    )


async def watch(base_url: str) -> None:
    """Print every order change until interrupted.

    Args:
        base_url: Base URL of the server.
    """
    async with httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None)) as client:
        print(f"Listening for order changes on {base_url} (Ctrl+C to exit)\n")
        try:
            async for message in iter_order_changes(client, base_url):
                print(format_change(message), flush=True)
        except httpx.HTTPError as e:
            logger.error("watch_connection_failed", url=base_url, error=str(e))
            raise SystemExit(1) from e
        print("Disconnected from server")
