"""End-to-end smoke test against a running server."""

import asyncio
import contextlib

import httpx
import structlog

from orderfeed.client.stream import iter_order_changes
from orderfeed.events.types import WireMessage

logger = structlog.get_logger()

SUBSCRIBE_GRACE = 0.5


async def _expect_change(
    inbox: asyncio.Queue[WireMessage],
    operation: str,
    order_id: int,
    timeout: float,
) -> WireMessage:
    """Wait for the change message matching an operation and order id.

    Raises:
        TimeoutError: If no matching message arrives in time.
    """
    async with asyncio.timeout(timeout):
        while True:
            message = await inbox.get()
            if message.data.get("operation") == operation and message.data.get("id") == order_id:
                return message


async def run_smoke_test(base_url: str, timeout: float = 5.0) -> bool:
    """Check health, then create, update and delete an order over HTTP.

    Each mutation must be reported on the change stream within ``timeout``.

    Args:
        base_url: Base URL of the server.
        timeout: Seconds to wait for each change message.

    Returns:
        True if every step passed.
    """
    base = base_url.rstrip("/")
    inbox: asyncio.Queue[WireMessage] = asyncio.Queue()

    async with httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None)) as client:
        try:
            health = (await client.get(f"{base}/health")).raise_for_status().json()
        except httpx.HTTPError as e:
            logger.error("smoke_health_failed", url=base, error=str(e))
            return False
        logger.info(
            "smoke_health_ok",
            mode=health.get("mode"),
            connected_clients=health.get("connectedClients"),
        )

        async def listen() -> None:
            async for message in iter_order_changes(client, base):
                inbox.put_nowait(message)

        listener = asyncio.create_task(listen())
        await asyncio.sleep(SUBSCRIBE_GRACE)

        try:
            created = (
                await client.post(
                    f"{base}/api/orders",
                    json={
                        "customer_name": "Test Customer",
                        "product_name": "Test Product",
                        "status": "pending",
                    },
                )
            ).raise_for_status().json()
            order_id = created["id"]
            await _expect_change(inbox, "INSERT", order_id, timeout)
            logger.info("smoke_create_ok", order_id=order_id)

            (
                await client.put(f"{base}/api/orders/{order_id}", json={"status": "shipped"})
            ).raise_for_status()
            update = await _expect_change(inbox, "UPDATE", order_id, timeout)
            if update.data.get("status") != "shipped":
                logger.error("smoke_update_mismatch", data=update.data)
                return False
            logger.info("smoke_update_ok", order_id=order_id)

            (await client.delete(f"{base}/api/orders/{order_id}")).raise_for_status()
            await _expect_change(inbox, "DELETE", order_id, timeout)
            logger.info("smoke_delete_ok", order_id=order_id)
        except (httpx.HTTPError, TimeoutError) as e:
            logger.error("smoke_failed", error=type(e).__name__, detail=str(e))
            return False
        finally:
            listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await listener

    logger.info("smoke_passed")
    return True
