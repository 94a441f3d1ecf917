"""Subscriber endpoints streaming order changes over WebSocket and SSE."""

from typing import TYPE_CHECKING

import structlog
from fastapi import APIRouter, HTTPException, Request, WebSocket, status
from sse_starlette.sse import EventSourceResponse

from orderfeed.errors import HubClosedError
from orderfeed.events.transport import SSEConnection, WebSocketConnection

if TYPE_CHECKING:
    from orderfeed.config import Settings
    from orderfeed.events.hub import BroadcastHub

logger = structlog.get_logger()

router = APIRouter(prefix="/events", tags=["events"])

ws_router = APIRouter(tags=["events"])


@router.get("/stream")
async def event_stream(request: Request) -> EventSourceResponse:
    """Stream order changes via Server-Sent Events.

    Each change arrives as an ``order_change`` event whose data is the
    JSON wire message. Only changes made after the connection opens are
    delivered. Heartbeat comments are sent while idle.

    Args:
        request: FastAPI request object.

    Returns:
        SSE response stream.

    Raises:
        HTTPException: 503 if the service is shutting down.
    """
    hub: BroadcastHub = request.app.state.broadcast_hub
    settings: Settings = request.app.state.settings

    if not hub.accepting:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is shutting down",
        )

    connection = SSEConnection(buffer_size=settings.sse_buffer_size)
    return EventSourceResponse(
        hub.create_sse_generator(connection),
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@ws_router.websocket("/ws")
async def order_change_socket(websocket: WebSocket) -> None:
    """Push order changes to a WebSocket client.

    Every change is sent as one JSON text frame. Frames from the client are
    ignored; the connection is unregistered as soon as it closes.

    Args:
        websocket: Incoming WebSocket connection.
    """
    hub: BroadcastHub = websocket.app.state.broadcast_hub

    await websocket.accept()
    connection = WebSocketConnection(websocket)
    try:
        subscriber = hub.connect(connection)
    except HubClosedError:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return

    logger.debug("websocket_accepted", subscriber_id=subscriber.id, client=connection.client)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        hub.disconnect(connection)
