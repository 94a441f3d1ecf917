"""Outbound push channels for WebSocket and SSE subscribers."""

import asyncio
import contextlib
from typing import Protocol

from starlette.websockets import WebSocket, WebSocketState

from orderfeed.errors import TransportClosedError, TransportSaturatedError


class ConnectionHandle(Protocol):
    """One outbound push channel to a connected client."""

    async def send(self, message: str) -> None:
        """Push one encoded wire message.

        Raises:
            Exception: Any failure means the transport is no longer usable.
        """
        ...

    async def close(self) -> None:
        """Close the transport from the server side."""
        ...


class WebSocketConnection:
    """Push channel backed by an accepted WebSocket.

    Each message is sent directly as one text frame; nothing is buffered.
    """

    def __init__(self, websocket: WebSocket) -> None:
        """Initialize the connection.

        Args:
            websocket: WebSocket that has already been accepted.
        """
        self._websocket = websocket

    @property
    def client(self) -> str | None:
        """Remote address of the client, if known."""
        client = self._websocket.client
        return f"{client.host}:{client.port}" if client else None

    async def send(self, message: str) -> None:
        """Send one text frame.

        Raises:
            TransportClosedError: If either side already closed the socket.
        """
        if (
            self._websocket.client_state is not WebSocketState.CONNECTED
            or self._websocket.application_state is not WebSocketState.CONNECTED
        ):
            raise TransportClosedError("WebSocket is not connected")
        await self._websocket.send_text(message)

    async def close(self) -> None:
        """Close the socket with a going-away code if it is still open."""
        if self._websocket.application_state is not WebSocketState.CONNECTED:
            return
        with contextlib.suppress(RuntimeError):
            await self._websocket.close(code=1001)


class SSEConnection:
    """Push channel backed by a Server-Sent Events response.

    The response generator runs in its own task, so pushes go through a
    small bounded buffer. A full buffer rejects the push instead of
    dropping older messages, which keeps delivery order intact and lets
    the hub drop a subscriber that cannot keep up.

    Attributes:
        buffer_size: Maximum number of messages waiting to be written.
    """

    def __init__(self, buffer_size: int = 16) -> None:
        """Initialize the connection.

        Args:
            buffer_size: Maximum pending messages before pushes fail.
        """
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=buffer_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the connection has been closed."""
        return self._closed

    async def send(self, message: str) -> None:
        """Queue one message for the response generator.

        Raises:
            TransportClosedError: If the connection is closed.
            TransportSaturatedError: If the buffer is full.
        """
        if self._closed:
            raise TransportClosedError("SSE connection is closed")
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull as e:
            raise TransportSaturatedError("SSE buffer is full") from e

    async def receive(self) -> str | None:
        """Wait for the next queued message.

        Returns:
            The next message, or None once the connection is closed.
        """
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    async def close(self) -> None:
        """Close the connection and wake the response generator."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)
