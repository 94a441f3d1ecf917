"""Pytest configuration and fixtures."""

import asyncio
import sys
import time
from collections.abc import Callable, Iterator
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from fastapi.testclient import TestClient

from orderfeed.app import create_app
from orderfeed.config import Settings
from orderfeed.errors import TransportClosedError


class FakeConnection:
    """In-memory connection handle recording every pushed message."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.messages: list[str] = []
        self.fail = fail
        self.delay = delay
        self.closed = False

    async def send(self, message: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail or self.closed:
            raise TransportClosedError("connection gone")
        self.messages.append(message)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_connection() -> Callable[..., FakeConnection]:
    """Factory for fake subscriber connections."""
    return FakeConnection


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        host="127.0.0.1",
        port=3000,
        debug=True,
        mode="mock",
        push_timeout=0.5,
    )


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    """Create test client with the application lifespan running."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def wait_for_subscribers() -> Callable[[TestClient, int], None]:
    """Poll the health endpoint until the subscriber count matches."""

    def wait(client: TestClient, expected: int, timeout: float = 2.0) -> None:
        deadline = time.monotonic() + timeout
        count = -1
        while time.monotonic() < deadline:
            count = client.get("/health").json()["connectedClients"]
            if count == expected:
                return
            time.sleep(0.01)
        raise AssertionError(f"expected {expected} subscribers, found {count}")

    return wait
