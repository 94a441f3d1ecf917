"""Health endpoint tests."""

from collections.abc import Callable

from fastapi.testclient import TestClient


def test_liveness_returns_200(client: TestClient) -> None:
    """Liveness endpoint returns 200 OK."""
    response = client.get("/api/v1/health/live")
    assert response.status_code == 200


def test_liveness_returns_status(client: TestClient) -> None:
    """Liveness endpoint returns alive status."""
    response = client.get("/api/v1/health/live")
    data = response.json()
    assert "status" in data
    assert data["status"] == "alive"


def test_health_reports_mode_and_no_clients(client: TestClient) -> None:
    """Summary endpoint reports the mode and zero subscribers at startup."""
    data = client.get("/health").json()
    assert data["status"] == "healthy"
    assert data["mode"] == "mock"
    assert data["connectedClients"] == 0
    assert "connected_clients" not in data
    assert "timestamp" in data


def test_health_counts_websocket_subscribers(
    client: TestClient,
    wait_for_subscribers: Callable[[TestClient, int], None],
) -> None:
    """Connected WebSocket clients are counted until they disconnect."""
    with client.websocket_connect("/ws"):
        wait_for_subscribers(client, 1)
    wait_for_subscribers(client, 0)


def test_readiness_ok_in_mock_mode(client: TestClient) -> None:
    """Readiness passes when hub, synthetic source and store are up."""
    response = client.get("/api/v1/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    names = {check["name"] for check in data["checks"]}
    assert names == {
        "broadcast_hub",
        "change_source:SyntheticChangeSource",
        "order_store",
    }
