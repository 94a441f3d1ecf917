"""Health check endpoints for liveness, readiness and subscriber counts."""
from datetime import UTC, datetime
from typing import Literal

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from orderfeed.errors import StoreError

router = APIRouter(prefix="/health", tags=["health"])

summary_router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Response model for the service summary.

    Attributes:
        status: Always 'healthy' when the process answers.
        timestamp: Server time of the response.
        connected_clients: Current number of subscribers, serialized as
            ``connectedClients`` for existing dashboards and scripts.
        mode: Deployment mode ('mock' or 'postgres').
    """

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["healthy"]
    timestamp: datetime
    connected_clients: int = Field(serialization_alias="connectedClients")
    mode: str


class LivenessResponse(BaseModel):
    """Response model for liveness probe.

    Attributes:
        status: Always 'alive' when process is running.
    """

    status: Literal["alive"]


class ReadinessCheck(BaseModel):
    """Individual dependency check result.

    Attributes:
        name: Identifier for the dependency being checked.
        status: Result of the check ('ok' or 'failed').
        message: Error details when status is 'failed'.
    """

    name: str
    status: Literal["ok", "failed"]
    message: str | None = None


class ReadinessResponse(BaseModel):
    """Response model for readiness probe.

    Attributes:
        status: Overall readiness ('ready' or 'not_ready').
        connected_clients: Current number of subscribers.
        checks: List of individual dependency check results.
    """

    status: Literal["ready", "not_ready"]
    connected_clients: int
    checks: list[ReadinessCheck]


def _check_hub(request: Request) -> ReadinessCheck:
    hub = request.app.state.broadcast_hub
    if hub.accepting:
        return ReadinessCheck(name="broadcast_hub", status="ok")
    return ReadinessCheck(name="broadcast_hub", status="failed", message="Shut down")


def _check_source(request: Request) -> ReadinessCheck:
    source = request.app.state.change_source
    name = f"change_source:{type(source).__name__}"
    if source.connected:
        return ReadinessCheck(name=name, status="ok")
    return ReadinessCheck(name=name, status="failed", message="Not connected")


async def _check_store(request: Request) -> ReadinessCheck:
    """Verify the order store answers.

    Args:
        request: FastAPI request object.

    Returns:
        Check result with status and optional error message.
    """
    store = request.app.state.order_service.store
    try:
        await store.ping()
    except StoreError as e:
        return ReadinessCheck(name="order_store", status="failed", message=str(e))
    return ReadinessCheck(name="order_store", status="ok")


@summary_router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Service summary with the live subscriber count.

    Returns:
        Health summary.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        connected_clients=request.app.state.broadcast_hub.subscriber_count,
        mode=request.app.state.settings.mode,
    )


@router.get("/live", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """Liveness probe endpoint.

    Returns immediate success if the process is running.

    Returns:
        Liveness status response.
    """
    return LivenessResponse(status="alive")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> JSONResponse:
    """Readiness probe endpoint.

    Validates that:
    - the broadcast hub accepts connections
    - the change source is connected
    - the order store answers

    Returns 200 if all checks pass, 503 if any fail. A change source that
    lost its channel makes the service not ready, so a feed that silently
    delivers nothing is visible to operators.

    Returns:
        Readiness status with individual check results.
    """
    checks = [
        _check_hub(request),
        _check_source(request),
        await _check_store(request),
    ]
    all_ok = all(c.status == "ok" for c in checks)
    response = ReadinessResponse(
        status="ready" if all_ok else "not_ready",
        connected_clients=request.app.state.broadcast_hub.subscriber_count,
        checks=checks,
    )
    code = status.HTTP_200_OK if all_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(content=response.model_dump(), status_code=code)
