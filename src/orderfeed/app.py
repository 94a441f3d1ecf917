"""FastAPI application factory and lifespan management."""

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderfeed.config import Settings
from orderfeed.errors import OrderNotFoundError, OrderValidationError, StoreError
from orderfeed.events import (
    BroadcastHub,
    ChangeSource,
    PostgresChangeSource,
    SubscriberRegistry,
    SyntheticChangeSource,
)
from orderfeed.middleware.logging import RequestLoggingMiddleware
from orderfeed.routes import events, health, orders
from orderfeed.services.orders import OrderService
from orderfeed.store import InMemoryOrderStore, OrderStore, PostgresOrderStore

logger = structlog.get_logger()


def build_components(settings: Settings) -> tuple[OrderStore, ChangeSource, OrderService]:
    """Create the store, change source and order service for a mode.

    In mock mode the order service drives a synthetic change source; in
    postgres mode changes come from the table trigger's notifications.

    Args:
        settings: Service configuration.

    Returns:
        Tuple of (store, change_source, order_service).
    """
    if settings.mode == "postgres":
        store: OrderStore = PostgresOrderStore(
            settings.conninfo,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        source: ChangeSource = PostgresChangeSource(
            settings.conninfo,
            channel=settings.notify_channel,
            reconnect_max_delay=settings.reconnect_max_delay,
        )
        return store, source, OrderService(store)

    store = InMemoryOrderStore.with_sample_orders()
    synthetic = SyntheticChangeSource()
    return store, synthetic, OrderService(store, publish=synthetic.emit)


def _watch_hub_task(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(
            "broadcast_hub_failed",
            error=type(error).__name__,
            detail=str(error),
            exc_info=error,
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle events.

    Opens the order store, creates the broadcast hub with its own
    subscriber registry and starts the hub's receive loop on the change
    source. On shutdown the hub stops accepting work and closes every
    subscriber before the source and store are released.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings: Settings = app.state.settings
    logger.info("api_startup", host=settings.host, port=settings.port, mode=settings.mode)

    store, source, order_service = build_components(settings)
    await store.open()

    broadcast_hub = BroadcastHub(
        SubscriberRegistry(),
        push_timeout=settings.push_timeout,
        heartbeat_interval=settings.sse_heartbeat_interval,
    )

    app.state.broadcast_hub = broadcast_hub
    app.state.change_source = source
    app.state.order_service = order_service

    hub_task = asyncio.create_task(broadcast_hub.run(source))
    hub_task.add_done_callback(_watch_hub_task)

    try:
        yield
    finally:
        await broadcast_hub.shutdown()

        hub_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await hub_task

        await source.close()
        await store.close()
        logger.info("api_shutdown")


async def _not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "Order not found"},
    )


async def _validation_handler(request: Request, exc: Exception) -> JSONResponse:
    if isinstance(exc, RequestValidationError):
        errors = exc.errors()
        if errors:
            location = ".".join(str(part) for part in errors[0]["loc"][1:])
            message = f"{location}: {errors[0]['msg']}" if location else errors[0]["msg"]
        else:
            message = "Invalid request"
    else:
        message = str(exc)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": message},
    )


async def _store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("order_store_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Factory function to create configured FastAPI application.

    Args:
        settings: Configuration instance. Creates default if None.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="Order Change Feed",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    # Credentials cannot be combined with a wildcard origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    app.add_exception_handler(OrderNotFoundError, _not_found_handler)
    app.add_exception_handler(OrderValidationError, _validation_handler)
    app.add_exception_handler(RequestValidationError, _validation_handler)
    app.add_exception_handler(StoreError, _store_error_handler)

    app.include_router(health.summary_router)
    app.include_router(health.router, prefix="/api/v1")
    app.include_router(events.router, prefix="/api/v1")
    app.include_router(events.ws_router)
    app.include_router(orders.router, prefix="/api")

    return app
