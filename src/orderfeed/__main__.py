"""Command-line entry point: server, database setup and feed clients."""

import argparse
import asyncio
import contextlib
import signal
import sys

import structlog
import uvicorn

from orderfeed.app import create_app
from orderfeed.config import Settings
from orderfeed.logging import configure_logging

logger = structlog.get_logger()


async def serve(settings: Settings) -> None:
    """Run uvicorn server with graceful shutdown support.

    SIGTERM/SIGINT ask the server to exit, which runs the application
    lifespan shutdown and closes every subscriber. In-flight requests get
    ``shutdown_timeout`` seconds to finish.

    Args:
        settings: Server configuration.
    """
    app = create_app(settings)
    stop_requested = asyncio.Event()

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level="warning",
        access_log=False,
        timeout_graceful_shutdown=int(settings.shutdown_timeout),
    )
    server = uvicorn.Server(config)

    def request_stop(sig: signal.Signals) -> None:
        if stop_requested.is_set():
            return
        logger.info("shutdown_signal_received", signal=sig.name)
        stop_requested.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, request_stop, sig)

    async def stop_server() -> None:
        await stop_requested.wait()
        server.should_exit = True

    stopper = asyncio.create_task(stop_server())
    try:
        await server.serve()
    finally:
        stopper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await stopper


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the orderfeed CLI."""
    parser = argparse.ArgumentParser(
        prog="orderfeed",
        description="Real-time order change feed.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the API and change feed server")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")
    serve_parser.add_argument(
        "--mode",
        choices=["mock", "postgres"],
        default=None,
        help="Order store and change source to use",
    )

    setup_parser = subparsers.add_parser(
        "setup-db",
        help="Create the orders table and change-notification trigger",
    )
    setup_parser.add_argument(
        "--no-seed", action="store_true", help="Do not insert sample orders",
    )

    watch_parser = subparsers.add_parser("watch", help="Print order changes as they happen")
    watch_parser.add_argument(
        "--url", default="http://localhost:3000", help="Base URL of the server",
    )

    smoke_parser = subparsers.add_parser(
        "smoke",
        help="Create, update and delete an order and check the feed reports each change",
    )
    smoke_parser.add_argument(
        "--url", default="http://localhost:3000", help="Base URL of the server",
    )
    smoke_parser.add_argument(
        "--timeout", type=float, default=5.0, help="Seconds to wait for each change",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for ``python -m orderfeed`` and the ``orderfeed`` script."""
    args = build_parser().parse_args(argv)
    command = args.command or "serve"

    overrides = {
        key: value
        for key in ("host", "port", "mode")
        if (value := getattr(args, key, None)) is not None
    }
    settings = Settings(**overrides)
    configure_logging(debug=settings.debug, mode=settings.mode if command == "serve" else None)

    exit_code = 0
    with contextlib.suppress(KeyboardInterrupt):
        if command == "serve":
            asyncio.run(serve(settings))
        elif command == "setup-db":
            from orderfeed.store.schema import setup_database

            asyncio.run(
                setup_database(
                    settings.conninfo,
                    channel=settings.notify_channel,
                    seed=not args.no_seed,
                )
            )
        elif command == "watch":
            from orderfeed.client.watch import watch

            asyncio.run(watch(args.url))
        elif command == "smoke":
            from orderfeed.client.smoke import run_smoke_test

            ok = asyncio.run(run_smoke_test(args.url, timeout=args.timeout))
            exit_code = 0 if ok else 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
