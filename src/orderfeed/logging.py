"""Structured logging configuration using structlog."""

import logging
import sys

import structlog

# Libraries whose stdlib loggers are re-routed through the root handler.
ROUTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "sse_starlette")

QUIET_LOGGERS = ("psycopg", "psycopg.pool")


def configure_logging(debug: bool = False, mode: str | None = None) -> None:
    """Configure structlog for JSON lines on stderr.

    stdout stays free for the ``watch`` command's output. When ``mode`` is
    given it is bound to every log line of the process.

    Args:
        debug: Enable debug-level logging when True.
        mode: Deployment mode to bind as global context.
    """
    level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    if mode is not None:
        structlog.contextvars.bind_contextvars(mode=mode)

    logging.basicConfig(
        format="%(name)s %(levelname)s %(message)s",
        level=level,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )

    for name in ROUTED_LOGGERS:
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True

    # psycopg logs every pool check at INFO.
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(level if debug else logging.WARNING)
