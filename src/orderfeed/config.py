"""Service configuration loaded from environment variables."""
from typing import Literal

from psycopg.conninfo import make_conninfo
from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration loaded from environment variables.

    Attributes:
        host: Bind address for the server.
        port: Port number for the server.
        debug: Enable debug logging and API documentation.
        mode: ``mock`` for the in-memory store with synthetic changes,
            ``postgres`` for the database store with trigger notifications.
        cors_origins_raw: Raw comma-separated CORS origins string.
        shutdown_timeout: Seconds to wait for graceful shutdown.
        database_url: Full libpq connection string; overrides the db_* fields.
        db_host: Database host.
        db_port: Database port.
        db_name: Database name.
        db_user: Database user.
        db_password: Database password.
        db_sslmode: libpq sslmode.
        db_pool_min_size: Minimum pooled connections for the order store.
        db_pool_max_size: Maximum pooled connections for the order store.
        notify_channel: Channel the order trigger notifies.
        reconnect_max_delay: Upper bound of the notification reconnect backoff.
        push_timeout: Seconds a push to one subscriber may take.
        sse_heartbeat_interval: Seconds between SSE heartbeat comments.
        sse_buffer_size: Pending messages per SSE subscriber before it is dropped.
    """

    model_config = SettingsConfigDict(
        env_prefix="ORDERFEED_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = "127.0.0.1"
    port: int = 3000
    debug: bool = False
    mode: Literal["mock", "postgres"] = "mock"
    cors_origins_raw: str = "*"
    shutdown_timeout: float = 30.0

    database_url: str = ""
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "realtime_orders"
    db_user: str = "postgres"
    db_password: str = "password"
    db_sslmode: str = "prefer"
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5

    notify_channel: str = "order_changes"
    reconnect_max_delay: float = 30.0
    push_timeout: float = 1.0
    sse_heartbeat_interval: float = 15.0
    sse_buffer_size: int = 16

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from comma-separated string.

        Returns:
            List of allowed origin URLs.
        """
        return [
            origin.strip()
            for origin in self.cors_origins_raw.split(",")
            if origin.strip()
        ]

    @computed_field
    @property
    def conninfo(self) -> str:
        """Database connection string.

        Returns:
            ``database_url`` when set, otherwise one built from the db_* fields.
        """
        if self.database_url:
            return self.database_url
        return make_conninfo(
            host=self.db_host,
            port=self.db_port,
            dbname=self.db_name,
            user=self.db_user,
            password=self.db_password,
            sslmode=self.db_sslmode,
        )
