"""Order stores for mock and PostgreSQL deployments."""

from orderfeed.store.base import OrderStore
from orderfeed.store.memory import InMemoryOrderStore
from orderfeed.store.postgres import PostgresOrderStore
from orderfeed.store.schema import setup_database

__all__ = [
    "InMemoryOrderStore",
    "OrderStore",
    "PostgresOrderStore",
    "setup_database",
]
