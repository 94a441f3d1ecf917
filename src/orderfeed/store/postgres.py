"""PostgreSQL order store."""

import psycopg
import structlog
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from orderfeed.errors import OrderNotFoundError, StoreError
from orderfeed.schemas import Order, OrderCreate

logger = structlog.get_logger()

ORDER_COLUMNS = "id, customer_name, product_name, status, updated_at"

UPDATABLE_COLUMNS: frozenset[str] = frozenset({"customer_name", "product_name", "status"})


class PostgresOrderStore:
    """Order store backed by the ``orders`` table.

    Change notifications are produced by the table trigger, not by this
    class.
    """

    def __init__(self, conninfo: str, min_size: int = 1, max_size: int = 5) -> None:
        """Initialize the store without opening connections.

        Args:
            conninfo: libpq connection string.
            min_size: Minimum pooled connections.
            max_size: Maximum pooled connections.
        """
        self._pool = AsyncConnectionPool(
            conninfo=conninfo,
            min_size=min_size,
            max_size=max_size,
            kwargs={"row_factory": dict_row},
            open=False,
        )

    async def open(self) -> None:
        logger.info(
            "connection_pool_opening",
            min_size=self._pool.min_size,
            max_size=self._pool.max_size,
        )
        await self._pool.open()

    async def close(self) -> None:
        await self._pool.close()
        logger.info("connection_pool_closed")

    async def _fetch_one(self, query: sql.Composable | str, params: tuple = ()) -> dict | None:
        try:
            async with self._pool.connection() as conn:
                cursor = await conn.execute(query, params)
                return await cursor.fetchone()
        except psycopg.Error as e:
            logger.error("order_store_query_failed", error=str(e))
            raise StoreError(str(e)) from e

    async def ping(self) -> None:
        await self._fetch_one("SELECT 1 AS ok")

    async def list_orders(self) -> list[Order]:
        try:
            async with self._pool.connection() as conn:
                cursor = await conn.execute(
                    f"SELECT {ORDER_COLUMNS} FROM orders ORDER BY updated_at DESC, id DESC"
                )
                rows = await cursor.fetchall()
        except psycopg.Error as e:
            logger.error("order_store_query_failed", error=str(e))
            raise StoreError(str(e)) from e
        return [Order.model_validate(row) for row in rows]

    async def get_order(self, order_id: int) -> Order:
        row = await self._fetch_one(
            f"SELECT {ORDER_COLUMNS} FROM orders WHERE id = %s",
            (order_id,),
        )
        if row is None:
            raise OrderNotFoundError(order_id)
        return Order.model_validate(row)

    async def create_order(self, data: OrderCreate) -> Order:
        row = await self._fetch_one(
            "INSERT INTO orders (customer_name, product_name, status) "
            f"VALUES (%s, %s, %s) RETURNING {ORDER_COLUMNS}",
            (data.customer_name, data.product_name, data.status.value),
        )
        if row is None:
            raise StoreError("Insert returned no row")
        return Order.model_validate(row)

    async def update_order(self, order_id: int, changes: dict[str, str]) -> Order:
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise StoreError(f"Cannot update columns: {', '.join(sorted(unknown))}")

        assignments = [
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
        ]
        assignments.append(sql.SQL("updated_at = CURRENT_TIMESTAMP"))
        query = sql.SQL("UPDATE orders SET {} WHERE id = %s RETURNING {}").format(
            sql.SQL(", ").join(assignments),
            sql.SQL(ORDER_COLUMNS),
        )

        row = await self._fetch_one(query, (*changes.values(), order_id))
        if row is None:
            raise OrderNotFoundError(order_id)
        return Order.model_validate(row)

    async def delete_order(self, order_id: int) -> Order:
        row = await self._fetch_one(
            f"DELETE FROM orders WHERE id = %s RETURNING {ORDER_COLUMNS}",
            (order_id,),
        )
        if row is None:
            raise OrderNotFoundError(order_id)
        return Order.model_validate(row)
