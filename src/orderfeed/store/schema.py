"""PostgreSQL schema, change-notification trigger and sample data."""

import psycopg
import structlog
from psycopg import sql

from orderfeed.events.sources import DEFAULT_CHANNEL

logger = structlog.get_logger()

CREATE_ORDERS_TABLE = """
CREATE TABLE IF NOT EXISTS orders (
    id SERIAL PRIMARY KEY,
    customer_name VARCHAR(255) NOT NULL,
    product_name VARCHAR(255) NOT NULL,
    status VARCHAR(50) NOT NULL CHECK (status IN ('pending', 'shipped', 'delivered')),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""

# The trigger ships the full row, never a diff: NEW for inserts and updates,
# OLD for deletes.
CREATE_NOTIFY_FUNCTION = """
CREATE OR REPLACE FUNCTION notify_order_changes()
RETURNS TRIGGER AS $$
DECLARE
    target orders%ROWTYPE;
BEGIN
    IF TG_OP = 'DELETE' THEN
        target := OLD;
    ELSE
        target := NEW;
    END IF;
    PERFORM pg_notify(
        {channel},
        json_build_object(
            'operation', TG_OP,
            'id', target.id,
            'customer_name', target.customer_name,
            'product_name', target.product_name,
            'status', target.status,
            'updated_at', target.updated_at
        )::text
    );
    RETURN target;
END;
$$ LANGUAGE plpgsql
"""

DROP_TRIGGER = "DROP TRIGGER IF EXISTS order_changes_trigger ON orders"

CREATE_TRIGGER = """
CREATE TRIGGER order_changes_trigger
    AFTER INSERT OR UPDATE OR DELETE ON orders
    FOR EACH ROW EXECUTE FUNCTION notify_order_changes()
"""

SEED_ORDERS = """
INSERT INTO orders (customer_name, product_name, status)
SELECT * FROM (VALUES
    ('John Doe', 'Laptop', 'pending'),
    ('Jane Smith', 'Mouse', 'shipped'),
    ('Bob Johnson', 'Keyboard', 'delivered')
) AS sample(customer_name, product_name, status)
WHERE NOT EXISTS (SELECT 1 FROM orders)
"""


async def setup_database(
    conninfo: str,
    channel: str = DEFAULT_CHANNEL,
    seed: bool = True,
) -> None:
    """Create the orders table, notify trigger and sample rows.

    Idempotent: existing tables and rows are left in place and the trigger
    is recreated.

    Args:
        conninfo: libpq connection string.
        channel: Channel the trigger notifies.
        seed: Insert sample orders into an empty table.
    """
    async with await psycopg.AsyncConnection.connect(conninfo) as conn:
        await conn.execute(CREATE_ORDERS_TABLE)
        await conn.execute(
            sql.SQL(CREATE_NOTIFY_FUNCTION).format(channel=sql.Literal(channel))
        )
        await conn.execute(DROP_TRIGGER)
        await conn.execute(CREATE_TRIGGER)
        logger.info("database_schema_ready", channel=channel)

        if seed:
            cursor = await conn.execute(SEED_ORDERS)
            logger.info("database_seeded", inserted=cursor.rowcount)
