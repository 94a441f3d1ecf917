"""In-memory order store used in mock mode."""

import asyncio
from datetime import UTC, datetime

from orderfeed.errors import OrderNotFoundError
from orderfeed.schemas import Order, OrderCreate, OrderStatus

SAMPLE_ORDERS: tuple[tuple[str, str, OrderStatus], ...] = (
    ("John Doe", "Laptop", OrderStatus.PENDING),
    ("Jane Smith", "Mouse", OrderStatus.SHIPPED),
    ("Bob Johnson", "Keyboard", OrderStatus.DELIVERED),
)


class InMemoryOrderStore:
    """Order store kept in process memory.

    Ids are assigned sequentially starting at 1 and never reused.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._orders: dict[int, Order] = {}
        self._next_id = 1
        self._lock = asyncio.Lock()

    @classmethod
    def with_sample_orders(cls) -> "InMemoryOrderStore":
        """Create a store seeded with the three demonstration orders."""
        store = cls()
        now = datetime.now(UTC)
        for customer, product, status in SAMPLE_ORDERS:
            store._insert(customer, product, status, now)
        return store

    def _insert(
        self,
        customer_name: str,
        product_name: str,
        status: OrderStatus,
        updated_at: datetime,
    ) -> Order:
        order = Order(
            id=self._next_id,
            customer_name=customer_name,
            product_name=product_name,
            status=status,
            updated_at=updated_at,
        )
        self._orders[order.id] = order
        self._next_id += 1
        return order

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def ping(self) -> None:
        return None

    async def list_orders(self) -> list[Order]:
        return sorted(
            self._orders.values(),
            key=lambda o: (o.updated_at, o.id),
            reverse=True,
        )

    async def get_order(self, order_id: int) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def create_order(self, data: OrderCreate) -> Order:
        async with self._lock:
            return self._insert(
                data.customer_name,
                data.product_name,
                data.status,
                datetime.now(UTC),
            )

    async def update_order(self, order_id: int, changes: dict[str, str]) -> Order:
        async with self._lock:
            current = await self.get_order(order_id)
            updated = current.model_copy(
                update={
                    **changes,
                    "status": OrderStatus(changes.get("status", current.status)),
                    "updated_at": datetime.now(UTC),
                }
            )
            self._orders[order_id] = updated
            return updated

    async def delete_order(self, order_id: int) -> Order:
        async with self._lock:
            order = self._orders.pop(order_id, None)
            if order is None:
                raise OrderNotFoundError(order_id)
            return order
