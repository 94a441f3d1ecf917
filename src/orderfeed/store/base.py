"""Order store interface."""
from typing import Protocol

from orderfeed.schemas import Order, OrderCreate


class OrderStore(Protocol):
    """Row store for orders used by the mutation API."""

    async def open(self) -> None:
        """Acquire any resources the store needs."""
        ...

    async def close(self) -> None:
        """Release store resources."""
        ...

    async def ping(self) -> None:
        """Check that the store answers.

        Raises:
            StoreError: If the store is unreachable.
        """
        ...

    async def list_orders(self) -> list[Order]:
        """All orders, most recently updated first."""
        ...

    async def get_order(self, order_id: int) -> Order:
        """Fetch one order.

        Raises:
            OrderNotFoundError: If the id does not exist.
        """
        ...

    async def create_order(self, data: OrderCreate) -> Order:
        """Insert a new order and return the stored row."""
        ...

    async def update_order(self, order_id: int, changes: dict[str, str]) -> Order:
        """Apply field changes, refresh ``updated_at`` and return the row.

        Raises:
            OrderNotFoundError: If the id does not exist.
        """
        ...

    async def delete_order(self, order_id: int) -> Order:
        """Delete an order and return its last state.

        Raises:
            OrderNotFoundError: If the id does not exist.
        """
        ...
