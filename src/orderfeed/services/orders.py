"""Order mutations and their change notifications."""

from collections.abc import Callable, Mapping
from typing import Any

import structlog

from orderfeed.errors import OrderValidationError
from orderfeed.events.types import Operation
from orderfeed.schemas import Order, OrderCreate, OrderUpdate
from orderfeed.store.base import OrderStore

logger = structlog.get_logger()

ChangePublisher = Callable[[Operation, Mapping[str, Any]], object]


class OrderService:
    """Applies order mutations to a store and reports each one as a change.

    With a publisher (mock mode) every successful mutation is handed to it
    exactly once, after the store call returns. Without one, the database
    trigger is expected to produce the change. Publishing never waits for
    the broadcast to complete.
    """

    def __init__(self, store: OrderStore, publish: ChangePublisher | None = None) -> None:
        """Initialize the service.

        Args:
            store: Row store for orders.
            publish: Non-blocking callback receiving each mutation.
        """
        self._store = store
        self._publish = publish

    @property
    def store(self) -> OrderStore:
        """Underlying order store."""
        return self._store

    def _notify(self, operation: Operation, order: Order) -> None:
        if self._publish is None:
            return
        self._publish(operation, order.model_dump(mode="json"))

    async def list_orders(self) -> list[Order]:
        return await self._store.list_orders()

    async def get_order(self, order_id: int) -> Order:
        return await self._store.get_order(order_id)

    async def create_order(self, data: OrderCreate) -> Order:
        order = await self._store.create_order(data)
        logger.info("order_created", order_id=order.id, status=order.status.value)
        self._notify(Operation.CREATED, order)
        return order

    async def update_order(self, order_id: int, data: OrderUpdate) -> Order:
        """Apply a partial update.

        Raises:
            OrderValidationError: If the request carries no fields.
            OrderNotFoundError: If the id does not exist.
        """
        changes = data.changes()
        if not changes:
            raise OrderValidationError("No fields to update")

        order = await self._store.update_order(order_id, changes)
        logger.info("order_updated", order_id=order.id, fields=sorted(changes))
        self._notify(Operation.UPDATED, order)
        return order

    async def delete_order(self, order_id: int) -> Order:
        order = await self._store.delete_order(order_id)
        logger.info("order_deleted", order_id=order.id)
        self._notify(Operation.DELETED, order)
        return order
