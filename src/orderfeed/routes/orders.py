"""Orders CRUD endpoints."""

from fastapi import APIRouter, Request, status

from orderfeed.schemas import ErrorResponse, Order, OrderCreate, OrderDeleted, OrderUpdate
from orderfeed.services.orders import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])

NOT_FOUND = {404: {"model": ErrorResponse, "description": "Order not found"}}


def _service(request: Request) -> OrderService:
    return request.app.state.order_service


@router.get(
    "",
    response_model=list[Order],
    summary="List all orders",
    description="Returns all orders, most recently updated first.",
)
async def list_orders(request: Request) -> list[Order]:
    """List all orders."""
    return await _service(request).list_orders()


@router.get("/{order_id}", response_model=Order, responses=NOT_FOUND)
async def get_order(order_id: int, request: Request) -> Order:
    """Fetch a single order by id.

    Args:
        order_id: Order identifier.
        request: FastAPI request object.

    Returns:
        The order.
    """
    return await _service(request).get_order(order_id)


@router.post(
    "",
    response_model=Order,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_order(body: OrderCreate, request: Request) -> Order:
    """Create an order.

    Subscribers are notified of the new order asynchronously; the response
    does not wait for the broadcast.

    Args:
        body: Customer, product and optional status.
        request: FastAPI request object.

    Returns:
        The stored order.
    """
    return await _service(request).create_order(body)


@router.put(
    "/{order_id}",
    response_model=Order,
    responses={**NOT_FOUND, 400: {"model": ErrorResponse}},
)
async def update_order(order_id: int, body: OrderUpdate, request: Request) -> Order:
    """Update any of an order's customer, product or status.

    Args:
        order_id: Order identifier.
        body: Fields to change.
        request: FastAPI request object.

    Returns:
        The updated order.
    """
    return await _service(request).update_order(order_id, body)


@router.delete("/{order_id}", response_model=OrderDeleted, responses=NOT_FOUND)
async def delete_order(order_id: int, request: Request) -> OrderDeleted:
    """Delete an order.

    Args:
        order_id: Order identifier.
        request: FastAPI request object.

    Returns:
        Confirmation with the order's last state.
    """
    order = await _service(request).delete_order(order_id)
    return OrderDeleted(order=order)
