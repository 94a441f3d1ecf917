"""Request and response models for the orders API."""
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(str, Enum):
    """Fulfilment status of an order."""

    PENDING = "pending"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


class Order(BaseModel):
    """Persisted order row.

    Attributes:
        id: Store-assigned identifier.
        customer_name: Name of the customer.
        product_name: Name of the ordered product.
        status: Fulfilment status.
        updated_at: Time of the last mutation.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_name: str
    product_name: str
    status: OrderStatus
    updated_at: datetime


class OrderCreate(BaseModel):
    """Body of a create-order request."""

    customer_name: str = Field(..., min_length=1, max_length=255)
    product_name: str = Field(..., min_length=1, max_length=255)
    status: OrderStatus = OrderStatus.PENDING


class OrderUpdate(BaseModel):
    """Body of an update-order request. Omitted fields are left unchanged."""

    customer_name: str | None = Field(default=None, min_length=1, max_length=255)
    product_name: str | None = Field(default=None, min_length=1, max_length=255)
    status: OrderStatus | None = None

    def changes(self) -> dict[str, str]:
        """Fields to apply, with enum values unwrapped."""
        return self.model_dump(exclude_none=True, mode="json")


class OrderDeleted(BaseModel):
    """Response of a delete-order request."""

    message: str = "Order deleted successfully"
    order: Order


class ErrorResponse(BaseModel):
    """Error body returned by the orders API."""

    error: str
