"""Change event and wire message types."""
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Operation(str, Enum):
    """Row-level mutation kinds, valued by their wire tokens."""

    CREATED = "INSERT"
    UPDATED = "UPDATE"
    DELETED = "DELETE"


BUSINESS_FIELDS: tuple[str, ...] = (
    "customer_name",
    "product_name",
    "status",
    "updated_at",
)

WIRE_MESSAGE_TYPE = "order_change"


class ChangeEvent(BaseModel):
    """Immutable record of one order mutation.

    Attributes:
        operation: Kind of mutation.
        entity_id: Id of the affected order row.
        snapshot: Full row state after the mutation, or before deletion.
        occurred_at: Emission time assigned by the change source.
    """

    model_config = ConfigDict(frozen=True)

    operation: Operation = Field(description="Mutation kind")
    entity_id: int | str = Field(description="Affected row id")
    snapshot: dict[str, Any] = Field(description="Full post-image (pre-image for deletes)")
    occurred_at: datetime = Field(description="Emission timestamp (UTC)")


class WireMessage(BaseModel):
    """Outbound message pushed to every subscriber.

    Attributes:
        type: Always ``order_change``.
        data: Operation, id and business fields of the changed order.
        timestamp: Push time assigned by the broadcast hub.
    """

    type: Literal["order_change"] = WIRE_MESSAGE_TYPE
    data: dict[str, Any]
    timestamp: datetime
