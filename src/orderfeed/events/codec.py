"""Decoding of upstream notifications and encoding of wire messages."""

import json
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from orderfeed.errors import ChangePayloadError
from orderfeed.events.types import BUSINESS_FIELDS, ChangeEvent, Operation, WireMessage


def decode_notification(
    payload: str,
    occurred_at: datetime | None = None,
) -> ChangeEvent:
    """Decode a trigger notification payload into a change event.

    The payload is the JSON object built by the ``notify_order_changes``
    trigger: ``operation``, ``id`` and every business field of the row.

    Args:
        payload: Raw notification text.
        occurred_at: Emission time, defaults to now.

    Returns:
        Decoded change event.

    Raises:
        ChangePayloadError: If the payload is not a well-formed change object.
    """
    try:
        raw = json.loads(payload)
    except (json.JSONDecodeError, TypeError) as e:
        raise ChangePayloadError(f"Invalid JSON: {e}", payload) from e

    if not isinstance(raw, dict):
        raise ChangePayloadError("Payload is not a JSON object", payload)

    try:
        operation = Operation(raw.pop("operation"))
    except KeyError as e:
        raise ChangePayloadError("Missing operation", payload) from e
    except ValueError as e:
        raise ChangePayloadError(f"Unknown operation: {e}", payload) from e

    entity_id = raw.pop("id", None)
    if entity_id is None or isinstance(entity_id, bool):
        raise ChangePayloadError("Missing id", payload)

    missing = [name for name in BUSINESS_FIELDS if name not in raw]
    if missing:
        raise ChangePayloadError(f"Missing fields: {', '.join(missing)}", payload)

    try:
        return ChangeEvent(
            operation=operation,
            entity_id=entity_id,
            snapshot=raw,
            occurred_at=occurred_at or datetime.now(UTC),
        )
    except ValidationError as e:
        raise ChangePayloadError(str(e), payload) from e


def build_wire_message(event: ChangeEvent, timestamp: datetime | None = None) -> WireMessage:
    """Build the outbound wire message for a change event.

    Args:
        event: Change event to publish.
        timestamp: Push time, defaults to now.

    Returns:
        Wire message with the operation, id and snapshot flattened into ``data``.
    """
    data: dict[str, Any] = {"operation": event.operation.value, "id": event.entity_id}
    data.update(
        (key, value) for key, value in event.snapshot.items() if key not in ("operation", "id")
    )
    return WireMessage(data=data, timestamp=timestamp or datetime.now(UTC))


def encode_wire_message(event: ChangeEvent, timestamp: datetime | None = None) -> str:
    """Encode a change event into its JSON wire representation.

    Args:
        event: Change event to publish.
        timestamp: Push time, defaults to now.

    Returns:
        JSON text sent to every subscriber.
    """
    return build_wire_message(event, timestamp).model_dump_json()


def decode_wire_message(text: str) -> WireMessage:
    """Parse a wire message received by a subscriber.

    Args:
        text: JSON text of one pushed message.

    Returns:
        Parsed wire message.
    """
    return WireMessage.model_validate_json(text)
