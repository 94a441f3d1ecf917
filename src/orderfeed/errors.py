"""Exception hierarchy for the order feed service."""


class OrderFeedError(Exception):
    """Base class for all order feed errors."""


class ChangePayloadError(OrderFeedError):
    """Raised when an upstream change notification cannot be decoded."""

    def __init__(self, message: str, payload: str) -> None:
        """Initialize payload error.

        Args:
            message: Error description.
            payload: The raw notification payload that failed to decode.
        """
        super().__init__(message)
        self.payload = payload


class RegistryInvariantError(OrderFeedError):
    """Raised when the subscriber registry reaches a state it never should.

    This signals a programming defect, not a runtime condition to recover from.
    """


class HubClosedError(OrderFeedError):
    """Raised when a connection is offered to a hub that has shut down."""


class StoreError(OrderFeedError):
    """Raised when the order store fails unexpectedly."""


class OrderNotFoundError(StoreError):
    """Raised when an order id does not exist."""

    def __init__(self, order_id: int) -> None:
        """Initialize not-found error.

        Args:
            order_id: The missing order id.
        """
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class OrderValidationError(StoreError):
    """Raised when a mutation request is rejected before reaching the store."""


class TransportClosedError(OrderFeedError):
    """Raised when pushing to a subscriber transport that is already closed."""


class TransportSaturatedError(OrderFeedError):
    """Raised when a subscriber transport cannot accept a push without blocking."""
