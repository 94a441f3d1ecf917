"""HTTP clients for following the order change feed."""

from orderfeed.client.stream import iter_order_changes

__all__ = ["iter_order_changes"]
