"""Remote execution service (orders API) boundary."""

from .client import (
    DispatchError,
    OrderLookupError,
    OrdersAPIClient,
    OrdersAPIError,
    RemoteExecutionClient,
    normalize_order_status,
    parse_order,
)

__all__ = [
    "DispatchError",
    "OrderLookupError",
    "OrdersAPIClient",
    "OrdersAPIError",
    "RemoteExecutionClient",
    "normalize_order_status",
    "parse_order",
]
