"""
Order management service - order lifecycle around the dispatcher.

This module handles:
    - Quoting and creating orders
    - Payment confirmation and admin redispatch
    - Cancellation and delivery progress
    - Querying orders
"""

from .order_lifecycle import (
    OrderQuote,
    OrderResult,
    quote_order,
    create_order,
    cancel_order,
    advance_order_status,
    confirm_payment,
    redispatch_order,
    get_order_for_user,
    list_orders_for_user,
    exhausted_orders,
    delivery_history,
)

__all__ = [
    "OrderQuote",
    "OrderResult",
    "quote_order",
    "create_order",
    "cancel_order",
    "advance_order_status",
    "confirm_payment",
    "redispatch_order",
    "get_order_for_user",
    "list_orders_for_user",
    "exhausted_orders",
    "delivery_history",
]
