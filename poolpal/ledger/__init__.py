"""
PoolPal Ledger - order and payment lifecycle consistency.

Exports:
- Ledger: facade over the stores below
- OrderStore / PaymentStore / ReconciliationCoordinator
- Order, OrderItem, Payment, OrderEvent records and their status enums
- calculate_order_total, generate_order_number, generate_reference_code
"""

from .models import (
    ORDER_EVENTS,
    ORDERS,
    PAYMENTS,
    Order,
    OrderEvent,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
)
from .transitions import (
    ORDER_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    allowed_order_transitions,
    allowed_payment_transitions,
)
from .helpers import calculate_order_total, generate_order_number, generate_reference_code
from .locks import KeyedLock
from .orders import OrderStore
from .payments import PaymentStore
from .reconciliation import ReconciliationCoordinator
from .service import Ledger, build_store

__all__ = [
    # Records
    "ORDERS",
    "PAYMENTS",
    "ORDER_EVENTS",
    "Order",
    "OrderItem",
    "OrderEvent",
    "OrderStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",

    # State machines
    "ORDER_TRANSITIONS",
    "PAYMENT_TRANSITIONS",
    "allowed_order_transitions",
    "allowed_payment_transitions",

    # Helpers
    "calculate_order_total",
    "generate_order_number",
    "generate_reference_code",

    # Components
    "KeyedLock",
    "OrderStore",
    "PaymentStore",
    "ReconciliationCoordinator",
    "Ledger",
    "build_store",
]
