"""
PoolPal - Order and payment lifecycle ledger.

Keeps every order's paid flag and status consistent with the settlement
state of its payments, over a pluggable async document store.

Usage::

    from poolpal import Ledger

    async with Ledger() as ledger:
        order = await ledger.create_order(
            [{"id": "tabs", "name": "Chlorine tablets", "price": "10.00", "quantity": 2}],
            "12 Pool Lane",
        )
"""

from .config import ConfigLoader, LedgerConfig, configure_logging
from .faults import (
    Fault,
    ValidationError,
    NotFoundError,
    InvalidTransitionError,
    PaymentRequiredError,
    ConflictError,
    DanglingReferenceError,
)
from .ledger import (
    Ledger,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    calculate_order_total,
    generate_order_number,
    generate_reference_code,
)

__version__ = "1.0.0"

__all__ = [
    "__version__",
    # Config
    "ConfigLoader",
    "LedgerConfig",
    "configure_logging",
    # Faults
    "Fault",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "PaymentRequiredError",
    "ConflictError",
    "DanglingReferenceError",
    # Ledger
    "Ledger",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "calculate_order_total",
    "generate_order_number",
    "generate_reference_code",
]
