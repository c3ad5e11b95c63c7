"""
Ledger - Status transition tables.

Each table maps a current status to the set of statuses reachable in
one step. Statuses mapping to an empty set are terminal.
"""

from __future__ import annotations

from typing import FrozenSet, Mapping

from ..faults import InvalidTransitionError
from .models import OrderStatus, PaymentStatus


# ── Valid order status transitions ────────────────────────────
ORDER_TRANSITIONS: Mapping[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.RETURNED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED, OrderStatus.RETURNED}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}

# ── Valid payment status transitions ──────────────────────────
# FAILED -> PROCESSING is deliberately absent.
PAYMENT_TRANSITIONS: Mapping[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING, PaymentStatus.CANCELLED}),
    PaymentStatus.CANCELLED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.REFUNDED: frozenset(),
}

# Order statuses that require ``isPaid`` before an operator may enter them.
PAID_GATED_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.COMPLETED,
})

# Payment statuses after which the parent order's paid flag is re-derived.
UNSETTLING_PAYMENT_STATUSES: FrozenSet[PaymentStatus] = frozenset({
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
    PaymentStatus.REFUNDED,
})


def allowed_order_transitions(current: OrderStatus) -> FrozenSet[OrderStatus]:
    return ORDER_TRANSITIONS.get(current, frozenset())


def allowed_payment_transitions(current: PaymentStatus) -> FrozenSet[PaymentStatus]:
    return PAYMENT_TRANSITIONS.get(current, frozenset())


def is_terminal_order_status(status: OrderStatus) -> bool:
    return not allowed_order_transitions(status)


def is_terminal_payment_status(status: PaymentStatus) -> bool:
    return not allowed_payment_transitions(status)


def ensure_order_transition(current: OrderStatus, requested: OrderStatus) -> None:
    """Raise InvalidTransitionError unless ``requested`` is reachable from ``current``."""
    allowed = allowed_order_transitions(current)
    if requested not in allowed:
        raise InvalidTransitionError(
            "order", current.value, requested.value,
            allowed=tuple(sorted(s.value for s in allowed)),
        )


def ensure_payment_transition(current: PaymentStatus, requested: PaymentStatus) -> None:
    """Raise InvalidTransitionError unless ``requested`` is reachable from ``current``."""
    allowed = allowed_payment_transitions(current)
    if requested not in allowed:
        raise InvalidTransitionError(
            "payment", current.value, requested.value,
            allowed=tuple(sorted(s.value for s in allowed)),
        )
