"""
Ledger - Reconciliation Coordinator

Keeps ``Order.isPaid`` / ``Order.status`` in step with payment
completion:

1. Payment enters COMPLETED: the parent order is marked paid (and
   advanced PENDING -> PROCESSING) unless it already is.
2. Payment enters FAILED, CANCELLED or REFUNDED: if no payment of the
   order remains COMPLETED, the order is marked unpaid and a
   payment-driven PROCESSING is reverted to PENDING.

Both steps check the order's current ``isPaid`` before writing, so
replaying a transition never writes the order twice. A missing parent
order raises DanglingReferenceError; the payment write that triggered
reconciliation is not rolled back.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional

from ..faults import DanglingReferenceError
from .models import Order, Payment, PaymentStatus
from .orders import OrderStore, order_lock_key
from .transitions import UNSETTLING_PAYMENT_STATUSES

if TYPE_CHECKING:
    from .payments import PaymentStore

logger = logging.getLogger("poolpal.ledger.reconciliation")


class ReconciliationCoordinator:

    def __init__(self, orders: OrderStore, payments: "PaymentStore"):
        self.orders = orders
        self.payments = payments

    async def payment_status_changed(
        self,
        payment: Payment,
        previous: Optional[PaymentStatus] = None,
    ) -> Optional[Order]:
        """Apply the order-side consequence of ``payment`` reaching its current status."""
        if payment.status == PaymentStatus.COMPLETED:
            return await self.settle(payment)
        if payment.status in UNSETTLING_PAYMENT_STATUSES:
            return await self.unsettle(payment)
        return None

    async def settle(self, payment: Payment) -> Order:
        order = await self._parent_order(payment)
        if order.is_paid:
            logger.debug(f"Order {order.id} already paid; payment {payment.id} needs no reconciliation")
            return order
        return await self.orders.record_payment(order.id, payment.id, payment.reference_code)

    async def unsettle(self, payment: Payment) -> Order:
        order = await self._parent_order(payment)
        if not order.is_paid:
            return order

        siblings = await self.payments.list_payments_by_order(order.id)
        covering = [p for p in siblings if p.status == PaymentStatus.COMPLETED]
        if covering:
            logger.debug(f"Order {order.id} stays paid; covered by payment {covering[0].id}")
            return order
        return await self.orders.revoke_payment(order.id)

    # ── Operator remediation ─────────────────────────────────

    async def reconcile_order(self, order_id: str) -> Order:
        """Re-derive ``isPaid`` for one order from its payments and repair drift."""
        async with self.orders.locks.hold(order_lock_key(order_id)):
            order = await self.orders.require_order(order_id)
            payments = await self.payments.list_payments_by_order(order_id)
            completed = sorted(
                (p for p in payments if p.status == PaymentStatus.COMPLETED),
                key=lambda p: p.completed_at or p.created_at,
            )

            if completed and not order.is_paid:
                logger.warning(f"Order {order_id} was unpaid despite completed payment {completed[0].id}")
                return await self.orders.record_payment(order_id, completed[0].id, completed[0].reference_code)
            if not completed and order.is_paid:
                logger.warning(f"Order {order_id} was paid without a completed payment")
                return await self.orders.revoke_payment(order_id)
            return order

    async def find_inconsistencies(self) -> List[str]:
        """Ids of orders whose ``isPaid`` disagrees with their payments."""
        settled = {
            p.order_id
            for p in await self.payments.list_all_payments()
            if p.status == PaymentStatus.COMPLETED
        }
        orders = await self.orders.list_orders()
        return [o.id for o in orders if o.is_paid != (o.id in settled)]

    async def find_dangling_payments(self) -> List[str]:
        """Ids of payments whose order no longer exists."""
        order_ids = {o.id for o in await self.orders.list_orders()}
        return [p.id for p in await self.payments.list_all_payments() if p.order_id not in order_ids]

    # ── Internals ────────────────────────────────────────────

    async def _parent_order(self, payment: Payment) -> Order:
        order = await self.orders.get_order(payment.order_id)
        if order is None:
            fault = DanglingReferenceError(payment.id, payment.order_id)
            logger.error(f"{fault} (payment status {payment.status.value} kept)")
            raise fault
        return order
