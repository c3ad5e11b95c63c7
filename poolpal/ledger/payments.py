"""
Ledger - Payment Store

Owns payment records, enforces the payment status state machine and
generates reference codes. Every accepted status change is handed to
the ReconciliationCoordinator so the parent order's ``isPaid`` keeps
tracking payment completion.

Payment writes are serialized on the parent order's lock key, since
any of them may end up writing the order.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, List, Optional, Union

from ..faults import ConflictError, LedgerFault, NotFoundError, ValidationError
from ..store import DocumentStore
from .helpers import generate_id, generate_reference_code
from .models import (
    PAYMENTS,
    Payment,
    PaymentMethod,
    PaymentStatus,
    normalize_payment_method,
    parse_payment_status,
    to_money,
    utcnow,
)
from .orders import OrderStore, order_lock_key
from .reconciliation import ReconciliationCoordinator
from .transitions import ensure_payment_transition

logger = logging.getLogger("poolpal.ledger.payments")

# Statuses a payment may be created in.
INITIAL_PAYMENT_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.COMPLETED})


class PaymentStore:
    """Payment lifecycle management."""

    def __init__(
        self,
        store: DocumentStore,
        orders: OrderStore,
        reconciler: Optional[ReconciliationCoordinator] = None,
    ):
        self.store = store
        self.orders = orders
        self.locks = orders.locks
        self.reconciler = reconciler or ReconciliationCoordinator(orders, self)

    # ── Creation ─────────────────────────────────────────────

    async def create_payment(
        self,
        order_id: str,
        amount: Any,
        method: Union[str, PaymentMethod],
        notes: Optional[str] = None,
        *,
        status: Union[str, PaymentStatus] = PaymentStatus.PENDING,
        reference_code: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Payment:
        """
        Create a payment against an existing, unpaid order.

        A payment created directly in COMPLETED (an instantly settled
        administrative record) marks its order paid before returning.
        """
        value = to_money(amount, field_name="amount", entity="payment")
        if value <= 0:
            raise ValidationError("Payment amount must be greater than zero", entity="payment", field="amount")
        payment_method = normalize_payment_method(method)
        initial = parse_payment_status(status)
        if initial not in INITIAL_PAYMENT_STATUSES:
            raise ValidationError(
                f"Payments can only be created as pending or completed, not '{initial.value}'",
                entity="payment", field="status",
            )

        async with self.locks.hold(order_lock_key(order_id)):
            order = await self.orders.get_order(order_id)
            if order is None:
                raise ValidationError(f"Order '{order_id}' does not exist", entity="payment", field="orderId")
            if order.is_paid:
                raise ValidationError(f"Order '{order_id}' has already been paid", entity="payment",
                                      field="orderId")

            if reference_code:
                if await self.find_payment_by_reference(reference_code) is not None:
                    raise ValidationError(f"Reference code '{reference_code}' is already in use",
                                          entity="payment", field="referenceCode")
            else:
                reference_code = await self.new_reference_code()

            now = utcnow()
            payment = Payment(
                id=await self._unique_id(),
                order_id=order_id,
                amount=value,
                reference_code=reference_code,
                payment_method=payment_method,
                status=initial,
                user_id=user_id or order.user_id,
                notes=notes,
                created_at=now,
                updated_at=now,
                completed_at=now if initial == PaymentStatus.COMPLETED else None,
            )
            await self._save(payment)
            logger.info(f"Created payment {payment.id} ({payment.reference_code}) "
                        f"for order {order_id}: {payment.amount} [{payment.status.value}]")

            if initial == PaymentStatus.COMPLETED:
                await self.reconciler.payment_status_changed(payment, None)

        return payment

    # ── Queries ──────────────────────────────────────────────

    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        doc = await self.store.get(PAYMENTS, payment_id)
        return Payment.from_document(doc) if doc is not None else None

    async def require_payment(self, payment_id: str) -> Payment:
        payment = await self.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("payment", payment_id)
        return payment

    async def list_payments_by_order(self, order_id: str) -> List[Payment]:
        return await self._list(lambda d: d.get("orderId") == order_id)

    async def list_payments_by_user(self, user_id: str) -> List[Payment]:
        return await self._list(lambda d: d.get("userId") == user_id)

    async def list_all_payments(self) -> List[Payment]:
        return await self._list()

    async def find_payment_by_reference(self, reference_code: str) -> Optional[Payment]:
        matches = await self._list(lambda d: d.get("referenceCode") == reference_code)
        return matches[0] if matches else None

    async def total_revenue(self) -> Decimal:
        """Sum of amounts over COMPLETED payments, recomputed on every call."""
        completed = await self._list(lambda d: d.get("status") == PaymentStatus.COMPLETED.value)
        return sum((p.amount for p in completed), Decimal("0"))

    # ── Lifecycle ────────────────────────────────────────────

    async def set_payment_status(
        self,
        payment_id: str,
        new_status: Union[str, PaymentStatus],
    ) -> Payment:
        """
        Transition payment status, then reconcile the parent order.

        The payment write is committed before reconciliation runs; a
        DanglingReferenceError raised by reconciliation leaves it in
        place.
        """
        requested = parse_payment_status(new_status)
        current = await self.require_payment(payment_id)

        async with self.locks.hold(order_lock_key(current.order_id)):
            payment = await self.require_payment(payment_id)
            previous = payment.status

            try:
                ensure_payment_transition(previous, requested)
                if requested == PaymentStatus.COMPLETED:
                    await self._ensure_no_other_completed(payment)
            except LedgerFault as fault:
                logger.warning(f"Rejected payment {payment.id} transition "
                               f"{previous.value} -> {requested.value}: {fault}")
                raise

            now = utcnow()
            payment.status = requested
            payment.updated_at = now
            if requested == PaymentStatus.COMPLETED and payment.completed_at is None:
                payment.completed_at = now
            await self._save(payment)
            logger.info(f"Payment {payment.id} status {previous.value} -> {requested.value}")

            await self.reconciler.payment_status_changed(payment, previous)

        return payment

    async def delete_payment(self, payment_id: str) -> None:
        """Delete a payment. Completed payments are immutable."""
        current = await self.require_payment(payment_id)
        async with self.locks.hold(order_lock_key(current.order_id)):
            payment = await self.require_payment(payment_id)
            if payment.status == PaymentStatus.COMPLETED:
                raise ConflictError(f"Completed payment '{payment.id}' cannot be deleted",
                                    entity="payment", record_id=payment.id)
            await self.store.delete(PAYMENTS, payment.id)
        logger.info(f"Deleted payment {payment_id}")

    # ── Internals ────────────────────────────────────────────

    async def _ensure_no_other_completed(self, payment: Payment) -> None:
        for other in await self.list_payments_by_order(payment.order_id):
            if other.id != payment.id and other.status == PaymentStatus.COMPLETED:
                raise ConflictError(
                    f"Order '{payment.order_id}' is already settled by payment '{other.id}'",
                    entity="payment", record_id=payment.id,
                )

    async def _list(self, predicate=None) -> List[Payment]:
        docs = await self.store.list(PAYMENTS, predicate)
        payments = [Payment.from_document(d) for d in docs]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments

    async def _unique_id(self) -> str:
        payment_id = generate_id("payment")
        while await self.store.get(PAYMENTS, payment_id) is not None:
            payment_id = generate_id("payment")
        return payment_id

    async def new_reference_code(self) -> str:
        code = generate_reference_code()
        while await self.find_payment_by_reference(code) is not None:
            code = generate_reference_code()
        return code

    async def _save(self, payment: Payment) -> None:
        await self.store.put(PAYMENTS, payment.id, payment.to_document())
