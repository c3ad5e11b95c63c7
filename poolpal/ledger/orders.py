"""
Ledger - Order Store

Owns order records, enforces the order status state machine and keeps
``total`` in step with the items. Every mutation of one order runs
under that order's key in the shared ``KeyedLock``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from ..faults import ConflictError, LedgerFault, NotFoundError, PaymentRequiredError, ValidationError
from ..store import DocumentStore
from .helpers import calculate_order_total, generate_id, generate_order_number
from .locks import KeyedLock
from .models import (
    ORDER_EVENTS,
    ORDERS,
    Order,
    OrderEvent,
    OrderItem,
    OrderStatus,
    parse_order_status,
    utcnow,
)
from .transitions import PAID_GATED_STATUSES, ensure_order_transition

logger = logging.getLogger("poolpal.ledger.orders")

ItemsInput = Iterable[Union[OrderItem, Mapping[str, Any]]]


def order_lock_key(order_id: str) -> str:
    return f"order:{order_id}"


class OrderStore:
    """
    Order lifecycle management.

    ``record_payment`` and ``revoke_payment`` are the only paths that
    touch ``isPaid``; they are driven by payment reconciliation.
    """

    def __init__(self, store: DocumentStore, locks: Optional[KeyedLock] = None):
        self.store = store
        self.locks = locks or KeyedLock()

    # ── Creation ─────────────────────────────────────────────

    async def create_order(
        self,
        items: ItemsInput,
        shipping_address: str,
        payment_method: str = "",
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
        *,
        payment_reference_code: Optional[str] = None,
    ) -> Order:
        """Create a PENDING, unpaid order. Nothing is written if validation fails."""
        order_items = self._coerce_items(items)
        if not shipping_address or not shipping_address.strip():
            raise ValidationError("Shipping address must not be blank", field="shippingAddress")

        order_id = await self._unique_id()
        now = utcnow()
        order = Order(
            id=order_id,
            order_number=generate_order_number(),
            items=order_items,
            shipping_address=shipping_address.strip(),
            payment_method=(payment_method or "").strip(),
            status=OrderStatus.PENDING,
            total=calculate_order_total(order_items),
            is_paid=False,
            user_id=user_id,
            notes=notes,
            payment_reference_code=payment_reference_code,
            checkout_reference_code=payment_reference_code,
            created_at=now,
            updated_at=now,
        )

        async with self.locks.hold(order_lock_key(order_id)):
            await self._save(order)
            await self._log_event(order.id, "order_created", None, order.status.value,
                                  details={"total": str(order.total)})

        logger.info(f"Created order {order.id} ({order.order_number}) total={order.total}")
        return order

    # ── Queries ──────────────────────────────────────────────

    async def get_order(self, order_id: str) -> Optional[Order]:
        doc = await self.store.get(ORDERS, order_id)
        return Order.from_document(doc) if doc is not None else None

    async def require_order(self, order_id: str) -> Order:
        order = await self.get_order(order_id)
        if order is None:
            raise NotFoundError("order", order_id)
        return order

    async def list_orders(
        self,
        predicate: Optional[Callable[[Order], bool]] = None,
        *,
        user_id: Optional[str] = None,
        is_paid: Optional[bool] = None,
        status: Union[str, OrderStatus, None] = None,
    ) -> List[Order]:
        """Orders matching every given filter, newest first."""
        wanted_status = parse_order_status(status) if status is not None else None

        def match(doc: Mapping[str, Any]) -> bool:
            if user_id is not None and doc.get("userId") != user_id:
                return False
            if is_paid is not None and bool(doc.get("isPaid")) != is_paid:
                return False
            if wanted_status is not None and doc.get("status") != wanted_status.value:
                return False
            return True

        docs = await self.store.list(ORDERS, match)
        orders = [Order.from_document(d) for d in docs]
        if predicate is not None:
            orders = [o for o in orders if predicate(o)]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    async def list_recent_orders(self, limit: int = 10) -> List[Order]:
        if limit < 0:
            raise ValidationError("limit must not be negative", field="limit")
        orders = await self.list_orders()
        return orders[:limit]

    async def list_order_events(self, order_id: str) -> List[OrderEvent]:
        docs = await self.store.list(ORDER_EVENTS, lambda d: d.get("orderId") == order_id)
        events = [OrderEvent.from_document(d) for d in docs]
        events.sort(key=lambda e: e.created_at)
        return events

    # ── Lifecycle ────────────────────────────────────────────

    async def set_order_status(
        self,
        order_id: str,
        new_status: Union[str, OrderStatus],
        actor: str = "admin",
    ) -> Order:
        """Transition order status with validation."""
        requested = parse_order_status(new_status)
        async with self.locks.hold(order_lock_key(order_id)):
            order = await self.require_order(order_id)
            old_status = order.status

            try:
                ensure_order_transition(old_status, requested)
                if requested in PAID_GATED_STATUSES and not order.is_paid:
                    raise PaymentRequiredError(order.id, requested.value)
            except LedgerFault as fault:
                logger.warning(f"Rejected order {order.id} transition "
                               f"{old_status.value} -> {requested.value}: {fault}")
                raise

            order.status = requested
            order.status_advanced_by_payment = False
            order.updated_at = utcnow()
            await self._save(order)
            await self._log_event(order.id, "status_changed", old_status.value, requested.value, actor=actor)

        logger.info(f"Order {order.id} status {old_status.value} -> {requested.value}")
        return order

    async def update_order_items(self, order_id: str, items: ItemsInput) -> Order:
        """Replace the items of a pending, unpaid order and recompute its total."""
        order_items = self._coerce_items(items)
        async with self.locks.hold(order_lock_key(order_id)):
            order = await self.require_order(order_id)
            if order.status != OrderStatus.PENDING or order.is_paid:
                raise ConflictError(
                    f"Items of order '{order.id}' can only change while it is pending and unpaid",
                    entity="order", record_id=order.id,
                )
            old_total = order.total
            order.items = order_items
            order.total = calculate_order_total(order_items)
            order.updated_at = utcnow()
            await self._save(order)
            await self._log_event(order.id, "items_updated", order.status.value, order.status.value,
                                  details={"oldTotal": str(old_total), "newTotal": str(order.total)})

        logger.info(f"Order {order.id} items updated, total {old_total} -> {order.total}")
        return order

    async def record_payment(self, order_id: str, payment_id: str, reference_code: str) -> Order:
        """
        Mark an order paid by ``payment_id``.

        Advances PENDING orders to PROCESSING. Idempotent: an order that
        is already paid is returned untouched.
        """
        async with self.locks.hold(order_lock_key(order_id)):
            order = await self.require_order(order_id)
            if order.is_paid:
                return order

            old_status = order.status
            order.is_paid = True
            order.payment_id = payment_id
            order.payment_reference_code = reference_code
            if order.status == OrderStatus.PENDING:
                order.status = OrderStatus.PROCESSING
                order.status_advanced_by_payment = True
            order.updated_at = utcnow()
            await self._save(order)
            await self._log_event(order.id, "payment_recorded", old_status.value, order.status.value,
                                  actor="reconciliation",
                                  details={"paymentId": payment_id, "referenceCode": reference_code})

        logger.info(f"Order {order.id} marked paid by payment {payment_id}")
        return order

    async def revoke_payment(self, order_id: str) -> Order:
        """
        Mark an order unpaid.

        A PROCESSING status that was reached only through payment
        settlement is reverted to PENDING; any other status stays.
        The reference code falls back to the one assigned at checkout.
        """
        async with self.locks.hold(order_lock_key(order_id)):
            order = await self.require_order(order_id)
            if not order.is_paid:
                return order

            old_status = order.status
            revoked_payment = order.payment_id
            order.is_paid = False
            order.payment_id = None
            order.payment_reference_code = order.checkout_reference_code
            if order.status == OrderStatus.PROCESSING and order.status_advanced_by_payment:
                order.status = OrderStatus.PENDING
            order.status_advanced_by_payment = False
            order.updated_at = utcnow()
            await self._save(order)
            await self._log_event(order.id, "payment_revoked", old_status.value, order.status.value,
                                  actor="reconciliation", details={"paymentId": revoked_payment})

        logger.info(f"Order {order.id} marked unpaid (status {old_status.value} -> {order.status.value})")
        return order

    async def delete_order(self, order_id: str) -> None:
        async with self.locks.hold(order_lock_key(order_id)):
            deleted = await self.store.delete(ORDERS, order_id)
        if not deleted:
            raise NotFoundError("order", order_id)
        logger.info(f"Deleted order {order_id}")

    # ── Internals ────────────────────────────────────────────

    @staticmethod
    def _coerce_items(items: Optional[ItemsInput]) -> List[OrderItem]:
        order_items = [OrderItem.coerce(i) for i in (items or [])]
        if not order_items:
            raise ValidationError("Order must contain at least one item", field="items")
        return order_items

    async def _unique_id(self) -> str:
        order_id = generate_id("order")
        while await self.store.get(ORDERS, order_id) is not None:
            order_id = generate_id("order")
        return order_id

    async def _save(self, order: Order) -> None:
        await self.store.put(ORDERS, order.id, order.to_document())

    async def _log_event(
        self,
        order_id: str,
        event_type: str,
        from_status: Optional[str],
        to_status: Optional[str],
        actor: str = "system",
        details: Optional[dict] = None,
    ) -> None:
        event = OrderEvent(
            id=generate_id("event"),
            order_id=order_id,
            event_type=event_type,
            from_status=from_status,
            to_status=to_status,
            actor=actor,
            details=details or {},
        )
        await self.store.put(ORDER_EVENTS, event.id, event.to_document())
