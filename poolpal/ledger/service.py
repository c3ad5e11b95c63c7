"""
Ledger - Public facade.

``Ledger`` wires the Order Store, Payment Store and Reconciliation
Coordinator around one document store and one lock table, and exposes
the operations UI and CLI callers use.

Usage::

    async with Ledger.from_config(LedgerConfig()) as ledger:
        order = await ledger.create_order(items, "12 Pool Lane")
        payment = await ledger.create_payment(order.id, order.total, "cash")
        await ledger.set_payment_status(payment.id, "completed")
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable, List, Optional, Union

from ..cache import MemoryCache
from ..faults import ConfigError, ValidationError
from ..store import CachedDocumentStore, DocumentStore, MemoryDocumentStore, SQLiteDocumentStore
from . import helpers
from .locks import KeyedLock
from .models import Order, OrderEvent, OrderStatus, Payment, PaymentMethod, PaymentStatus, normalize_payment_method
from .orders import ItemsInput, OrderStore
from .payments import PaymentStore
from .reconciliation import ReconciliationCoordinator

logger = logging.getLogger("poolpal.ledger.service")


def build_store(config) -> DocumentStore:
    """Build the document store described by a ``LedgerConfig``."""
    if config.store_backend == "memory":
        store: DocumentStore = MemoryDocumentStore()
    elif config.store_backend == "sqlite":
        store = SQLiteDocumentStore(config.database_path)
    else:
        raise ConfigError("store_backend", f"unknown backend '{config.store_backend}'")

    if config.cache_enabled:
        cache = MemoryCache(max_size=config.cache_max_size, default_ttl=config.cache_ttl)
        store = CachedDocumentStore(store, cache)
    return store


class Ledger:
    """Order/payment ledger with payment-driven order reconciliation."""

    calculate_order_total = staticmethod(helpers.calculate_order_total)
    generate_order_number = staticmethod(helpers.generate_order_number)
    generate_reference_code = staticmethod(helpers.generate_reference_code)

    def __init__(self, store: Optional[DocumentStore] = None):
        self.store = store or MemoryDocumentStore()
        self.locks = KeyedLock()
        self.orders = OrderStore(self.store, self.locks)
        self.payments = PaymentStore(self.store, self.orders)
        self.reconciler: ReconciliationCoordinator = self.payments.reconciler

    @classmethod
    def from_config(cls, config) -> "Ledger":
        return cls(build_store(config))

    async def initialize(self) -> None:
        await self.store.initialize()
        logger.debug(f"Ledger ready on store '{self.store.name}'")

    async def shutdown(self) -> None:
        await self.store.shutdown()

    async def __aenter__(self) -> "Ledger":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    # ── Orders ───────────────────────────────────────────────

    async def create_order(
        self,
        items: ItemsInput,
        shipping_address: str,
        payment_method: str = "",
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Order:
        return await self.orders.create_order(items, shipping_address, payment_method, notes, user_id)

    async def get_order(self, order_id: str) -> Optional[Order]:
        return await self.orders.get_order(order_id)

    async def list_orders(
        self,
        predicate: Optional[Callable[[Order], bool]] = None,
        *,
        user_id: Optional[str] = None,
        is_paid: Optional[bool] = None,
        status: Union[str, OrderStatus, None] = None,
    ) -> List[Order]:
        return await self.orders.list_orders(predicate, user_id=user_id, is_paid=is_paid, status=status)

    async def list_recent_orders(self, limit: int = 10) -> List[Order]:
        return await self.orders.list_recent_orders(limit)

    async def set_order_status(
        self,
        order_id: str,
        new_status: Union[str, OrderStatus],
        actor: str = "admin",
    ) -> Order:
        return await self.orders.set_order_status(order_id, new_status, actor)

    async def update_order_items(self, order_id: str, items: ItemsInput) -> Order:
        return await self.orders.update_order_items(order_id, items)

    async def delete_order(self, order_id: str) -> None:
        await self.orders.delete_order(order_id)

    async def list_order_events(self, order_id: str) -> List[OrderEvent]:
        return await self.orders.list_order_events(order_id)

    async def create_order_with_payment(
        self,
        items: ItemsInput,
        shipping_address: str,
        payment_method: Union[str, PaymentMethod],
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
        reference_code: Optional[str] = None,
    ) -> tuple[Order, Payment]:
        """
        Create an order plus a PENDING payment for its total.

        Both records carry the same reference code: the payment as
        ``referenceCode``, the order as ``paymentReferenceCode``.
        """
        method = normalize_payment_method(payment_method)
        if items and helpers.calculate_order_total(items) <= 0:
            raise ValidationError("Order total must be greater than zero to take a payment",
                                  entity="payment", field="amount")
        if reference_code and await self.payments.find_payment_by_reference(reference_code) is not None:
            raise ValidationError(f"Reference code '{reference_code}' is already in use",
                                  entity="payment", field="referenceCode")
        code = reference_code or await self.payments.new_reference_code()
        order = await self.orders.create_order(
            items, shipping_address, method, notes, user_id,
            payment_reference_code=code,
        )
        payment = await self.payments.create_payment(
            order.id, order.total, method, notes,
            reference_code=code, user_id=user_id,
        )
        return order, payment

    # ── Payments ─────────────────────────────────────────────

    async def create_payment(
        self,
        order_id: str,
        amount: Any,
        method: Union[str, PaymentMethod],
        notes: Optional[str] = None,
        *,
        status: Union[str, PaymentStatus] = PaymentStatus.PENDING,
        user_id: Optional[str] = None,
    ) -> Payment:
        return await self.payments.create_payment(order_id, amount, method, notes, status=status, user_id=user_id)

    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        return await self.payments.get_payment(payment_id)

    async def list_payments_by_order(self, order_id: str) -> List[Payment]:
        return await self.payments.list_payments_by_order(order_id)

    async def list_payments_by_user(self, user_id: str) -> List[Payment]:
        return await self.payments.list_payments_by_user(user_id)

    async def list_all_payments(self) -> List[Payment]:
        return await self.payments.list_all_payments()

    async def find_payment_by_reference(self, reference_code: str) -> Optional[Payment]:
        return await self.payments.find_payment_by_reference(reference_code)

    async def set_payment_status(self, payment_id: str, new_status: Union[str, PaymentStatus]) -> Payment:
        return await self.payments.set_payment_status(payment_id, new_status)

    async def delete_payment(self, payment_id: str) -> None:
        await self.payments.delete_payment(payment_id)

    async def total_revenue(self) -> Decimal:
        return await self.payments.total_revenue()

    # ── Remediation ──────────────────────────────────────────

    async def reconcile_order(self, order_id: str) -> Order:
        return await self.reconciler.reconcile_order(order_id)

    async def find_inconsistencies(self) -> List[str]:
        return await self.reconciler.find_inconsistencies()

    async def find_dangling_payments(self) -> List[str]:
        return await self.reconciler.find_dangling_payments()
