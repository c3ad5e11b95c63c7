"""
Tests for payment-driven order reconciliation.

Covers:
- Paid flag tracks completed payments after every payment transition
- Idempotence of settlement
- Reverting payment-driven progress, keeping operator progress
- Dangling references (payment write kept, fault raised)
- Operator remediation: reconcile_order, find_inconsistencies
- The same guarantees over the cached and SQLite stores
- Concurrent transitions on one order
"""

import asyncio
from decimal import Decimal

import pytest

from poolpal.faults import DanglingReferenceError, InvalidTransitionError, ValidationError
from poolpal.ledger import ORDERS, Ledger, OrderStatus, PaymentStatus
from poolpal.store import CachedDocumentStore

from tests.conftest import POOL_TOTAL, SlowReadStore, make_item, pool_items


async def assert_paid_flags_consistent(ledger):
    """Every order is paid exactly when one of its payments is completed."""
    settled = {p.order_id for p in await ledger.list_all_payments() if p.status == PaymentStatus.COMPLETED}
    for order in await ledger.list_orders():
        assert order.is_paid == (order.id in settled), order.id
    assert await ledger.find_inconsistencies() == []


# ============================================================================
# Scenarios
# ============================================================================


class TestReconciliationScenarios:

    @pytest.mark.asyncio
    async def test_happy_path(self, ledger):
        order = await ledger.create_order(pool_items(), "12 Pool Lane", "credit_card")
        assert order.total == Decimal("25.00")

        payment = await ledger.create_payment(order.id, "25.00", "credit_card")
        payment = await ledger.set_payment_status(payment.id, PaymentStatus.COMPLETED)

        settled = await ledger.get_order(order.id)
        assert settled.is_paid is True
        assert settled.status == OrderStatus.PROCESSING
        assert settled.payment_id == payment.id
        assert settled.payment_reference_code == payment.reference_code
        assert payment.completed_at is not None
        await assert_paid_flags_consistent(ledger)

    @pytest.mark.asyncio
    async def test_failed_second_payment_keeps_order_paid(self, ledger, order):
        first = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        second = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        await ledger.set_payment_status(first.id, "completed")

        await ledger.set_payment_status(second.id, "failed")

        assert (await ledger.get_order(order.id)).is_paid is True
        await assert_paid_flags_consistent(ledger)

    @pytest.mark.asyncio
    async def test_refunded_payment_is_terminal(self, ledger, order):
        payment = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        await ledger.set_payment_status(payment.id, "completed")
        await ledger.set_payment_status(payment.id, "refunded")

        for status in PaymentStatus:
            with pytest.raises(InvalidTransitionError):
                await ledger.set_payment_status(payment.id, status)

    @pytest.mark.asyncio
    async def test_deletion_guard(self, ledger, order):
        from poolpal.faults import ConflictError

        completed = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        pending = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        await ledger.set_payment_status(completed.id, "completed")

        with pytest.raises(ConflictError):
            await ledger.delete_payment(completed.id)
        await ledger.delete_payment(pending.id)
        assert [p.id for p in await ledger.list_payments_by_order(order.id)] == [completed.id]


# ============================================================================
# Settlement
# ============================================================================


class TestSettlement:

    @pytest.mark.asyncio
    async def test_repeat_completion_is_rejected_without_side_effects(self, ledger, order):
        payment = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        completed = await ledger.set_payment_status(payment.id, "completed")
        events_before = await ledger.list_order_events(order.id)
        revenue_before = await ledger.total_revenue()

        with pytest.raises(InvalidTransitionError):
            await ledger.set_payment_status(payment.id, "completed")

        assert (await ledger.get_payment(payment.id)).completed_at == completed.completed_at
        assert await ledger.list_order_events(order.id) == events_before
        assert await ledger.total_revenue() == revenue_before

    @pytest.mark.asyncio
    async def test_record_payment_is_idempotent(self, ledger, paid_order):
        again = await ledger.orders.record_payment(paid_order.id, "payment_other", "PAY-0-000")
        assert again.payment_id == paid_order.payment_id
        assert again == paid_order

    @pytest.mark.asyncio
    async def test_completion_on_cancelled_order_marks_paid_without_status_change(self, ledger, order):
        payment = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        await ledger.set_order_status(order.id, "cancelled")
        await ledger.set_payment_status(payment.id, "completed")

        updated = await ledger.get_order(order.id)
        assert updated.is_paid is True
        assert updated.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_events_record_settlement(self, ledger, paid_order):
        events = await ledger.list_order_events(paid_order.id)
        recorded = [e for e in events if e.event_type == "payment_recorded"]
        assert len(recorded) == 1
        assert recorded[0].from_status == "pending"
        assert recorded[0].to_status == "processing"
        assert recorded[0].actor == "reconciliation"


# ============================================================================
# Unsettlement
# ============================================================================


class TestUnsettlement:

    @pytest.mark.asyncio
    async def test_refund_reverts_payment_driven_processing(self, ledger, order):
        payment = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        await ledger.set_payment_status(payment.id, "completed")
        await ledger.set_payment_status(payment.id, "refunded")

        updated = await ledger.get_order(order.id)
        assert updated.is_paid is False
        assert updated.status == OrderStatus.PENDING
        assert updated.payment_id is None
        assert updated.payment_reference_code is None
        await assert_paid_flags_consistent(ledger)

    @pytest.mark.asyncio
    async def test_refund_restores_checkout_reference(self, ledger):
        order, checkout = await ledger.create_order_with_payment(
            pool_items(), "12 Pool Lane", "cash", reference_code="PAY-1-001",
        )
        await ledger.set_payment_status(checkout.id, "cancelled")
        other = await ledger.create_payment(order.id, POOL_TOTAL, "bank_transfer")
        await ledger.set_payment_status(other.id, "completed")
        assert (await ledger.get_order(order.id)).payment_reference_code == other.reference_code

        await ledger.set_payment_status(other.id, "refunded")
        updated = await ledger.get_order(order.id)
        assert updated.payment_reference_code == "PAY-1-001"
        assert updated.checkout_reference_code == "PAY-1-001"

    @pytest.mark.asyncio
    async def test_refund_keeps_operator_progress(self, ledger, order):
        payment = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        await ledger.set_payment_status(payment.id, "completed")
        await ledger.set_order_status(order.id, "shipped")
        await ledger.set_payment_status(payment.id, "refunded")

        updated = await ledger.get_order(order.id)
        assert updated.is_paid is False
        assert updated.status == OrderStatus.SHIPPED

    @pytest.mark.asyncio
    async def test_failure_of_unsettled_payment_is_a_no_op(self, ledger, order):
        payment = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        events_before = await ledger.list_order_events(order.id)
        await ledger.set_payment_status(payment.id, "failed")
        await ledger.set_payment_status(payment.id, "cancelled")

        assert await ledger.list_order_events(order.id) == events_before
        assert (await ledger.get_order(order.id)).is_paid is False

    @pytest.mark.asyncio
    async def test_resettle_after_refund_of_another_payment(self, ledger, order):
        first = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        await ledger.set_payment_status(first.id, "completed")
        await ledger.set_payment_status(first.id, "refunded")

        second = await ledger.create_payment(order.id, POOL_TOTAL, "paypal")
        await ledger.set_payment_status(second.id, "completed")

        updated = await ledger.get_order(order.id)
        assert updated.is_paid is True
        assert updated.payment_id == second.id
        await assert_paid_flags_consistent(ledger)


# ============================================================================
# Dangling References
# ============================================================================


class TestDanglingReferences:

    @pytest.mark.asyncio
    async def test_payment_write_survives_missing_order(self, ledger, order):
        payment = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        await ledger.delete_order(order.id)

        with pytest.raises(DanglingReferenceError) as exc_info:
            await ledger.set_payment_status(payment.id, "completed")

        assert exc_info.value.order_id == order.id
        assert (await ledger.get_payment(payment.id)).status == PaymentStatus.COMPLETED
        assert await ledger.find_dangling_payments() == [payment.id]

    @pytest.mark.asyncio
    async def test_dangling_logged_at_error(self, ledger, order, caplog):
        payment = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        await ledger.delete_order(order.id)

        with caplog.at_level("ERROR", logger="poolpal.ledger.reconciliation"):
            with pytest.raises(DanglingReferenceError):
                await ledger.set_payment_status(payment.id, "failed")
        assert any("DANGLING_REFERENCE" in r.getMessage() for r in caplog.records)


# ============================================================================
# Operator Remediation
# ============================================================================


class TestRemediation:

    @pytest.mark.asyncio
    async def test_detects_and_repairs_unpaid_drift(self, ledger, order):
        payment = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        await ledger.set_payment_status(payment.id, "completed")
        doc = await ledger.store.get(ORDERS, order.id)
        await ledger.store.put(ORDERS, order.id, {**doc, "isPaid": False, "status": "pending"})

        assert await ledger.find_inconsistencies() == [order.id]
        repaired = await ledger.reconcile_order(order.id)
        assert repaired.is_paid is True
        assert repaired.status == OrderStatus.PROCESSING
        assert await ledger.find_inconsistencies() == []

    @pytest.mark.asyncio
    async def test_detects_and_repairs_paid_drift(self, ledger, order):
        await ledger.store.put(ORDERS, order.id, {"isPaid": True}, merge=True)

        assert await ledger.find_inconsistencies() == [order.id]
        repaired = await ledger.reconcile_order(order.id)
        assert repaired.is_paid is False
        assert await ledger.find_inconsistencies() == []

    @pytest.mark.asyncio
    async def test_consistent_order_untouched(self, ledger, paid_order):
        assert await ledger.reconcile_order(paid_order.id) == paid_order


# ============================================================================
# Store Variants & Concurrency
# ============================================================================


class TestAcrossStores:

    @pytest.mark.asyncio
    async def test_cached_readers_see_settlement(self, cached_ledger):
        order = await cached_ledger.create_order(pool_items(), "12 Pool Lane")
        assert (await cached_ledger.get_order(order.id)).is_paid is False
        assert len(await cached_ledger.list_orders(is_paid=False)) == 1

        payment = await cached_ledger.create_payment(order.id, POOL_TOTAL, "cash")
        await cached_ledger.set_payment_status(payment.id, "completed")

        assert (await cached_ledger.get_order(order.id)).is_paid is True
        assert await cached_ledger.list_orders(is_paid=False) == []
        await cached_ledger.set_payment_status(payment.id, "refunded")
        assert (await cached_ledger.get_order(order.id)).is_paid is False
        await assert_paid_flags_consistent(cached_ledger)

    @pytest.mark.asyncio
    async def test_reader_racing_settlement_does_not_cache_unpaid_order(self):
        inner = SlowReadStore()
        store = CachedDocumentStore(inner)
        async with Ledger(store) as ledger:
            order = await ledger.create_order(pool_items(), "12 Pool Lane", "cash")
            payment = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
            await store.invalidate(ORDERS)

            inner.arm()
            reader = asyncio.create_task(ledger.get_order(order.id))
            await inner.reading.wait()
            await ledger.set_payment_status(payment.id, "completed")
            inner.release.set()
            assert (await reader).is_paid is False

            assert (await ledger.get_order(order.id)).is_paid is True
            shipped = await ledger.set_order_status(order.id, "shipped")
            assert shipped.status == OrderStatus.SHIPPED
            with pytest.raises(ValidationError):
                await ledger.create_payment(order.id, POOL_TOTAL, "cash")

    @pytest.mark.asyncio
    async def test_sqlite_lifecycle(self, sqlite_ledger):
        order = await sqlite_ledger.create_order(pool_items(), "12 Pool Lane", "cash", user_id="user_1")
        payment = await sqlite_ledger.create_payment(order.id, order.total, "cash")
        await sqlite_ledger.set_payment_status(payment.id, "completed")
        await sqlite_ledger.set_order_status(order.id, "shipped")

        stored = await sqlite_ledger.get_order(order.id)
        assert stored.is_paid is True
        assert stored.status == OrderStatus.SHIPPED
        assert stored.total == POOL_TOTAL
        assert await sqlite_ledger.total_revenue() == POOL_TOTAL
        await assert_paid_flags_consistent(sqlite_ledger)


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_racing_completions_settle_once(self, ledger, order):
        first = await ledger.create_payment(order.id, POOL_TOTAL, "cash")
        second = await ledger.create_payment(order.id, POOL_TOTAL, "cash")

        results = await asyncio.gather(
            ledger.set_payment_status(first.id, "completed"),
            ledger.set_payment_status(second.id, "completed"),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        completed = [p for p in await ledger.list_payments_by_order(order.id)
                     if p.status == PaymentStatus.COMPLETED]
        assert len(completed) == 1
        assert await ledger.total_revenue() == POOL_TOTAL
        await assert_paid_flags_consistent(ledger)

    @pytest.mark.asyncio
    async def test_racing_status_changes_respect_table(self, ledger, order):
        results = await asyncio.gather(
            ledger.set_order_status(order.id, "cancelled"),
            ledger.set_order_status(order.id, "cancelled"),
            return_exceptions=True,
        )
        assert sum(isinstance(r, InvalidTransitionError) for r in results) == 1

    @pytest.mark.asyncio
    async def test_many_orders_in_parallel(self, ledger):
        orders = await asyncio.gather(*[
            ledger.create_order([make_item(price="4.00", quantity=n + 1)], f"{n} Pool Lane")
            for n in range(10)
        ])
        payments = await asyncio.gather(*[
            ledger.create_payment(o.id, o.total, "cash") for o in orders
        ])
        await asyncio.gather(*[
            ledger.set_payment_status(p.id, "completed") for p in payments
        ])
        assert await ledger.total_revenue() == sum((o.total for o in orders), Decimal("0"))
        await assert_paid_flags_consistent(ledger)
