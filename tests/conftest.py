"""
Shared test fixtures and helpers for the PoolPal test suite.
"""

import asyncio
from decimal import Decimal
from typing import Any, Dict, List

import pytest
import pytest_asyncio

from poolpal.cache import MemoryCache
from poolpal.ledger import Ledger
from poolpal.store import CachedDocumentStore, MemoryDocumentStore, SQLiteDocumentStore


# ============================================================================
# Item Helpers
# ============================================================================


def make_item(product_id: str = "tabs", name: str = "Chlorine tablets",
              price: str = "10.00", quantity: int = 1, **extra: Any) -> Dict[str, Any]:
    """Build an order item mapping as a UI form would submit it."""
    return {"id": product_id, "name": name, "price": price, "quantity": quantity, **extra}


def pool_items() -> List[Dict[str, Any]]:
    """$10 x 2 + $5 x 1 = $25."""
    return [
        make_item("tabs", "Chlorine tablets", "10.00", 2),
        make_item("net", "Leaf net", "5.00", 1),
    ]


POOL_TOTAL = Decimal("25.00")


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def memory_store():
    return MemoryDocumentStore()


@pytest_asyncio.fixture
async def sqlite_store(tmp_path):
    store = SQLiteDocumentStore(str(tmp_path / "poolpal-test.db"))
    await store.initialize()
    yield store
    await store.shutdown()


@pytest_asyncio.fixture
async def ledger(memory_store):
    async with Ledger(memory_store) as ledger:
        yield ledger


@pytest_asyncio.fixture
async def cached_ledger():
    store = CachedDocumentStore(MemoryDocumentStore(), MemoryCache(max_size=100, default_ttl=120))
    async with Ledger(store) as ledger:
        yield ledger


@pytest_asyncio.fixture
async def sqlite_ledger(tmp_path):
    store = CachedDocumentStore(SQLiteDocumentStore(str(tmp_path / "ledger.db")))
    async with Ledger(store) as ledger:
        yield ledger


@pytest_asyncio.fixture
async def order(ledger):
    """A pending, unpaid $25 order."""
    return await ledger.create_order(pool_items(), "12 Pool Lane", "credit_card", user_id="user_1")


@pytest_asyncio.fixture
async def paid_order(ledger, order):
    """The $25 order, settled by one completed payment."""
    payment = await ledger.create_payment(order.id, order.total, "credit_card")
    await ledger.set_payment_status(payment.id, "completed")
    return await ledger.get_order(order.id)


class SlowReadStore(MemoryDocumentStore):
    """
    Memory store whose next read parks after fetching, until released.

    ``arm()`` makes the next ``get``/``list`` take its snapshot, set
    ``reading`` and wait for ``release`` before returning it.
    """

    def __init__(self):
        super().__init__()
        self.reading = asyncio.Event()
        self.release = asyncio.Event()
        self._armed = False

    def arm(self) -> None:
        self._armed = True
        self.reading.clear()
        self.release.clear()

    async def _park(self) -> None:
        if self._armed:
            self._armed = False
            self.reading.set()
            await self.release.wait()

    async def get(self, collection, doc_id):
        doc = await super().get(collection, doc_id)
        await self._park()
        return doc

    async def list(self, collection, predicate=None):
        docs = await super().list(collection, predicate)
        await self._park()
        return docs
