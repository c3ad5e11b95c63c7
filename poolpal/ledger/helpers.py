"""
Ledger - Derived read helpers.

Pure functions, safe for callers previewing an order before submission.
"""

from __future__ import annotations

import random
import secrets
import time
from decimal import Decimal
from typing import Any, Iterable, Mapping, Union

from .models import OrderItem


def calculate_order_total(items: Iterable[Union[OrderItem, Mapping[str, Any]]]) -> Decimal:
    """Sum of ``price * quantity`` over the items."""
    total = Decimal("0")
    for item in items:
        total += OrderItem.coerce(item).line_total
    return total


def _millis() -> int:
    return int(time.time() * 1000)


def generate_order_number() -> str:
    """Human-readable order number, e.g. ``ORD-1718000000000-42``."""
    return f"ORD-{_millis()}-{random.randint(0, 999)}"


def generate_reference_code() -> str:
    """Payment reference code, e.g. ``PAY-1718000000000-007``."""
    return f"PAY-{_millis()}-{random.randint(0, 999):03d}"


def generate_id(prefix: str) -> str:
    """Opaque record id, e.g. ``order_1718000000000_3f9a1c``."""
    return f"{prefix}_{_millis()}_{secrets.token_hex(3)}"
