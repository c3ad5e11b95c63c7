"""
Ledger - Models

Order, payment and order-event records plus their status enums.
Records are plain dataclasses; ``to_document``/``from_document`` map
them to the camelCase documents kept in the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from ..faults import ValidationError


ORDERS = "orders"
PAYMENTS = "payments"
ORDER_EVENTS = "orderEvents"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    RETURNED = "returned"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    OTHER = "other"


# ── Coercion helpers ─────────────────────────────────────────────

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_money(value: Any, *, field_name: str, entity: str = "order") -> Decimal:
    """Parse a monetary value into a finite Decimal."""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number", entity=entity, field=field_name)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field_name} must be a number, got {value!r}", entity=entity, field=field_name)
    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be finite", entity=entity, field=field_name)
    return amount


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def parse_order_status(value: Union[str, OrderStatus]) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        choices = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Unknown order status {value!r} (expected one of: {choices})",
                              entity="order", field="status")


def parse_payment_status(value: Union[str, PaymentStatus]) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError:
        choices = ", ".join(s.value for s in PaymentStatus)
        raise ValidationError(f"Unknown payment status {value!r} (expected one of: {choices})",
                              entity="payment", field="status")


def normalize_payment_method(value: Union[str, PaymentMethod, None]) -> str:
    """Known methods map to their enum value; other non-blank strings pass through."""
    if isinstance(value, PaymentMethod):
        return value.value
    text = (value or "").strip()
    if not text:
        raise ValidationError("paymentMethod must not be blank", entity="payment", field="paymentMethod")
    key = text.lower().replace(" ", "_").replace("-", "_")
    try:
        return PaymentMethod(key).value
    except ValueError:
        return text


# ── Records ──────────────────────────────────────────────────────

@dataclass
class OrderItem:
    """A product line inside an order."""
    product_id: str
    name: str
    price: Decimal
    quantity: int
    category: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    @classmethod
    def coerce(cls, value: Union["OrderItem", Mapping[str, Any]]) -> "OrderItem":
        """Build an item from an OrderItem or a plain mapping, validating it."""
        if isinstance(value, OrderItem):
            data = value.to_document()
        elif isinstance(value, Mapping):
            data = dict(value)
        else:
            raise ValidationError(f"Order item must be a mapping, got {type(value).__name__}",
                                  field="items")

        product_id = data.get("id") or data.get("productId") or data.get("product_id")
        name = (data.get("name") or "").strip()
        if not product_id:
            raise ValidationError("Order item is missing a product id", field="items")
        if not name:
            raise ValidationError(f"Order item '{product_id}' is missing a name", field="items")

        price = to_money(data.get("price"), field_name="price")
        if price < 0:
            raise ValidationError(f"Order item '{product_id}' has a negative price", field="price")

        quantity = data.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            try:
                quantity = int(str(quantity))
            except ValueError:
                raise ValidationError(f"Order item '{product_id}' quantity must be an integer",
                                      field="quantity")
        if quantity < 1:
            raise ValidationError(f"Order item '{product_id}' quantity must be at least 1",
                                  field="quantity")

        return cls(
            product_id=str(product_id),
            name=name,
            price=price,
            quantity=quantity,
            category=data.get("category"),
            image_url=data.get("imageUrl") or data.get("image_url"),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.product_id,
            "name": self.name,
            "price": str(self.price),
            "quantity": self.quantity,
            "category": self.category,
            "imageUrl": self.image_url,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "OrderItem":
        return cls(
            product_id=doc["id"],
            name=doc["name"],
            price=Decimal(doc["price"]),
            quantity=int(doc["quantity"]),
            category=doc.get("category"),
            image_url=doc.get("imageUrl"),
        )


@dataclass
class Order:
    """
    Customer purchase record.

    ``total`` is stored redundantly; ``calculate_order_total(items)`` is
    the source of truth. ``status_advanced_by_payment`` marks a
    PENDING -> PROCESSING move made by payment settlement rather than
    by an operator. ``checkout_reference_code`` is the reference assigned
    when the order was created together with its payment; an unpaid order
    shows it (or nothing) as ``payment_reference_code``.
    """
    id: str
    order_number: str
    items: List[OrderItem]
    shipping_address: str
    payment_method: str = ""
    status: OrderStatus = OrderStatus.PENDING
    total: Decimal = Decimal("0")
    is_paid: bool = False
    user_id: Optional[str] = None
    notes: Optional[str] = None
    payment_id: Optional[str] = None
    payment_reference_code: Optional[str] = None
    checkout_reference_code: Optional[str] = None
    status_advanced_by_payment: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "items": [item.to_document() for item in self.items],
            "shippingAddress": self.shipping_address,
            "paymentMethod": self.payment_method,
            "status": self.status.value,
            "total": str(self.total),
            "isPaid": self.is_paid,
            "userId": self.user_id,
            "notes": self.notes,
            "paymentId": self.payment_id,
            "paymentReferenceCode": self.payment_reference_code,
            "checkoutReferenceCode": self.checkout_reference_code,
            "statusAdvancedByPayment": self.status_advanced_by_payment,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Order":
        return cls(
            id=doc["id"],
            order_number=doc["orderNumber"],
            items=[OrderItem.from_document(i) for i in doc.get("items", [])],
            shipping_address=doc.get("shippingAddress", ""),
            payment_method=doc.get("paymentMethod", ""),
            status=OrderStatus(doc["status"]),
            total=Decimal(doc.get("total", "0")),
            is_paid=bool(doc.get("isPaid", False)),
            user_id=doc.get("userId"),
            notes=doc.get("notes"),
            payment_id=doc.get("paymentId"),
            payment_reference_code=doc.get("paymentReferenceCode"),
            checkout_reference_code=doc.get("checkoutReferenceCode"),
            status_advanced_by_payment=bool(doc.get("statusAdvancedByPayment", False)),
            created_at=_parse_dt(doc.get("createdAt")) or utcnow(),
            updated_at=_parse_dt(doc.get("updatedAt")) or utcnow(),
        )


@dataclass
class Payment:
    """Funds received or expected against one order."""
    id: str
    order_id: str
    amount: Decimal
    reference_code: str
    payment_method: str
    status: PaymentStatus = PaymentStatus.PENDING
    user_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "amount": str(self.amount),
            "referenceCode": self.reference_code,
            "paymentMethod": self.payment_method,
            "status": self.status.value,
            "userId": self.user_id,
            "notes": self.notes,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "completedAt": _iso(self.completed_at),
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Payment":
        return cls(
            id=doc["id"],
            order_id=doc["orderId"],
            amount=Decimal(doc["amount"]),
            reference_code=doc["referenceCode"],
            payment_method=doc.get("paymentMethod", ""),
            status=PaymentStatus(doc["status"]),
            user_id=doc.get("userId"),
            notes=doc.get("notes"),
            created_at=_parse_dt(doc.get("createdAt")) or utcnow(),
            updated_at=_parse_dt(doc.get("updatedAt")) or utcnow(),
            completed_at=_parse_dt(doc.get("completedAt")),
        )


@dataclass
class OrderEvent:
    """Audit record of something that happened to an order."""
    id: str
    order_id: str
    event_type: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    actor: str = "system"
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "eventType": self.event_type,
            "fromStatus": self.from_status,
            "toStatus": self.to_status,
            "actor": self.actor,
            "details": self.details,
            "createdAt": _iso(self.created_at),
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "OrderEvent":
        return cls(
            id=doc["id"],
            order_id=doc["orderId"],
            event_type=doc["eventType"],
            from_status=doc.get("fromStatus"),
            to_status=doc.get("toStatus"),
            actor=doc.get("actor", "system"),
            details=doc.get("details") or {},
            created_at=_parse_dt(doc.get("createdAt")) or utcnow(),
        )
