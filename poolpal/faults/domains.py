"""
PoolPal Faults - Domain-specific fault types.

Provides concrete fault classes for:
- CONFIG faults
- LEDGER faults (orders, payments, reconciliation)
- STORE faults
"""

from typing import Any, Optional
from .core import Fault, FaultDomain, Severity


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigError(Fault):
    """Raised when configuration validation fails."""

    def __init__(self, key: str, reason: str):
        super().__init__(
            code="CONFIG_INVALID",
            message=f"Invalid configuration for '{key}': {reason}",
            domain=FaultDomain.CONFIG,
            metadata={"key": key, "reason": reason},
        )


# ============================================================================
# LEDGER Faults
# ============================================================================

_ENTITY_DOMAINS = {
    "order": FaultDomain.ORDERS,
    "payment": FaultDomain.PAYMENTS,
}


class LedgerFault(Fault):
    """Base class for order/payment ledger faults."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        entity: str = "order",
        severity: Optional[Severity] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.entity = entity
        super().__init__(
            code=code,
            message=message,
            domain=_ENTITY_DOMAINS.get(entity, FaultDomain.ORDERS),
            severity=severity,
            retryable=False,
            public=True,
            metadata={"entity": entity, **(metadata or {})},
        )


class ValidationError(LedgerFault):
    """Malformed input, detected before any write."""

    def __init__(self, message: str, *, entity: str = "order", field: Optional[str] = None):
        self.field = field
        super().__init__(
            code="VALIDATION_FAILED",
            message=message,
            entity=entity,
            metadata={"field": field},
        )


class NotFoundError(LedgerFault):
    """Get/update/delete targeting a nonexistent id."""

    def __init__(self, entity: str, record_id: str):
        self.record_id = record_id
        super().__init__(
            code="NOT_FOUND",
            message=f"{entity.capitalize()} '{record_id}' does not exist",
            entity=entity,
            metadata={"id": record_id},
        )


class InvalidTransitionError(LedgerFault):
    """Requested status is not reachable from the current status."""

    def __init__(self, entity: str, current: str, requested: str, allowed: tuple = ()):
        self.current = current
        self.requested = requested
        self.allowed = tuple(allowed)
        super().__init__(
            code="INVALID_TRANSITION",
            message=f"Cannot transition {entity} from '{current}' to '{requested}'",
            entity=entity,
            metadata={
                "current": current,
                "requested": requested,
                "allowed": list(self.allowed),
            },
        )


class PaymentRequiredError(LedgerFault):
    """Order status advance blocked because the order is unpaid."""

    def __init__(self, order_id: str, requested: str):
        self.order_id = order_id
        self.requested = requested
        super().__init__(
            code="PAYMENT_REQUIRED",
            message=f"Cannot set order '{order_id}' to '{requested}' when payment is not completed",
            entity="order",
            metadata={"id": order_id, "requested": requested},
        )


class ConflictError(LedgerFault):
    """Deletion or mutation of a record whose state forbids it."""

    def __init__(self, message: str, *, entity: str = "payment", record_id: Optional[str] = None):
        self.record_id = record_id
        super().__init__(
            code="CONFLICT",
            message=message,
            entity=entity,
            metadata={"id": record_id},
        )


class DanglingReferenceError(Fault):
    """
    Reconciliation could not find the order a payment points at.

    Raised after the payment write has been committed; the payment
    record stays authoritative.
    """

    def __init__(self, payment_id: str, order_id: str):
        self.payment_id = payment_id
        self.order_id = order_id
        super().__init__(
            code="DANGLING_REFERENCE",
            message=f"Payment '{payment_id}' references missing order '{order_id}'",
            domain=FaultDomain.RECONCILIATION,
            severity=Severity.ERROR,
            retryable=False,
            public=True,
            metadata={"payment_id": payment_id, "order_id": order_id},
        )


# ============================================================================
# STORE Faults
# ============================================================================

class StoreFault(Fault):
    """Persistence collaborator failure."""

    def __init__(self, backend: str, operation: str, reason: str):
        super().__init__(
            code="STORE_ERROR",
            message=f"Store '{backend}' failed during {operation}: {reason}",
            domain=FaultDomain.STORE,
            metadata={"backend": backend, "operation": operation, "reason": reason},
        )
