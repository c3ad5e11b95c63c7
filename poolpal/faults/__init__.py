"""
PoolPal Faults - Structured error handling.

Exceptions raised by the ledger are typed fault signals carrying a
stable code, a domain, a severity and metadata that UIs can render.

Core exports:
- Fault: Base fault class
- FaultDomain: Domain taxonomy
- Severity: Severity levels
- Ledger faults: ValidationError, NotFoundError, InvalidTransitionError,
  PaymentRequiredError, ConflictError, DanglingReferenceError
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
    DOMAIN_DEFAULTS,
)

from .domains import (
    ConfigError,
    LedgerFault,
    ValidationError,
    NotFoundError,
    InvalidTransitionError,
    PaymentRequiredError,
    ConflictError,
    DanglingReferenceError,
    StoreFault,
)

__all__ = [
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",
    "DOMAIN_DEFAULTS",

    # Domain faults
    "ConfigError",
    "LedgerFault",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "PaymentRequiredError",
    "ConflictError",
    "DanglingReferenceError",
    "StoreFault",
]
