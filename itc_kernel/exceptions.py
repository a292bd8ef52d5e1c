"""
Typed Exception Hierarchy for the ITC engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ITC engine must be able to react to failures precisely.
Matching on message text is fragile, so every failure is:
  1. A TYPED exception class (catch by type, not message)
  2. Tagged with a CODE attribute (machine-readable, API-safe)
  3. Carrying structured DATA (not just a message string)

Only validation errors and domain conflicts are exceptions. Blocked
credits, reversal obligations, non-compliant conditions and matching
ambiguity (NO_MATCH, AMOUNT_MISMATCH) are expected business outcomes and
are returned as data inside successful results.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ItcEngineError (base)
    |
    +-- ValidationError
    |   +-- InvalidPeriodError
    |   +-- NegativeOpeningBalanceError
    |
    +-- DomainConflictError
    |   +-- DuplicateInvoiceError
    |   +-- InvoiceNotFoundError
    |   +-- RegisterNotFoundError
    |   +-- InsufficientBalanceError
    |   +-- VendorNotFoundError
    |   +-- VendorInactiveError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ConfigurationError
        +-- InvalidCategoryError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_FAILED           | One or more input fields rejected
                | INVALID_PERIOD              | Period key is not MM-YYYY
                | NEGATIVE_OPENING_BALANCE    | Register opened below zero
----------------|-----------------------------|-----------------------------------------
Conflict        | DUPLICATE_INVOICE           | Same number for vendor/owner
                | INVOICE_NOT_FOUND           | Update/lookup of missing invoice
                | REGISTER_NOT_FOUND          | Mutation of uninitialized period
                | INSUFFICIENT_BALANCE        | Utilization beyond available ITC
                | VENDOR_NOT_FOUND            | Vendor reference does not resolve
                | VENDOR_INACTIVE             | Vendor exists but is deactivated
----------------|-----------------------------|-----------------------------------------
Currency        | INVALID_CURRENCY            | Not a valid ISO 4217 code
                | CURRENCY_MISMATCH           | Mixed currencies in operation
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Register row changed underneath writer
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Rule/constant table is inconsistent
                | INVALID_CATEGORY            | Unknown blocked-credit category code

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        invoice = ingestion.create_invoice(owner_id, payload)
    except DuplicateInvoiceError as e:
        return {"error": e.code, "invoice_number": e.invoice_number}
    except ValidationError as e:
        return {"error": e.code, "errors": e.errors}

    try:
        balance = register.closing_balance(owner_id, period, utilization)
    except InsufficientBalanceError as e:
        return {"error": e.code, "available": e.available}

===============================================================================
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence


class ItcEngineError(Exception):
    """
    Base exception for all ITC engine errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "ITC_ENGINE_ERROR"


# Validation errors


class ValidationError(ItcEngineError):
    """
    Input rejected before any computation.

    ``errors`` holds every problem found, so a multi-line invoice reports
    all of its defects at once rather than the first one only.
    """

    code: str = "VALIDATION_FAILED"

    def __init__(
        self,
        errors: Sequence[str] | str,
        field: str | None = None,
    ):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        self.field = field
        super().__init__("; ".join(self.errors))


class InvalidPeriodError(ValidationError):
    """Period key does not match the MM-YYYY format."""

    code: str = "INVALID_PERIOD"

    def __init__(self, period: str):
        self.period = period
        super().__init__(
            f"Invalid period format: {period!r}. Use MM-YYYY", field="period"
        )


class NegativeOpeningBalanceError(ValidationError):
    """Register opening balance below zero."""

    code: str = "NEGATIVE_OPENING_BALANCE"

    def __init__(self, opening_balance: Decimal):
        self.opening_balance = opening_balance
        super().__init__(
            f"Opening balance cannot be negative: {opening_balance}",
            field="opening_balance",
        )


# Domain conflicts


class DomainConflictError(ItcEngineError):
    """Base exception for explicit, caller-recoverable conflicts."""

    code: str = "DOMAIN_CONFLICT"


class DuplicateInvoiceError(DomainConflictError):
    """Invoice number already recorded for this vendor and owner."""

    code: str = "DUPLICATE_INVOICE"

    def __init__(self, owner_id: str, vendor_id: str, invoice_number: str):
        self.owner_id = owner_id
        self.vendor_id = vendor_id
        self.invoice_number = invoice_number
        super().__init__(
            f"Invoice number {invoice_number} already exists for vendor {vendor_id}"
        )


class InvoiceNotFoundError(DomainConflictError):
    """Purchase invoice does not exist for this owner."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Purchase invoice not found: {invoice_id}")


class RegisterNotFoundError(DomainConflictError):
    """Register row for (owner, period) has not been initialized."""

    code: str = "REGISTER_NOT_FOUND"

    def __init__(self, owner_id: str, period: str):
        self.owner_id = owner_id
        self.period = period
        super().__init__(
            f"ITC register not found for period {period}. "
            "Initialize the period first"
        )


class InsufficientBalanceError(DomainConflictError):
    """Utilization would drive the available ITC balance negative."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, period: str, available: Decimal, requested: Decimal):
        self.period = period
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient ITC balance for {period}: "
            f"available {available}, requested {requested}"
        )


class VendorNotFoundError(DomainConflictError):
    """Vendor reference does not resolve."""

    code: str = "VENDOR_NOT_FOUND"

    def __init__(self, vendor_id: str):
        self.vendor_id = vendor_id
        super().__init__(f"Vendor not found: {vendor_id}")


class VendorInactiveError(DomainConflictError):
    """Vendor exists but is not active."""

    code: str = "VENDOR_INACTIVE"

    def __init__(self, vendor_id: str):
        self.vendor_id = vendor_id
        super().__init__(f"Vendor is inactive: {vendor_id}")


# Currency errors


class CurrencyError(ItcEngineError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Currency code is not a valid ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: {currency}")


class CurrencyMismatchError(CurrencyError):
    """Arithmetic attempted across two currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, left: str, right: str):
        self.left = left
        self.right = right
        super().__init__(f"Currency mismatch: {left} vs {right}")


# Concurrency errors


class ConcurrencyError(ItcEngineError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Register row version changed between read and write."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Configuration errors


class ConfigurationError(ItcEngineError):
    """Rule tables or constants are missing or inconsistent."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message)


class InvalidCategoryError(ConfigurationError):
    """Expense category code has no blocked-credit rule."""

    code: str = "INVALID_CATEGORY"

    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Unknown expense category: {category!r}")
