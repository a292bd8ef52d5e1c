"""
Records -- Immutable domain records shared by engines and services.

Responsibility:
    Defines the data that flows between ingestion, matching and the period
    ledger: Vendor, PurchaseLineItem, PurchaseInvoice, ReferenceLedgerEntry,
    ItcTransaction and ItcRegisterPeriod, plus their status enums.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies; the SQL repository converts at its boundary.

Invariants enforced:
    - All monetary fields are Money, never raw Decimal or float.
    - Records are frozen. A change is a new record built with
      ``dataclasses.replace``; the repository keeps the latest one.
    - ItcRegisterPeriod.closing_balance is produced only by
      ``with_recomputed_closing()`` (opening + claimed - reversed).

Ownership:
    PurchaseInvoice owns its line items (a tuple, never shared).
    ReferenceLedgerEntry is a foreign snapshot and is never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from itc_kernel.domain.values import Money


class ItcCategory(str, Enum):
    """ITC bucket a purchase line is claimed under."""

    INPUTS = "INPUTS"
    CAPITAL_GOODS = "CAPITAL_GOODS"
    INPUT_SERVICES = "INPUT_SERVICES"
    BLOCKED = "BLOCKED"


class BlockedReasonTag(str, Enum):
    """Reason tag recorded on a line explicitly categorized as BLOCKED."""

    MOTOR_VEHICLE = "MOTOR_VEHICLE"
    PERSONAL_USE = "PERSONAL_USE"
    ENTERTAINMENT = "ENTERTAINMENT"
    OTHER = "OTHER"


class VendorType(str, Enum):
    REGULAR = "REGULAR"
    COMPOSITION = "COMPOSITION"
    UNREGISTERED = "UNREGISTERED"


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PAID = "PAID"


class InvoiceMatchStatus(str, Enum):
    """
    Reconciliation outcome recorded on a purchase invoice.

    NOT_AVAILABLE until a reconciliation run has looked at the invoice.
    """

    NOT_AVAILABLE = "NOT_AVAILABLE"
    MATCHED = "MATCHED"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    NOT_IN_REFERENCE = "NOT_IN_REFERENCE"


@dataclass(frozen=True)
class Vendor:
    """Supplier master record used for eligibility gating."""

    vendor_id: str
    name: str
    gstin: str | None
    vendor_type: VendorType = VendorType.REGULAR
    is_active: bool = True
    is_registered: bool = True

    @property
    def itc_restrictions(self) -> tuple[str, ...]:
        if self.vendor_type == VendorType.COMPOSITION:
            return ("No ITC on purchases from composition dealers",)
        if self.vendor_type == VendorType.UNREGISTERED or not self.is_registered:
            return ("No ITC on purchases from unregistered dealers",)
        return ()

    @property
    def can_claim_itc(self) -> bool:
        return not self.itc_restrictions


@dataclass(frozen=True)
class PurchaseLineItem:
    """
    One computed line of a persisted purchase invoice.

    ``itc_category`` is the derived bucket; ``declared_category`` and the
    expense code and attributes are the facts as entered, kept so an update
    re-derives the line from the same inputs.
    """

    line_number: int
    description: str
    hsn_sac_code: str
    quantity: Decimal
    unit_rate: Money
    gst_rate: Decimal
    itc_category: ItcCategory
    taxable_amount: Money
    cgst: Money
    sgst: Money
    igst: Money
    cess: Money
    itc_eligible: bool
    itc_eligible_amount: Money
    itc_blocked_amount: Money
    blocked_reason: BlockedReasonTag | None = None
    itc_blocked_reason: str | None = None
    business_use_percentage: Decimal = Decimal("100")
    cess_rate: Decimal = Decimal("0")
    declared_category: ItcCategory | None = None
    expense_code: str | None = None
    expense_attributes: tuple[tuple[str, Any], ...] = ()

    @property
    def gst_total(self) -> Money:
        return self.cgst + self.sgst + self.igst

    @property
    def total_itc(self) -> Money:
        return self.gst_total


@dataclass(frozen=True)
class PurchaseInvoice:
    """
    Persisted purchase invoice with every derived aggregate.

    Contract:
        Built only by the ingestion service (create or full re-derivation on
        update). Matching status and payment status are the only fields
        changed outside ingestion, through ``with_match_status`` and
        ``with_payment``.
    """

    invoice_id: str
    owner_id: str
    vendor_id: str
    vendor_gstin: str
    vendor_name: str
    invoice_number: str
    invoice_date: date
    origin_state_code: str
    destination_state_code: str
    is_interstate: bool
    line_items: tuple[PurchaseLineItem, ...]
    taxable_amount: Money
    cgst: Money
    sgst: Money
    igst: Money
    cess: Money
    total_gst: Money
    total_amount: Money
    is_reverse_charge: bool
    rcm_percentage: Decimal
    rcm_amount: Money
    payable_to_vendor: Money
    payable_to_government: Money
    itc_eligible: bool
    itc_category: ItcCategory
    itc_claimed: Money
    itc_blocked: Money
    itc_reversed: Money
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payment_date: date | None = None
    match_status: InvoiceMatchStatus = InvoiceMatchStatus.NOT_AVAILABLE
    notes: str | None = None
    document_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def total_itc(self) -> Money:
        return self.cgst + self.sgst + self.igst

    def with_match_status(
        self, status: InvoiceMatchStatus, at: datetime
    ) -> PurchaseInvoice:
        return replace(self, match_status=status, updated_at=at)

    def with_payment(self, paid_on: date, at: datetime) -> PurchaseInvoice:
        return replace(
            self,
            payment_status=PaymentStatus.PAID,
            payment_date=paid_on,
            updated_at=at,
        )


@dataclass(frozen=True)
class ReferenceLedgerEntry:
    """
    One line of the tax authority's purchase statement for a period.

    Arrives already parsed; this system only reads it.
    """

    vendor_gstin: str
    invoice_number: str
    invoice_date: date
    taxable_value: Money
    igst: Money
    cgst: Money
    sgst: Money
    cess: Money = field(default_factory=Money.zero)
    invoice_value: Money | None = None

    @property
    def total_itc(self) -> Money:
        return self.igst + self.cgst + self.sgst


@dataclass(frozen=True)
class ItcTransaction:
    """
    Eligibility-tagged purchase line handed to the register.

    ``eligible_amount`` defaults to the whole tax when the transaction is
    eligible; ``reversed_amount`` records a reversal raised with it.
    """

    vendor_gstin: str
    invoice_number: str
    invoice_date: date
    taxable_amount: Money
    cgst: Money
    sgst: Money
    igst: Money
    itc_category: ItcCategory
    itc_eligible: bool
    hsn: str = ""
    eligible_amount: Money | None = None
    reversed_amount: Money | None = None

    @property
    def total_itc(self) -> Money:
        return self.cgst + self.sgst + self.igst


@dataclass(frozen=True)
class ItcRegisterPeriod:
    """
    Running ITC balance for one (owner, period).

    Lifecycle: created once by the idempotent initializer, then mutated
    additively. ``version`` increases by one on every change.
    """

    register_id: str
    owner_id: str
    period: str
    financial_year: str
    opening_balance: Money
    eligible_itc: Money = field(default_factory=Money.zero)
    claimed_itc: Money = field(default_factory=Money.zero)
    reversed_itc: Money = field(default_factory=Money.zero)
    blocked_itc: Money = field(default_factory=Money.zero)
    inputs_itc: Money = field(default_factory=Money.zero)
    capital_goods_itc: Money = field(default_factory=Money.zero)
    input_services_itc: Money = field(default_factory=Money.zero)
    closing_balance: Money = field(default_factory=Money.zero)
    is_reconciled: bool = False
    reconciled_at: datetime | None = None
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def available_balance(self) -> Money:
        return self.opening_balance + self.claimed_itc - self.reversed_itc

    def with_recomputed_closing(self, **changes) -> ItcRegisterPeriod:
        """Apply changes, recompute closing from totals, bump version."""
        updated = replace(self, **changes)
        return replace(
            updated,
            closing_balance=updated.available_balance,
            version=self.version + 1,
        )
