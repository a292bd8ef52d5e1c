"""
itc_services.ingestion -- Purchase invoice entry, validation and derivation.

Responsibility:
    Accept a purchase invoice as entered, validate every field, resolve the
    vendor, compute each line's tax split and ITC eligibility, aggregate the
    invoice totals (including the reverse-charge split) and persist the
    result through the repository port.

Architecture position:
    Services -- imperative shell over engines + kernel.
    Composes compute_tax and EligibilityEngine (pure engines) with an
    ItcRepository (persistence port) and an injected Clock.

Invariants enforced:
    - All-or-nothing: a single failing line rejects the whole invoice and
      nothing is saved.
    - (owner, vendor, invoice number) is unique; the number is compared
      trimmed and case-insensitively.
    - itc_claimed + itc_blocked == total_gst on every persisted invoice.
    - payable_to_vendor + payable_to_government == total_amount.

Failure modes:
    - ValidationError: one or more input fields rejected; ``errors`` lists
      every message.
    - DuplicateInvoiceError: number already recorded for the vendor.
    - VendorNotFoundError / VendorInactiveError: vendor gate.
    - InvoiceNotFoundError: update or payment on an unknown invoice.

Audit relevance:
    ``invoice_created`` and ``invoice_updated`` carry the claimed and
    blocked ITC; every line's eligibility evaluation is traced by the
    engine.

Usage:
    service = PurchaseInvoiceService(repo, clock)
    invoice = service.create_invoice("owner-1", PurchaseInvoiceInput(
        invoice_number="INV-001",
        invoice_date=date(2024, 4, 10),
        vendor_id="vendor-1",
        origin_state_code="29",
        destination_state_code="27",
        line_items=(PurchaseLineItemInput(
            description="Steel rods",
            hsn_sac_code="7214",
            quantity=Decimal("10"),
            unit_rate=Decimal("1000"),
            gst_rate=Decimal("18"),
        ),),
    ))
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, fields, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from urllib.parse import urlparse
from uuid import uuid4

from itc_config import get_active_config
from itc_config.bridges import build_eligibility_policy
from itc_config.schema import ItcConfiguration
from itc_engines.eligibility import (
    EligibilityEngine,
    Expense,
    expense_from_code,
    expense_to_code,
)
from itc_engines.gst import compute_tax, gstin_error, is_interstate
from itc_kernel.domain.clock import Clock
from itc_kernel.domain.records import (
    BlockedReasonTag,
    InvoiceMatchStatus,
    ItcCategory,
    ItcTransaction,
    PaymentStatus,
    PurchaseInvoice,
    PurchaseLineItem,
    Vendor,
)
from itc_kernel.domain.values import Money, to_decimal
from itc_kernel.exceptions import (
    DuplicateInvoiceError,
    InvoiceNotFoundError,
    ValidationError,
    VendorInactiveError,
    VendorNotFoundError,
)
from itc_kernel.logging_config import LogContext, get_logger
from itc_services.ports import ItcRepository

logger = get_logger("services.ingestion")

HUNDRED = Decimal("100")

# Precedence used to derive the invoice-level category from its lines.
_CATEGORY_PRECEDENCE = (
    ItcCategory.BLOCKED,
    ItcCategory.CAPITAL_GOODS,
    ItcCategory.INPUT_SERVICES,
)


# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class PurchaseLineItemInput:
    """
    One line as entered.

    ``expense`` is the optional blocked-credit variant describing the
    purchase; without it only the category and blocked-reason tag decide
    eligibility.
    """

    description: str
    hsn_sac_code: str
    quantity: Decimal
    unit_rate: Decimal
    gst_rate: Decimal
    itc_category: ItcCategory = ItcCategory.INPUTS
    blocked_reason: BlockedReasonTag | None = None
    business_use_percentage: Decimal = HUNDRED
    cess_rate: Decimal = Decimal("0")
    expense: Expense | None = None


@dataclass(frozen=True)
class PurchaseInvoiceInput:
    """
    A purchase invoice as entered.

    ``origin_state_code`` is the place of supply and
    ``destination_state_code`` the bill-to state; the supply is interstate
    when they differ. ``rcm_percentage`` defaults to 100 under reverse
    charge.
    """

    invoice_number: str
    invoice_date: date | None
    vendor_id: str
    origin_state_code: str
    destination_state_code: str
    line_items: tuple[PurchaseLineItemInput, ...] = ()
    is_reverse_charge: bool = False
    rcm_percentage: Decimal | None = None
    notes: str | None = None
    document_url: str | None = None


_INPUT_FIELDS = frozenset(f.name for f in fields(PurchaseInvoiceInput))


@dataclass(frozen=True)
class ComplianceChecks:
    has_required_fields: bool
    has_valid_hsn_codes: bool
    has_valid_gst_rates: bool
    has_valid_dates: bool


@dataclass(frozen=True)
class ValidationReport:
    """Every problem found in one invoice; never raised."""

    is_valid: bool
    errors: tuple[str, ...]
    compliance_checks: ComplianceChecks


@dataclass(frozen=True)
class InvoicePage:
    invoices: tuple[PurchaseInvoice, ...]
    total: int


def is_valid_url(url: str) -> bool:
    """An absolute URL with a scheme and a host."""
    parsed = urlparse(url.strip())
    return bool(parsed.scheme) and bool(parsed.netloc)


def overall_category(categories: Sequence[ItcCategory]) -> ItcCategory:
    """BLOCKED > CAPITAL_GOODS > INPUT_SERVICES > INPUTS."""
    for category in _CATEGORY_PRECEDENCE:
        if category in categories:
            return category
    return ItcCategory.INPUTS


# =============================================================================
# Service
# =============================================================================


class PurchaseInvoiceService:
    """
    Purchase invoice ingestion.

    Contract:
        ``create_invoice`` and ``update_invoice`` either persist a fully
        derived invoice or raise; they never save a partial record.

    Non-goals:
        - Does NOT post anything to the ITC register. Callers pass
          ``to_transactions(invoice)`` to the register service when the
          invoice is claimed.
    """

    def __init__(
        self,
        repo: ItcRepository,
        clock: Clock,
        config: ItcConfiguration | None = None,
    ):
        self._repo = repo
        self._clock = clock
        self._config = config or get_active_config()
        self._currency = self._config.currency
        self._eligibility = EligibilityEngine(build_eligibility_policy(self._config))

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_invoice(
        self,
        invoice_input: PurchaseInvoiceInput,
        today: date | None = None,
    ) -> ValidationReport:
        """
        Collect every validation problem without raising.

        Args:
            invoice_input: The invoice as entered.
            today: Date used for the future-date check; the clock's date when
                omitted.
        """
        today = today or self._clock.today()
        config = self._config
        inp = invoice_input
        errors: list[str] = []

        if not inp.invoice_number or not inp.invoice_number.strip():
            errors.append("Invoice number is required")
        if inp.invoice_date is None:
            errors.append("Invoice date is required")
        if not inp.vendor_id:
            errors.append("Vendor ID is required")
        if not inp.origin_state_code:
            errors.append("Place of supply is required")
        if not inp.destination_state_code:
            errors.append("Bill to state code is required")

        if inp.origin_state_code and not config.is_valid_jurisdiction(
            inp.origin_state_code
        ):
            errors.append("Invalid place of supply state code")
        if inp.destination_state_code and not config.is_valid_jurisdiction(
            inp.destination_state_code
        ):
            errors.append("Invalid bill to state code")

        if not inp.line_items:
            errors.append("At least one line item is required")

        allowed_rates = ", ".join(config.tax_rates)
        min_hsn = config.constants.min_hsn_length
        valid_hsn = True
        valid_rates = True
        for item in inp.line_items:
            hsn = (item.hsn_sac_code or "").strip()
            if not hsn:
                errors.append("HSN/SAC code is required for all line items")
                valid_hsn = False
            elif len(hsn) < min_hsn:
                errors.append(f"HSN code must be at least {min_hsn} digits for goods")
                valid_hsn = False

            gst_rate = _parse_decimal(item.gst_rate, "GST rate", errors)
            if gst_rate is None:
                valid_rates = False
            elif not config.is_allowed_rate(gst_rate):
                errors.append(
                    f"Invalid GST rate {item.gst_rate}. Must be one of: {allowed_rates}"
                )
                valid_rates = False

            quantity = _parse_decimal(item.quantity, "Quantity", errors)
            if quantity is not None and quantity <= 0:
                errors.append("Quantity must be greater than zero")
            unit_rate = _parse_decimal(item.unit_rate, "Rate", errors)
            if unit_rate is not None and unit_rate < 0:
                errors.append("Rate cannot be negative")
            business_use = _parse_decimal(
                item.business_use_percentage, "Business use percentage", errors
            )
            if business_use is not None and not 0 <= business_use <= 100:
                errors.append("Business use percentage must be between 0 and 100")
            cess_rate = _parse_decimal(item.cess_rate, "Cess rate", errors)
            if cess_rate is not None and cess_rate < 0:
                errors.append("Cess rate cannot be negative")

        if inp.is_reverse_charge and inp.rcm_percentage is not None:
            rcm = _parse_decimal(inp.rcm_percentage, "Reverse charge percentage", errors)
            if rcm is not None and not 0 < rcm <= 100:
                errors.append("Reverse charge percentage must be between 0 and 100")

        valid_dates = inp.invoice_date is None or inp.invoice_date <= today
        if not valid_dates:
            errors.append("Invoice date cannot be in the future")

        if inp.document_url and not is_valid_url(inp.document_url):
            errors.append("Invalid document URL format")

        checks = ComplianceChecks(
            has_required_fields=not any("required" in e for e in errors),
            has_valid_hsn_codes=valid_hsn,
            has_valid_gst_rates=valid_rates,
            has_valid_dates=valid_dates,
        )
        return ValidationReport(
            is_valid=not errors,
            errors=tuple(errors),
            compliance_checks=checks,
        )

    # =========================================================================
    # Commands
    # =========================================================================

    def create_invoice(
        self,
        owner_id: str,
        invoice_input: PurchaseInvoiceInput,
    ) -> PurchaseInvoice:
        """
        Validate, derive and persist a new purchase invoice.

        Raises:
            ValidationError: any field rejected (all messages collected).
            DuplicateInvoiceError: number already recorded for the vendor.
            VendorNotFoundError: vendor does not exist.
            VendorInactiveError: vendor is deactivated.
        """
        with LogContext.bind(owner_id=owner_id):
            self._raise_if_invalid(invoice_input)

            existing = self._repo.find_invoice_by_number(
                owner_id, invoice_input.vendor_id, invoice_input.invoice_number
            )
            if existing is not None:
                logger.warning(
                    "invoice_duplicate_rejected",
                    extra={
                        "vendor_id": invoice_input.vendor_id,
                        "invoice_number": invoice_input.invoice_number,
                        "existing_invoice_id": existing.invoice_id,
                    },
                )
                raise DuplicateInvoiceError(
                    owner_id, invoice_input.vendor_id, invoice_input.invoice_number
                )

            vendor = self._link_vendor(invoice_input.vendor_id)
            now = self._clock.now()
            invoice = self._derive(
                invoice_id=str(uuid4()),
                owner_id=owner_id,
                invoice_input=invoice_input,
                vendor=vendor,
                created_at=now,
                updated_at=now,
            )
            saved = self._repo.save_invoice(invoice)

            logger.info(
                "invoice_created",
                extra={
                    "invoice_id": saved.invoice_id,
                    "invoice_number": saved.invoice_number,
                    "vendor_id": saved.vendor_id,
                    "line_count": len(saved.line_items),
                    "total_gst": saved.total_gst.amount,
                    "itc_claimed": saved.itc_claimed.amount,
                    "itc_blocked": saved.itc_blocked.amount,
                    "is_reverse_charge": saved.is_reverse_charge,
                },
            )
            return saved

    def update_invoice(
        self,
        owner_id: str,
        invoice_id: str,
        changes: Mapping[str, Any],
    ) -> PurchaseInvoice:
        """
        Apply field changes and re-derive the whole invoice.

        ``changes`` holds PurchaseInvoiceInput field names. Amounts,
        eligibility and the reverse-charge split are recomputed from the
        merged input; payment status and ITC reversals are kept, and the
        match status is reset because the amounts may have moved.

        Raises:
            InvoiceNotFoundError: no such invoice for this owner.
            ValidationError: unknown field or invalid merged input.
            DuplicateInvoiceError: new number collides with another invoice.
        """
        with LogContext.bind(owner_id=owner_id, invoice_id=invoice_id):
            current = self._get_owned(owner_id, invoice_id)

            unknown = sorted(set(changes) - _INPUT_FIELDS)
            if unknown:
                raise ValidationError(
                    [f"Unknown invoice field: {name}" for name in unknown]
                )

            merged = replace(self._input_from(current), **dict(changes))
            if "line_items" in changes:
                merged = replace(merged, line_items=tuple(merged.line_items))
            self._raise_if_invalid(merged)

            clash = self._repo.find_invoice_by_number(
                owner_id, merged.vendor_id, merged.invoice_number
            )
            if clash is not None and clash.invoice_id != invoice_id:
                raise DuplicateInvoiceError(
                    owner_id, merged.vendor_id, merged.invoice_number
                )

            vendor = self._link_vendor(merged.vendor_id)
            derived = self._derive(
                invoice_id=invoice_id,
                owner_id=owner_id,
                invoice_input=merged,
                vendor=vendor,
                created_at=current.created_at,
                updated_at=self._clock.now(),
            )
            derived = replace(
                derived,
                payment_status=current.payment_status,
                payment_date=current.payment_date,
                itc_reversed=current.itc_reversed,
            )
            saved = self._repo.save_invoice(derived)

            logger.info(
                "invoice_updated",
                extra={
                    "changed_fields": sorted(changes),
                    "itc_claimed": saved.itc_claimed.amount,
                    "itc_blocked": saved.itc_blocked.amount,
                },
            )
            return saved

    def record_payment(
        self,
        owner_id: str,
        invoice_id: str,
        payment_date: date,
    ) -> PurchaseInvoice:
        """Mark an invoice as paid to the vendor on ``payment_date``."""
        invoice = self._get_owned(owner_id, invoice_id)
        saved = self._repo.save_invoice(
            invoice.with_payment(payment_date, self._clock.now())
        )
        logger.info(
            "invoice_payment_recorded",
            extra={
                "invoice_id": invoice_id,
                "payment_date": payment_date.isoformat(),
                "days_after_invoice": (payment_date - invoice.invoice_date).days,
            },
        )
        return saved

    # =========================================================================
    # Queries
    # =========================================================================

    def get_invoice(self, owner_id: str, invoice_id: str) -> PurchaseInvoice:
        return self._get_owned(owner_id, invoice_id)

    def invoices_by_vendor(
        self,
        owner_id: str,
        vendor_id: str,
        limit: int = 50,
        offset: int = 0,
    ) -> InvoicePage:
        invoices = self._repo.list_invoices(owner_id, vendor_id=vendor_id)
        return _page(invoices, limit, offset)

    def invoices_by_period(
        self,
        owner_id: str,
        start_date: date,
        end_date: date,
        itc_eligible: bool | None = None,
        vendor_id: str | None = None,
        min_amount: Money | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> InvoicePage:
        """
        Invoices dated within [start_date, end_date], optionally filtered.

        ``min_amount`` compares against the invoice total; ``total`` on the
        returned page counts every match before pagination.
        """
        invoices = self._repo.list_invoices(
            owner_id, start_date=start_date, end_date=end_date, vendor_id=vendor_id
        )
        if itc_eligible is not None:
            invoices = [inv for inv in invoices if inv.itc_eligible == itc_eligible]
        if min_amount is not None:
            invoices = [inv for inv in invoices if inv.total_amount >= min_amount]
        return _page(invoices, limit, offset)

    def to_transactions(self, invoice: PurchaseInvoice) -> tuple[ItcTransaction, ...]:
        """One register transaction per invoice line."""
        return tuple(
            ItcTransaction(
                vendor_gstin=invoice.vendor_gstin,
                invoice_number=invoice.invoice_number,
                invoice_date=invoice.invoice_date,
                taxable_amount=line.taxable_amount,
                cgst=line.cgst,
                sgst=line.sgst,
                igst=line.igst,
                itc_category=line.itc_category,
                itc_eligible=line.itc_eligible,
                hsn=line.hsn_sac_code,
                eligible_amount=line.itc_eligible_amount,
            )
            for line in invoice.line_items
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _raise_if_invalid(self, invoice_input: PurchaseInvoiceInput) -> None:
        report = self.validate_invoice(invoice_input)
        if not report.is_valid:
            logger.warning(
                "invoice_validation_failed",
                extra={
                    "invoice_number": invoice_input.invoice_number,
                    "errors": list(report.errors),
                },
            )
            raise ValidationError(report.errors)

    def _get_owned(self, owner_id: str, invoice_id: str) -> PurchaseInvoice:
        invoice = self._repo.find_invoice(invoice_id)
        if invoice is None or invoice.owner_id != owner_id:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def _link_vendor(self, vendor_id: str) -> Vendor:
        vendor = self._repo.find_vendor(vendor_id)
        if vendor is None:
            raise VendorNotFoundError(vendor_id)
        if not vendor.is_active:
            raise VendorInactiveError(vendor_id)
        if not vendor.can_claim_itc:
            logger.info(
                "vendor_itc_restricted",
                extra={
                    "vendor_id": vendor_id,
                    "restrictions": list(vendor.itc_restrictions),
                },
            )
            return vendor

        problem = gstin_error(vendor.gstin, self._config.is_valid_jurisdiction)
        if problem is not None:
            logger.warning(
                "vendor_gstin_invalid",
                extra={"vendor_id": vendor_id, "reason": problem},
            )
            raise ValidationError(
                [f"Vendor {vendor_id}: {problem}"], field="vendor_gstin"
            )
        return vendor

    def _derive(
        self,
        invoice_id: str,
        owner_id: str,
        invoice_input: PurchaseInvoiceInput,
        vendor: Vendor,
        created_at: datetime | None,
        updated_at: datetime,
    ) -> PurchaseInvoice:
        inp = invoice_input
        currency = self._currency
        zero = Money.zero(currency)
        interstate = is_interstate(inp.origin_state_code, inp.destination_state_code)

        lines: list[PurchaseLineItem] = []
        for number, item in enumerate(inp.line_items, start=1):
            quantity = to_decimal(item.quantity)
            unit_rate = Money.of(item.unit_rate, currency)
            taxable = unit_rate * quantity
            tax = compute_tax(
                taxable_amount=taxable,
                rate=item.gst_rate,
                is_interstate=interstate,
                cess_rate=item.cess_rate,
            )
            expense_code, expense_attributes = None, ()
            if item.expense is not None:
                expense_code, attributes = expense_to_code(item.expense)
                expense_attributes = tuple(sorted(attributes.items()))
            result = self._eligibility.determine_line_eligibility(
                tax_amount=tax.gst_total,
                itc_category=item.itc_category,
                vendor_type=vendor.vendor_type,
                vendor_can_claim=vendor.can_claim_itc,
                blocked_reason=item.blocked_reason,
                business_use_percentage=to_decimal(item.business_use_percentage),
                expense=item.expense,
            )
            lines.append(
                PurchaseLineItem(
                    line_number=number,
                    description=item.description,
                    hsn_sac_code=item.hsn_sac_code.strip(),
                    quantity=quantity,
                    unit_rate=unit_rate,
                    gst_rate=to_decimal(item.gst_rate),
                    itc_category=result.category,
                    taxable_amount=taxable,
                    cgst=tax.cgst,
                    sgst=tax.sgst,
                    igst=tax.igst,
                    cess=tax.cess,
                    itc_eligible=result.is_eligible,
                    itc_eligible_amount=result.eligible_amount,
                    itc_blocked_amount=result.blocked_amount,
                    blocked_reason=item.blocked_reason,
                    itc_blocked_reason=result.blocked_reason,
                    business_use_percentage=to_decimal(item.business_use_percentage),
                    cess_rate=to_decimal(item.cess_rate),
                    declared_category=item.itc_category,
                    expense_code=expense_code,
                    expense_attributes=expense_attributes,
                )
            )

        taxable_total = Money.sum((ln.taxable_amount for ln in lines), currency)
        cgst = Money.sum((ln.cgst for ln in lines), currency)
        sgst = Money.sum((ln.sgst for ln in lines), currency)
        igst = Money.sum((ln.igst for ln in lines), currency)
        cess = Money.sum((ln.cess for ln in lines), currency)
        total_gst = cgst + sgst + igst
        total_amount = taxable_total + total_gst + cess

        # Reverse charge: the recipient pays the RCM share to the government.
        rcm_percentage = HUNDRED
        rcm_amount = zero
        payable_to_government = zero
        if inp.is_reverse_charge:
            if inp.rcm_percentage is not None:
                rcm_percentage = to_decimal(inp.rcm_percentage)
            rcm_amount = total_gst.percent(rcm_percentage)
            payable_to_government = rcm_amount
        payable_to_vendor = total_amount - payable_to_government

        itc_claimed = zero
        if vendor.can_claim_itc:
            itc_claimed = Money.sum((ln.itc_eligible_amount for ln in lines), currency)

        return PurchaseInvoice(
            invoice_id=invoice_id,
            owner_id=owner_id,
            vendor_id=vendor.vendor_id,
            vendor_gstin=vendor.gstin or "",
            vendor_name=vendor.name,
            invoice_number=inp.invoice_number.strip(),
            invoice_date=inp.invoice_date,
            origin_state_code=inp.origin_state_code.strip(),
            destination_state_code=inp.destination_state_code.strip(),
            is_interstate=interstate,
            line_items=tuple(lines),
            taxable_amount=taxable_total,
            cgst=cgst,
            sgst=sgst,
            igst=igst,
            cess=cess,
            total_gst=total_gst,
            total_amount=total_amount,
            is_reverse_charge=inp.is_reverse_charge,
            rcm_percentage=rcm_percentage if inp.is_reverse_charge else Decimal("0"),
            rcm_amount=rcm_amount,
            payable_to_vendor=payable_to_vendor,
            payable_to_government=payable_to_government,
            itc_eligible=vendor.can_claim_itc and itc_claimed.is_positive,
            itc_category=overall_category([ln.itc_category for ln in lines]),
            itc_claimed=itc_claimed,
            itc_blocked=total_gst - itc_claimed,
            itc_reversed=zero,
            payment_status=PaymentStatus.UNPAID,
            match_status=InvoiceMatchStatus.NOT_AVAILABLE,
            notes=inp.notes,
            document_url=inp.document_url,
            created_at=created_at,
            updated_at=updated_at,
        )

    def _input_from(self, invoice: PurchaseInvoice) -> PurchaseInvoiceInput:
        return PurchaseInvoiceInput(
            invoice_number=invoice.invoice_number,
            invoice_date=invoice.invoice_date,
            vendor_id=invoice.vendor_id,
            origin_state_code=invoice.origin_state_code,
            destination_state_code=invoice.destination_state_code,
            line_items=tuple(
                PurchaseLineItemInput(
                    description=line.description,
                    hsn_sac_code=line.hsn_sac_code,
                    quantity=line.quantity,
                    unit_rate=line.unit_rate.amount,
                    gst_rate=line.gst_rate,
                    itc_category=line.declared_category or line.itc_category,
                    blocked_reason=line.blocked_reason,
                    business_use_percentage=line.business_use_percentage,
                    cess_rate=line.cess_rate,
                    expense=(
                        expense_from_code(
                            line.expense_code, **dict(line.expense_attributes)
                        )
                        if line.expense_code
                        else None
                    ),
                )
                for line in invoice.line_items
            ),
            is_reverse_charge=invoice.is_reverse_charge,
            rcm_percentage=invoice.rcm_percentage if invoice.is_reverse_charge else None,
            notes=invoice.notes,
            document_url=invoice.document_url,
        )


def _parse_decimal(value: object, label: str, errors: list[str]) -> Decimal | None:
    """Parse a numeric input field, recording a message instead of raising."""
    if value is None:
        errors.append(f"{label} is required for all line items")
        return None
    try:
        number = to_decimal(value)
    except ValueError:
        errors.append(f"{label} must be a number")
        return None
    if not number.is_finite():
        errors.append(f"{label} must be a number")
        return None
    return number


def _page(invoices: Sequence[PurchaseInvoice], limit: int, offset: int) -> InvoicePage:
    window = invoices[offset : offset + limit] if limit > 0 else invoices[offset:]
    return InvoicePage(invoices=tuple(window), total=len(invoices))
