"""Builders for invoice input and reference ledger entries used across tests."""

from datetime import date
from decimal import Decimal

from itc_kernel.domain.records import ItcCategory, ReferenceLedgerEntry
from itc_kernel.domain.values import Money
from itc_services.ingestion import PurchaseInvoiceInput, PurchaseLineItemInput

OWNER_ID = "owner-1"
VENDOR_GSTIN = "29ABCDE1234F1Z5"


def make_line(
    hsn: str = "7214",
    quantity: str = "10",
    unit_rate: str = "1000",
    gst_rate: str = "18",
    category: ItcCategory = ItcCategory.INPUTS,
    **overrides,
) -> PurchaseLineItemInput:
    return PurchaseLineItemInput(
        description=overrides.pop("description", "Steel rods"),
        hsn_sac_code=hsn,
        quantity=Decimal(quantity),
        unit_rate=Decimal(unit_rate),
        gst_rate=Decimal(gst_rate),
        itc_category=category,
        **overrides,
    )


def make_invoice_input(
    invoice_number: str = "INV-001",
    invoice_date: date = date(2024, 4, 10),
    vendor_id: str = "vendor-regular",
    origin: str = "29",
    destination: str = "27",
    lines: tuple[PurchaseLineItemInput, ...] | None = None,
    **overrides,
) -> PurchaseInvoiceInput:
    return PurchaseInvoiceInput(
        invoice_number=invoice_number,
        invoice_date=invoice_date,
        vendor_id=vendor_id,
        origin_state_code=origin,
        destination_state_code=destination,
        line_items=lines if lines is not None else (make_line(),),
        **overrides,
    )


def make_reference_entry(
    invoice_number: str = "INV-001",
    invoice_date: date = date(2024, 4, 10),
    taxable: str = "10000",
    igst: str = "1800",
    cgst: str = "0",
    sgst: str = "0",
    gstin: str = VENDOR_GSTIN,
) -> ReferenceLedgerEntry:
    return ReferenceLedgerEntry(
        vendor_gstin=gstin,
        invoice_number=invoice_number,
        invoice_date=invoice_date,
        taxable_value=Money.of(taxable),
        igst=Money.of(igst),
        cgst=Money.of(cgst),
        sgst=Money.of(sgst),
    )

