"""
GST Engine - split a taxable amount into CGST, SGST, IGST and cess.

Pure functions with no I/O. The rate is supplied by the caller; whether a
supply is interstate is decided from the two jurisdiction codes.

No rounding is applied here. Callers aggregate the unrounded components and
round only at presentation boundaries, so rounding error never compounds
across lines.

Usage:
    from itc_engines.gst import compute_tax
    from itc_kernel.domain.values import Money
    from decimal import Decimal

    tax = compute_tax(
        taxable_amount=Money.of("10000"),
        rate=Decimal("18"),
        is_interstate=False,
    )
    print(tax.cgst, tax.sgst)  # 900 INR, 900 INR
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

from itc_kernel.domain.values import Money, to_decimal
from itc_engines.tracer import traced_engine


@dataclass(frozen=True)
class TaxBreakdown:
    """
    Tax components for one taxable amount.

    Exactly one of (cgst + sgst) or igst is non-zero for a non-zero rate.
    ``total`` includes cess; ``gst_total`` does not.
    """

    taxable_amount: Money
    rate: Decimal
    cgst: Money
    sgst: Money
    igst: Money
    cess: Money

    @property
    def gst_total(self) -> Money:
        return self.cgst + self.sgst + self.igst

    @property
    def total(self) -> Money:
        return self.gst_total + self.cess

    @property
    def gross_amount(self) -> Money:
        """Taxable amount plus all tax."""
        return self.taxable_amount + self.total


def is_interstate(origin_state_code: str, destination_state_code: str) -> bool:
    """A supply is interstate when the two jurisdiction codes differ."""
    return origin_state_code.strip() != destination_state_code.strip()


def jurisdiction_from_gstin(gstin: str) -> str:
    """The first two characters of a GSTIN are the registering state code."""
    return gstin.strip()[:2]


@traced_engine(
    "gst",
    "1.0",
    fingerprint_fields=("taxable_amount", "rate", "is_interstate", "cess_rate"),
)
def compute_tax(
    taxable_amount: Money,
    rate: Decimal | int | str,
    is_interstate: bool,
    cess_rate: Decimal | int | str = 0,
) -> TaxBreakdown:
    """
    Compute tax components for a taxable amount.

    Interstate supplies carry the whole rate as IGST. Intrastate supplies
    split it exactly in half between CGST and SGST. Cess is computed on the
    taxable amount independently and is always additive.
    """
    rate = to_decimal(rate)
    cess_rate = to_decimal(cess_rate)
    zero = Money.zero(taxable_amount.currency)

    cess = taxable_amount.percent(cess_rate) if cess_rate else zero

    if rate == 0:
        return TaxBreakdown(taxable_amount, rate, zero, zero, zero, cess)

    tax = taxable_amount.percent(rate)
    if is_interstate:
        return TaxBreakdown(taxable_amount, rate, zero, zero, tax, cess)

    half = tax / 2
    return TaxBreakdown(taxable_amount, rate, half, half, zero, cess)


GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][0-9][A-Z][A-Z0-9]$")


def gstin_error(gstin: str | None, is_valid_state: Callable[[str], bool]) -> str | None:
    """
    Why ``gstin`` is not a well-formed registration number, or None.

    The state prefix is checked before the full pattern so a numeric but
    unassigned code is reported as such.
    """
    value = (gstin or "").strip().upper()
    if len(value) != 15:
        return "Invalid GSTIN format"
    if value[:2].isdigit() and not is_valid_state(value[:2]):
        return "Invalid state code in GSTIN"
    if not GSTIN_PATTERN.match(value):
        return "Invalid GSTIN format"
    return None
