"""
Tests for the GST split engine.

Verifies:
- Intrastate supplies split the rate evenly into CGST and SGST
- Interstate supplies carry the whole rate as IGST
- Cess is additive and excluded from gst_total
- No rounding is applied to odd amounts
"""

from decimal import Decimal

import pytest

from itc_engines.gst import compute_tax, is_interstate, jurisdiction_from_gstin
from itc_kernel.domain.values import Money


class TestComputeTax:
    def test_intrastate_split(self):
        tax = compute_tax(taxable_amount=Money.of("10000"), rate=Decimal("18"), is_interstate=False)
        assert tax.cgst == Money.of("900")
        assert tax.sgst == Money.of("900")
        assert tax.igst.is_zero
        assert tax.gst_total == Money.of("1800")

    def test_interstate_igst(self):
        tax = compute_tax(taxable_amount=Money.of("10000"), rate=18, is_interstate=True)
        assert tax.igst == Money.of("1800")
        assert tax.cgst.is_zero and tax.sgst.is_zero

    def test_zero_rate(self):
        tax = compute_tax(taxable_amount=Money.of("500"), rate=0, is_interstate=False)
        assert tax.total.is_zero
        assert tax.gross_amount == Money.of("500")

    def test_cess_additive(self):
        tax = compute_tax(
            taxable_amount=Money.of("1000"), rate=28, is_interstate=True, cess_rate=12
        )
        assert tax.cess == Money.of("120")
        assert tax.gst_total == Money.of("280")
        assert tax.total == Money.of("400")
        assert tax.gross_amount == Money.of("1400")

    def test_odd_amount_not_rounded(self):
        """Halves of an odd paisa amount stay exact."""
        tax = compute_tax(taxable_amount=Money.of("0.05"), rate=18, is_interstate=False)
        assert tax.cgst.amount == Decimal("0.0045")
        assert tax.cgst + tax.sgst == tax.gst_total

    def test_currency_preserved(self):
        tax = compute_tax(taxable_amount=Money.of("100", "USD"), rate=5, is_interstate=True)
        assert tax.igst == Money.of("5", "USD")


class TestJurisdiction:
    @pytest.mark.parametrize(
        "origin,destination,expected",
        [("29", "29", False), ("29", "27", True), (" 29", "29 ", False)],
    )
    def test_is_interstate(self, origin, destination, expected):
        assert is_interstate(origin, destination) is expected

    def test_jurisdiction_from_gstin(self):
        assert jurisdiction_from_gstin("29ABCDE1234F1Z5") == "29"
