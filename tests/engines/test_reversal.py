"""
Tests for post-claim reversal calculations.

Verifies:
- Non-payment reversal with interest for whole months past the window
- Percentage-based reversals and their validation
- Credit note reversal capped at the original credit
- Exempt-supply ratio reversal and claim compliance tracking
"""

from datetime import date
from decimal import Decimal

import pytest

from itc_engines.reversal import (
    ComplianceStatus,
    ReversalPolicy,
    ReversalReason,
    calculate_exempt_supply_reversal,
    calculate_reversal,
    non_payment_interest,
    track_claim_compliance,
)
from itc_kernel.domain.values import Money
from itc_kernel.exceptions import ValidationError


class TestNonPayment:
    def test_interest_for_whole_months(self):
        result = calculate_reversal(
            original_itc=Money.of("1000"),
            reason=ReversalReason.NON_PAYMENT,
            invoice_date=date(2024, 1, 1),
            as_of_date=date(2024, 8, 1),
        )
        assert result.reversal_amount == Money.of("1000")
        assert result.interest_amount == Money.of("30")
        assert result.total_amount == Money.of("1030")
        assert result.due_date == date(2024, 6, 29)
        assert "Rule 37" in result.reason

    def test_no_interest_inside_window(self):
        interest = non_payment_interest(Money.of("1000"), 180, ReversalPolicy())
        assert interest.is_zero

    def test_one_day_past_is_one_month(self):
        interest = non_payment_interest(Money.of("1200"), 181, ReversalPolicy())
        assert interest == Money.of("18")

    def test_dates_required(self):
        with pytest.raises(ValidationError):
            calculate_reversal(
                original_itc=Money.of("1000"),
                reason=ReversalReason.NON_PAYMENT,
                invoice_date=date(2024, 1, 1),
            )


class TestPercentageReversals:
    def test_goods_lost(self):
        result = calculate_reversal(
            original_itc=Money.of("1000"),
            reason=ReversalReason.GOODS_LOST,
            loss_percentage=Decimal("25"),
        )
        assert result.reversal_amount == Money.of("250")
        assert result.interest_amount.is_zero

    def test_personal_use(self):
        result = calculate_reversal(
            original_itc=Money.of("1000"),
            reason=ReversalReason.USAGE_CHANGED_TO_PERSONAL,
            personal_use_percentage=Decimal("40"),
        )
        assert result.reversal_amount == Money.of("400")

    def test_exempt_supply_increase(self):
        result = calculate_reversal(
            original_itc=Money.of("1000"),
            reason=ReversalReason.EXEMPT_SUPPLY_INCREASED,
            exempt_percentage_change=Decimal("10"),
        )
        assert result.reversal_amount == Money.of("100")

    def test_missing_percentage(self):
        with pytest.raises(ValidationError):
            calculate_reversal(
                original_itc=Money.of("1000"), reason=ReversalReason.GOODS_LOST
            )

    def test_percentage_out_of_range(self):
        with pytest.raises(ValidationError):
            calculate_reversal(
                original_itc=Money.of("1000"),
                reason=ReversalReason.GOODS_LOST,
                loss_percentage=Decimal("120"),
            )


class TestCreditNote:
    def test_capped_at_original(self):
        result = calculate_reversal(
            original_itc=Money.of("1000"),
            reason=ReversalReason.CREDIT_NOTE,
            credit_note_amount=Money.of("1500"),
        )
        assert result.reversal_amount == Money.of("1000")

    def test_partial_note(self):
        result = calculate_reversal(
            original_itc=Money.of("1000"),
            reason=ReversalReason.CREDIT_NOTE,
            credit_note_amount=Money.of("300"),
        )
        assert result.reversal_amount == Money.of("300")


class TestExemptSupplyRatio:
    def test_ratio_split(self):
        result = calculate_exempt_supply_reversal(
            total_itc=Money.of("10000"),
            exempt_turnover=Money.of("250000"),
            total_turnover=Money.of("1000000"),
        )
        assert result.exempt_ratio == Decimal("0.25")
        assert result.reversal_amount == Money.of("2500")
        assert result.retained_amount == Money.of("7500")

    def test_zero_turnover(self):
        result = calculate_exempt_supply_reversal(
            total_itc=Money.of("10000"),
            exempt_turnover=Money.zero(),
            total_turnover=Money.zero(),
        )
        assert result.reversal_amount.is_zero
        assert result.retained_amount == Money.of("10000")


class TestClaimCompliance:
    def test_compliant(self):
        result = track_claim_compliance(Money.of("900"), Money.of("1000"))
        assert result.is_compliant
        assert result.audit_trail == "ITC claimed: 900, Eligible: 1000, Status: COMPLIANT"

    def test_over_claim_and_blocked_basis(self):
        result = track_claim_compliance(
            Money.of("1100"), Money.of("1000"), claim_basis="BLOCKED_CATEGORY"
        )
        assert result.status == ComplianceStatus.NON_COMPLIANT
        assert len(result.issues) == 2
