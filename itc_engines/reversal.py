"""
Module: itc_engines.reversal
Responsibility:
    Compute mandatory ITC reversals after a credit has been claimed:
    non-payment to the supplier, goods lost, change to personal use,
    credit notes and an increase in exempt supplies.  Also the
    turnover-ratio reversal for common credit and the claim-compliance
    check.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The caller supplies every date; constants arrive in a ReversalPolicy.

Invariants enforced:
    - reversal_amount never exceeds the original eligible amount.
    - Interest is charged only for non-payment, and only for whole
      (rounded-up) months past the grace window.
    - total_amount == reversal_amount + interest_amount.

Failure modes:
    - ValidationError when a parameter required by the chosen reason is
      missing or a percentage is outside 0-100.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from itc_kernel.domain.values import Money, to_decimal
from itc_kernel.exceptions import ValidationError
from itc_kernel.logging_config import get_logger
from itc_engines.tracer import traced_engine

logger = get_logger("engines.reversal")

HUNDRED = Decimal("100")


class ReversalReason(str, Enum):
    NON_PAYMENT = "NON_PAYMENT"
    GOODS_LOST = "GOODS_LOST"
    USAGE_CHANGED_TO_PERSONAL = "USAGE_CHANGED_TO_PERSONAL"
    CREDIT_NOTE = "CREDIT_NOTE"
    EXEMPT_SUPPLY_INCREASED = "EXEMPT_SUPPLY_INCREASED"


class ComplianceStatus(str, Enum):
    COMPLIANT = "COMPLIANT"
    NON_COMPLIANT = "NON_COMPLIANT"


@dataclass(frozen=True)
class ReversalPolicy:
    payment_grace_days: int = 180
    interest_rate_annual: Decimal = Decimal("0.18")
    days_per_month: int = 30


@dataclass(frozen=True)
class ReversalResult:
    reversal_amount: Money
    interest_amount: Money
    total_amount: Money
    reason: str
    due_date: date | None = None


@dataclass(frozen=True)
class ExemptSupplyReversal:
    """Split of common credit between exempt and taxable turnover."""

    reversal_amount: Money
    retained_amount: Money
    exempt_ratio: Decimal


@dataclass(frozen=True)
class ClaimCompliance:
    status: ComplianceStatus
    issues: tuple[str, ...]
    audit_trail: str

    @property
    def is_compliant(self) -> bool:
        return self.status == ComplianceStatus.COMPLIANT


def _required(value, name: str, reason: ReversalReason):
    if value is None:
        raise ValidationError(
            f"{name} is required for {reason.value} reversal", field=name
        )
    return value


def _percentage(value, name: str) -> Decimal:
    value = to_decimal(value)
    if value < 0 or value > HUNDRED:
        raise ValidationError(
            f"{name} must be between 0 and 100, got {value}", field=name
        )
    return value


def non_payment_interest(
    itc_amount: Money,
    days_since_invoice: int,
    policy: ReversalPolicy,
) -> Money:
    """Simple interest for the whole months elapsed past the grace window."""
    excess = days_since_invoice - policy.payment_grace_days
    if excess <= 0:
        return Money.zero(itc_amount.currency)
    months = math.ceil(excess / policy.days_per_month)
    return itc_amount * policy.interest_rate_annual * months / 12


@traced_engine(
    "reversal",
    "1.0",
    fingerprint_fields=("original_itc", "reason", "invoice_date", "as_of_date"),
)
def calculate_reversal(
    original_itc: Money,
    reason: ReversalReason,
    invoice_date: date | None = None,
    as_of_date: date | None = None,
    loss_percentage: Decimal | None = None,
    personal_use_percentage: Decimal | None = None,
    credit_note_amount: Money | None = None,
    exempt_percentage_change: Decimal | None = None,
    policy: ReversalPolicy | None = None,
) -> ReversalResult:
    """
    Reversal owed on a previously eligible credit.

    Args:
        original_itc: Credit originally taken.
        reason: Why the credit must be reversed.
        invoice_date, as_of_date: Required for NON_PAYMENT.
        loss_percentage: Required for GOODS_LOST.
        personal_use_percentage: Required for USAGE_CHANGED_TO_PERSONAL.
        credit_note_amount: Required for CREDIT_NOTE; capped at original_itc.
        exempt_percentage_change: Required for EXEMPT_SUPPLY_INCREASED.

    Raises:
        ValidationError: a parameter required by ``reason`` is missing.
    """
    policy = policy or ReversalPolicy()
    zero = Money.zero(original_itc.currency)
    interest = zero
    due_date: date | None = None

    match reason:
        case ReversalReason.NON_PAYMENT:
            invoice_date = _required(invoice_date, "invoice_date", reason)
            as_of_date = _required(as_of_date, "as_of_date", reason)
            amount = original_itc
            interest = non_payment_interest(
                original_itc, (as_of_date - invoice_date).days, policy
            )
            text = (
                f"Non-payment to supplier within {policy.payment_grace_days} "
                "days - Rule 37"
            )
            due_date = invoice_date + timedelta(days=policy.payment_grace_days)
        case ReversalReason.GOODS_LOST:
            pct = _percentage(
                _required(loss_percentage, "loss_percentage", reason),
                "loss_percentage",
            )
            amount = original_itc.percent(pct)
            text = f"Goods lost/destroyed - {pct}% reversal required"
        case ReversalReason.USAGE_CHANGED_TO_PERSONAL:
            pct = _percentage(
                _required(
                    personal_use_percentage, "personal_use_percentage", reason
                ),
                "personal_use_percentage",
            )
            amount = original_itc.percent(pct)
            text = f"Changed to personal use - {pct}% reversal required"
        case ReversalReason.CREDIT_NOTE:
            note = _required(credit_note_amount, "credit_note_amount", reason)
            amount = min(note, original_itc)
            text = "credit note received - ITC reversal required"
        case ReversalReason.EXEMPT_SUPPLY_INCREASED:
            pct = _percentage(
                _required(
                    exempt_percentage_change, "exempt_percentage_change", reason
                ),
                "exempt_percentage_change",
            )
            amount = original_itc.percent(pct)
            text = "Exempt supply percentage increased - additional reversal required"
        case _:
            raise ValidationError(f"Unknown reversal reason: {reason}", field="reason")

    logger.info("reversal_calculated", extra={
        "reason": reason.value,
        "reversal_amount": str(amount.amount),
        "interest_amount": str(interest.amount),
    })

    return ReversalResult(
        reversal_amount=amount,
        interest_amount=interest,
        total_amount=amount + interest,
        reason=text,
        due_date=due_date,
    )


def calculate_exempt_supply_reversal(
    total_itc: Money,
    exempt_turnover: Money,
    total_turnover: Money,
) -> ExemptSupplyReversal:
    """Reverse common credit in the ratio of exempt to total turnover."""
    if total_turnover.is_zero:
        return ExemptSupplyReversal(
            reversal_amount=Money.zero(total_itc.currency),
            retained_amount=total_itc,
            exempt_ratio=Decimal("0"),
        )
    ratio = exempt_turnover.ratio_to(total_turnover)
    reversal = total_itc * ratio
    return ExemptSupplyReversal(
        reversal_amount=reversal,
        retained_amount=total_itc - reversal,
        exempt_ratio=ratio,
    )


def track_claim_compliance(
    claimed: Money,
    eligible: Money,
    claim_basis: str | None = None,
) -> ClaimCompliance:
    """Flag claims above the eligible amount or against a blocked category."""
    issues: list[str] = []
    if claimed > eligible:
        issues.append("Claimed amount exceeds eligible amount")
    if claim_basis == "BLOCKED_CATEGORY":
        issues.append("ITC claimed for blocked category under Section 17(5)")
    status = ComplianceStatus.NON_COMPLIANT if issues else ComplianceStatus.COMPLIANT
    audit_trail = (
        f"ITC claimed: {claimed.amount}, Eligible: {eligible.amount}, "
        f"Status: {status.value}"
    )
    if issues:
        logger.warning("itc_claim_non_compliant", extra={
            "claimed": str(claimed.amount),
            "eligible": str(eligible.amount),
            "issues": issues,
        })
    return ClaimCompliance(status=status, issues=tuple(issues), audit_trail=audit_trail)
