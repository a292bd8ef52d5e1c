"""
Register metrics -- rates, trends and the weighted compliance score.

Pure helpers shared by the register reports. Rates are whole percentages
rounded half-up; a zero denominator gives 0 rather than an error.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from itc_kernel.domain.values import Money


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


@dataclass(frozen=True)
class CompliancePillarWeights:
    reconciliation: int = 35
    payment: int = 35
    utilization: int = 30


def whole_percent(numerator: Money | Decimal, denominator: Money | Decimal) -> int:
    """round_half_up(numerator / denominator * 100), 0 when denominator is 0."""
    num = numerator.amount if isinstance(numerator, Money) else Decimal(numerator)
    den = denominator.amount if isinstance(denominator, Money) else Decimal(denominator)
    if den == 0:
        return 0
    return round_whole(num / den * 100)


def round_whole(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def classify_trend(values: Sequence[Money | Decimal]) -> Trend:
    """
    Majority direction over the last three values.

    Each consecutive pair votes up or down; equal pairs abstain. A tie, or
    fewer than two values, is stable.
    """
    recent = [v.amount if isinstance(v, Money) else v for v in values[-3:]]
    if len(recent) < 2:
        return Trend.STABLE
    up = sum(1 for a, b in zip(recent, recent[1:]) if b > a)
    down = sum(1 for a, b in zip(recent, recent[1:]) if b < a)
    if up > down:
        return Trend.INCREASING
    if down > up:
        return Trend.DECREASING
    return Trend.STABLE


def compliance_score(
    reconciled: bool,
    payment_compliant: bool,
    utilization_compliant: bool,
    weights: CompliancePillarWeights | None = None,
) -> int:
    weights = weights or CompliancePillarWeights()
    return (
        (weights.reconciliation if reconciled else 0)
        + (weights.payment if payment_compliant else 0)
        + (weights.utilization if utilization_compliant else 0)
    )
