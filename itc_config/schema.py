"""
ItcConfiguration schema.

The versioned, reviewable rule data the engines consume: tax-rate
enumeration, jurisdiction table, blocked-credit rule table, legal
constants and matching tolerances. YAML is parsed into these types by the
loader; bridges turn them into engine policies.

Decimal-valued settings are kept as strings here so the checksum of the
parsed document is stable; bridges convert them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class JurisdictionDef:
    """A two-digit state/territory code and its name."""

    code: str
    name: str


@dataclass(frozen=True)
class BlockedCreditRules:
    seating_capacity_threshold: int = 13
    motor_vehicle_allowed_purposes: tuple[str, ...] = ()
    outdoor_catering_subcategory: str = "OUTDOOR_CATERING"
    membership_blocked_types: tuple[str, ...] = ()
    insurance_blocked_types: tuple[str, ...] = ()
    construction_blocked_types: tuple[str, ...] = ()
    construction_allowed_types: tuple[str, ...] = ()
    construction_allowed_purposes: tuple[str, ...] = ()
    personal_usage_types: tuple[str, ...] = ()
    reasons: dict[str, str] = field(default_factory=dict)
    tag_reasons: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ComplianceConstants:
    claim_time_limit_months: int = 6
    capital_goods_useful_life_years: int = 5
    payment_grace_days: int = 180
    interest_rate_annual: str = "0.18"
    days_per_month: int = 30
    reversal_alert_days: int = 180
    min_hsn_length: int = 4


@dataclass(frozen=True)
class ToleranceDefaults:
    date_tolerance_days: int = 3
    amount_tolerance_percent: str = "1"
    amount_tolerance_absolute: str = "1"


@dataclass(frozen=True)
class AgingBucketDef:
    name: str
    min_days: int
    max_days: int | None = None


@dataclass(frozen=True)
class ComplianceWeights:
    reconciliation: int = 35
    payment: int = 35
    utilization: int = 30

    @property
    def total(self) -> int:
        return self.reconciliation + self.payment + self.utilization


@dataclass(frozen=True)
class ItcConfiguration:
    """Root configuration artifact."""

    config_id: str
    version: int
    effective_from: date
    currency: str
    tax_rates: tuple[str, ...]
    jurisdictions: tuple[JurisdictionDef, ...]
    blocked_credits: BlockedCreditRules
    constants: ComplianceConstants
    tolerances: ToleranceDefaults
    aging_buckets: tuple[AgingBucketDef, ...]
    compliance_weights: ComplianceWeights
    checksum: str = ""

    @property
    def allowed_tax_rates(self) -> tuple[Decimal, ...]:
        return tuple(Decimal(r) for r in self.tax_rates)

    def is_allowed_rate(self, rate: Decimal) -> bool:
        return Decimal(rate) in self.allowed_tax_rates

    def is_valid_jurisdiction(self, code: str | None) -> bool:
        if not code:
            return False
        return any(j.code == code.strip() for j in self.jurisdictions)

    def jurisdiction_name(self, code: str) -> str | None:
        for j in self.jurisdictions:
            if j.code == code:
                return j.name
        return None
