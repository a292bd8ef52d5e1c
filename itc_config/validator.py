"""
Configuration Validator (``itc_config.validator``).

Responsibility
--------------
Checks an ``ItcConfiguration`` for structural consistency before any
engine is built from it.

Invariants enforced
-------------------
* Tax rates are unique, non-negative and at most 100.
* Jurisdiction codes are unique two-digit strings.
* Aging buckets start at 0, are contiguous and end unbounded.
* Compliance pillar weights sum to 100.
* Every blocked-credit clause has a reason text.
* Time limits and tolerances are non-negative.

Failure modes
-------------
* Errors  -> the configuration MUST NOT be used.
* Warnings  -> usable, should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from itc_config.schema import ItcConfiguration

REQUIRED_REASON_KEYS = (
    "motor_vehicle",
    "food_beverage",
    "outdoor_catering",
    "membership",
    "health_insurance",
    "life_insurance",
    "construction",
    "personal_use",
)


@dataclass
class ConfigValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def _decimal(value: str) -> Decimal | None:
    try:
        return Decimal(value)
    except (InvalidOperation, ValueError):
        return None


def _validate_rates(config: ItcConfiguration, result: ConfigValidationResult) -> None:
    seen: set[Decimal] = set()
    for raw in config.tax_rates:
        rate = _decimal(raw)
        if rate is None:
            result.add_error(f"Tax rate {raw!r} is not a number")
            continue
        if rate < 0 or rate > 100:
            result.add_error(f"Tax rate {raw} outside 0-100")
        if rate in seen:
            result.add_error(f"Duplicate tax rate {raw}")
        seen.add(rate)
    if not seen:
        result.add_error("At least one tax rate is required")


def _validate_jurisdictions(
    config: ItcConfiguration, result: ConfigValidationResult
) -> None:
    seen: set[str] = set()
    for j in config.jurisdictions:
        if len(j.code) != 2 or not j.code.isdigit():
            result.add_error(f"Jurisdiction code {j.code!r} must be two digits")
        if j.code in seen:
            result.add_error(f"Duplicate jurisdiction code {j.code}")
        seen.add(j.code)


def _validate_buckets(config: ItcConfiguration, result: ConfigValidationResult) -> None:
    buckets = config.aging_buckets
    if not buckets:
        result.add_error("At least one aging bucket is required")
        return
    if buckets[0].min_days != 0:
        result.add_error("First aging bucket must start at 0 days")
    for prev, nxt in zip(buckets, buckets[1:]):
        if prev.max_days is None:
            result.add_error(f"Aging bucket {prev.name!r} is unbounded but not last")
            break
        if nxt.min_days != prev.max_days + 1:
            result.add_error(
                f"Aging buckets {prev.name!r} and {nxt.name!r} are not contiguous"
            )
    if buckets[-1].max_days is not None:
        result.add_error("Last aging bucket must be unbounded")


def validate_configuration(config: ItcConfiguration) -> ConfigValidationResult:
    """Validate a parsed configuration; never raises."""
    result = ConfigValidationResult()

    _validate_rates(config, result)
    _validate_jurisdictions(config, result)
    _validate_buckets(config, result)

    if config.compliance_weights.total != 100:
        result.add_error(
            f"Compliance weights must sum to 100, got {config.compliance_weights.total}"
        )

    reasons = config.blocked_credits.reasons
    for key in REQUIRED_REASON_KEYS:
        if not reasons.get(key):
            result.add_warning(f"Blocked-credit reason {key!r} missing; default text used")

    constants = config.constants
    if constants.claim_time_limit_months < 0:
        result.add_error("claim_time_limit_months cannot be negative")
    if constants.capital_goods_useful_life_years <= 0:
        result.add_error("capital_goods_useful_life_years must be positive")
    if constants.payment_grace_days < 0:
        result.add_error("payment_grace_days cannot be negative")
    if constants.days_per_month <= 0:
        result.add_error("days_per_month must be positive")
    interest = _decimal(constants.interest_rate_annual)
    if interest is None or interest < 0:
        result.add_error("interest_rate_annual must be a non-negative number")

    tolerances = config.tolerances
    if tolerances.date_tolerance_days < 0:
        result.add_error("date_tolerance_days cannot be negative")
    for name in ("amount_tolerance_percent", "amount_tolerance_absolute"):
        value = _decimal(getattr(tolerances, name))
        if value is None or value < 0:
            result.add_error(f"{name} must be a non-negative number")

    return result
