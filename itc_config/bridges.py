"""
Config -> Engine Bridges.

Functions that convert an ItcConfiguration into the policy objects the
engines take. These live in itc_config (the producer) because engines
must never import itc_config.

Usage:
    from itc_config import get_active_config
    from itc_config.bridges import build_eligibility_policy

    config = get_active_config()
    engine = EligibilityEngine(build_eligibility_policy(config))
"""

from __future__ import annotations

from decimal import Decimal
from types import MappingProxyType

from itc_config.schema import ItcConfiguration
from itc_engines.aging import AgeBucket, ItcAgingCalculator
from itc_engines.eligibility import (
    DEFAULT_BLOCK_REASONS,
    DEFAULT_TAG_REASONS,
    BlockedCreditPolicy,
    EligibilityPolicy,
)
from itc_engines.matching import ReconciliationConfig
from itc_engines.metrics import CompliancePillarWeights
from itc_engines.reversal import ReversalPolicy
from itc_kernel.domain.records import BlockedReasonTag
from itc_kernel.exceptions import ConfigurationError


def build_blocked_credit_policy(config: ItcConfiguration) -> BlockedCreditPolicy:
    rules = config.blocked_credits
    reasons = {**DEFAULT_BLOCK_REASONS, **rules.reasons}
    return BlockedCreditPolicy(
        seating_capacity_threshold=rules.seating_capacity_threshold,
        motor_vehicle_allowed_purposes=frozenset(rules.motor_vehicle_allowed_purposes),
        outdoor_catering_subcategory=rules.outdoor_catering_subcategory,
        membership_blocked_types=frozenset(rules.membership_blocked_types),
        insurance_blocked_types=frozenset(rules.insurance_blocked_types),
        construction_blocked_types=frozenset(rules.construction_blocked_types),
        construction_allowed_types=frozenset(rules.construction_allowed_types),
        construction_allowed_purposes=frozenset(rules.construction_allowed_purposes),
        personal_usage_types=frozenset(rules.personal_usage_types),
        reasons=MappingProxyType(reasons),
    )


def build_eligibility_policy(config: ItcConfiguration) -> EligibilityPolicy:
    tag_reasons = dict(DEFAULT_TAG_REASONS)
    for tag, text in config.blocked_credits.tag_reasons.items():
        try:
            tag_reasons[BlockedReasonTag(tag)] = text
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown blocked-reason tag {tag!r}", source=config.config_id
            ) from e
    return EligibilityPolicy(
        blocked_credits=build_blocked_credit_policy(config),
        claim_time_limit_months=config.constants.claim_time_limit_months,
        capital_goods_useful_life_years=config.constants.capital_goods_useful_life_years,
        tag_reasons=MappingProxyType(tag_reasons),
    )


def build_reversal_policy(config: ItcConfiguration) -> ReversalPolicy:
    constants = config.constants
    return ReversalPolicy(
        payment_grace_days=constants.payment_grace_days,
        interest_rate_annual=Decimal(constants.interest_rate_annual),
        days_per_month=constants.days_per_month,
    )


def build_reconciliation_config(config: ItcConfiguration) -> ReconciliationConfig:
    tolerances = config.tolerances
    return ReconciliationConfig(
        date_tolerance_days=tolerances.date_tolerance_days,
        amount_tolerance_percent=Decimal(tolerances.amount_tolerance_percent),
        amount_tolerance_absolute=Decimal(tolerances.amount_tolerance_absolute),
    )


def build_aging_calculator(config: ItcConfiguration) -> ItcAgingCalculator:
    buckets = tuple(
        AgeBucket(b.name, b.min_days, b.max_days) for b in config.aging_buckets
    )
    return ItcAgingCalculator(
        buckets=buckets,
        reversal_threshold_days=config.constants.reversal_alert_days,
    )


def build_compliance_weights(config: ItcConfiguration) -> CompliancePillarWeights:
    weights = config.compliance_weights
    return CompliancePillarWeights(
        reconciliation=weights.reconciliation,
        payment=weights.payment,
        utilization=weights.utilization,
    )
