"""
Configuration Loader (``itc_config.loader``).

Responsibility
--------------
Loads the ITC rules YAML and parses it into the frozen dataclasses of
``itc_config.schema``. Runtime callers go through
``itc_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Required keys are never defaulted silently; a missing one raises
  ``KeyError``.
* ``compute_checksum`` is a deterministic SHA-256 over canonical JSON.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid date format  -> ``ValueError`` from ``date.fromisoformat``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from itc_config.schema import (
    AgingBucketDef,
    BlockedCreditRules,
    ComplianceConstants,
    ComplianceWeights,
    ItcConfiguration,
    JurisdictionDef,
    ToleranceDefaults,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file gives an empty dict."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def _strings(values: Any) -> tuple[str, ...]:
    return tuple(str(v) for v in (values or ()))


def parse_jurisdiction(data: dict[str, Any]) -> JurisdictionDef:
    return JurisdictionDef(code=str(data["code"]).zfill(2), name=data["name"])


def parse_blocked_credits(data: dict[str, Any]) -> BlockedCreditRules:
    return BlockedCreditRules(
        seating_capacity_threshold=int(data["seating_capacity_threshold"]),
        motor_vehicle_allowed_purposes=_strings(data.get("motor_vehicle_allowed_purposes")),
        outdoor_catering_subcategory=data.get(
            "outdoor_catering_subcategory", "OUTDOOR_CATERING"
        ),
        membership_blocked_types=_strings(data.get("membership_blocked_types")),
        insurance_blocked_types=_strings(data.get("insurance_blocked_types")),
        construction_blocked_types=_strings(data.get("construction_blocked_types")),
        construction_allowed_types=_strings(data.get("construction_allowed_types")),
        construction_allowed_purposes=_strings(data.get("construction_allowed_purposes")),
        personal_usage_types=_strings(data.get("personal_usage_types")),
        reasons=dict(data.get("reasons", {})),
        tag_reasons=dict(data.get("tag_reasons", {})),
    )


def parse_constants(data: dict[str, Any]) -> ComplianceConstants:
    return ComplianceConstants(
        claim_time_limit_months=int(data["claim_time_limit_months"]),
        capital_goods_useful_life_years=int(data["capital_goods_useful_life_years"]),
        payment_grace_days=int(data["payment_grace_days"]),
        interest_rate_annual=str(data["interest_rate_annual"]),
        days_per_month=int(data.get("days_per_month", 30)),
        reversal_alert_days=int(data.get("reversal_alert_days", 180)),
        min_hsn_length=int(data.get("min_hsn_length", 4)),
    )


def parse_tolerances(data: dict[str, Any]) -> ToleranceDefaults:
    return ToleranceDefaults(
        date_tolerance_days=int(data["date_tolerance_days"]),
        amount_tolerance_percent=str(data["amount_tolerance_percent"]),
        amount_tolerance_absolute=str(data["amount_tolerance_absolute"]),
    )


def parse_aging_bucket(data: dict[str, Any]) -> AgingBucketDef:
    max_days = data.get("max_days")
    return AgingBucketDef(
        name=str(data["name"]),
        min_days=int(data["min_days"]),
        max_days=int(max_days) if max_days is not None else None,
    )


def parse_compliance_weights(data: dict[str, Any]) -> ComplianceWeights:
    return ComplianceWeights(
        reconciliation=int(data["reconciliation"]),
        payment=int(data["payment"]),
        utilization=int(data["utilization"]),
    )


def parse_configuration(data: dict[str, Any]) -> ItcConfiguration:
    """Parse a full ItcConfiguration from a dict, stamping its checksum."""
    config = ItcConfiguration(
        config_id=data["config_id"],
        version=int(data["version"]),
        effective_from=parse_date(data["effective_from"]),
        currency=data.get("currency", "INR"),
        tax_rates=_strings(data["tax_rates"]),
        jurisdictions=tuple(parse_jurisdiction(j) for j in data["jurisdictions"]),
        blocked_credits=parse_blocked_credits(data["blocked_credits"]),
        constants=parse_constants(data["constants"]),
        tolerances=parse_tolerances(data["tolerances"]),
        aging_buckets=tuple(parse_aging_bucket(b) for b in data["aging_buckets"]),
        compliance_weights=parse_compliance_weights(data["compliance_weights"]),
    )
    return replace(config, checksum=compute_checksum(data))


def load_configuration(path: Path) -> ItcConfiguration:
    return parse_configuration(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; deterministic."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
