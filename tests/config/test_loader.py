"""
Tests for rule configuration loading, validation and bridging.

Covers:
- Loader -- packaged YAML parsed into frozen schema types
- Checksum -- deterministic, sensitive to any change
- Validator -- rate, bucket, weight and constant checks
- get_active_config -- caching, invalid files rejected
- Bridges -- engine policies built from configuration
"""

from __future__ import annotations

import dataclasses
from decimal import Decimal
from pathlib import Path

import pytest
import yaml

from itc_config import (
    DEFAULT_RULES_PATH,
    clear_config_cache,
    get_active_config,
)
from itc_config.bridges import (
    build_aging_calculator,
    build_compliance_weights,
    build_eligibility_policy,
    build_reconciliation_config,
    build_reversal_policy,
)
from itc_config.loader import compute_checksum, load_yaml_file, parse_configuration
from itc_config.schema import AgingBucketDef
from itc_config.validator import validate_configuration
from itc_kernel.domain.records import BlockedReasonTag
from itc_kernel.exceptions import ConfigurationError


@pytest.fixture
def raw_rules() -> dict:
    return load_yaml_file(DEFAULT_RULES_PATH)


def _write(tmp_path: Path, data: dict, name: str = "rules.yaml") -> Path:
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


# =========================================================================
# 1. Loader
# =========================================================================


class TestLoader:
    def test_packaged_rules(self):
        config = get_active_config()
        assert config.config_id == "itc-india-gst"
        assert config.currency == "INR"
        assert config.allowed_tax_rates == tuple(
            Decimal(r) for r in ("0", "5", "12", "18", "28")
        )
        assert config.is_allowed_rate(Decimal("18"))
        assert not config.is_allowed_rate(Decimal("15"))
        assert config.jurisdiction_name("29") == "Karnataka"
        assert config.is_valid_jurisdiction(" 27 ")
        assert not config.is_valid_jurisdiction("25")
        assert not config.is_valid_jurisdiction(None)

    def test_schema_is_frozen(self):
        config = get_active_config()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.version = 99

    def test_jurisdiction_codes_padded(self, raw_rules):
        raw_rules["jurisdictions"] = [{"code": 7, "name": "Delhi"}]
        config = parse_configuration(raw_rules)
        assert config.jurisdictions[0].code == "07"

    def test_missing_required_key(self, raw_rules):
        del raw_rules["constants"]["payment_grace_days"]
        with pytest.raises(KeyError):
            parse_configuration(raw_rules)


# =========================================================================
# 2. Checksum
# =========================================================================


class TestChecksum:
    def test_deterministic(self, raw_rules):
        first = parse_configuration(raw_rules).checksum
        second = parse_configuration(load_yaml_file(DEFAULT_RULES_PATH)).checksum
        assert first == second
        assert len(first) == 64

    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_changes_with_content(self, raw_rules):
        before = parse_configuration(raw_rules).checksum
        raw_rules["tolerances"]["date_tolerance_days"] = 5
        assert parse_configuration(raw_rules).checksum != before


# =========================================================================
# 3. Validator
# =========================================================================


class TestValidator:
    def test_packaged_rules_valid(self):
        result = validate_configuration(get_active_config())
        assert result.is_valid, result.errors
        assert result.warnings == []

    def test_weights_must_sum_to_100(self, raw_rules):
        raw_rules["compliance_weights"]["reconciliation"] = 40
        result = validate_configuration(parse_configuration(raw_rules))
        assert "Compliance weights must sum to 100, got 105" in result.errors

    def test_bad_rates(self, raw_rules):
        raw_rules["tax_rates"] = ["abc", "18", "18", "120"]
        errors = validate_configuration(parse_configuration(raw_rules)).errors
        assert "Tax rate 'abc' is not a number" in errors
        assert "Duplicate tax rate 18" in errors
        assert "Tax rate 120 outside 0-100" in errors

    def test_buckets_must_be_contiguous(self):
        config = dataclasses.replace(
            get_active_config(),
            aging_buckets=(
                AgingBucketDef("0-30", 0, 30),
                AgingBucketDef("40+", 40, None),
            ),
        )
        errors = validate_configuration(config).errors
        assert "Aging buckets '0-30' and '40+' are not contiguous" in errors

    def test_last_bucket_unbounded(self):
        config = dataclasses.replace(
            get_active_config(),
            aging_buckets=(AgingBucketDef("0-30", 0, 30),),
        )
        errors = validate_configuration(config).errors
        assert "Last aging bucket must be unbounded" in errors

    def test_negative_constants(self, raw_rules):
        raw_rules["constants"]["payment_grace_days"] = -1
        raw_rules["tolerances"]["amount_tolerance_percent"] = "-0.5"
        errors = validate_configuration(parse_configuration(raw_rules)).errors
        assert "payment_grace_days cannot be negative" in errors
        assert "amount_tolerance_percent must be a non-negative number" in errors

    def test_missing_reason_is_warning(self, raw_rules):
        del raw_rules["blocked_credits"]["reasons"]["membership"]
        result = validate_configuration(parse_configuration(raw_rules))
        assert result.is_valid
        assert result.warnings == [
            "Blocked-credit reason 'membership' missing; default text used"
        ]


# =========================================================================
# 4. get_active_config
# =========================================================================


class TestActiveConfig:
    def test_cached_until_cleared(self):
        first = get_active_config()
        assert get_active_config() is first
        clear_config_cache()
        reloaded = get_active_config()
        assert reloaded is not first
        assert reloaded == first

    def test_custom_path(self, tmp_path, raw_rules):
        raw_rules["version"] = 4
        config = get_active_config(_write(tmp_path, raw_rules))
        assert config.version == 4

    def test_invalid_file_rejected(self, tmp_path, raw_rules):
        raw_rules["compliance_weights"]["utilization"] = 0
        path = _write(tmp_path, raw_rules)

        with pytest.raises(ConfigurationError) as exc_info:
            get_active_config(path)

        assert exc_info.value.code == "CONFIGURATION_ERROR"
        assert exc_info.value.source == str(path.resolve())
        assert "Compliance weights must sum to 100, got 70" in str(exc_info.value)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_load_emits_trace(self, tmp_path, raw_rules, captured_logs):
        get_active_config(_write(tmp_path, raw_rules, "traced.yaml"))
        traces = [r for r in captured_logs() if r["message"] == "ITC_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["config_id"] == "itc-india-gst"
        assert traces[0]["tax_rate_count"] == 5
        assert len(traces[0]["checksum"]) == 64


# =========================================================================
# 5. Bridges
# =========================================================================


class TestBridges:
    def test_eligibility_policy(self):
        policy = build_eligibility_policy(get_active_config())
        assert policy.claim_time_limit_months == 6
        assert policy.capital_goods_useful_life_years == 5
        assert policy.blocked_credits.seating_capacity_threshold == 13
        assert "GYM" in policy.blocked_credits.membership_blocked_types
        assert policy.tag_reasons[BlockedReasonTag.MOTOR_VEHICLE] == (
            "Section 17(5) - Motor vehicles"
        )

    def test_unknown_tag_rejected(self, raw_rules):
        raw_rules["blocked_credits"]["tag_reasons"]["YACHTS"] = "Section 17(5) - Yachts"
        with pytest.raises(ConfigurationError, match="Unknown blocked-reason tag"):
            build_eligibility_policy(parse_configuration(raw_rules))

    def test_reversal_policy(self):
        policy = build_reversal_policy(get_active_config())
        assert policy.payment_grace_days == 180
        assert policy.interest_rate_annual == Decimal("0.18")
        assert policy.days_per_month == 30

    def test_reconciliation_config(self):
        tolerances = build_reconciliation_config(get_active_config())
        assert tolerances.date_tolerance_days == 3
        assert tolerances.amount_tolerance_percent == Decimal("1")
        assert tolerances.amount_tolerance_absolute == Decimal("1")

    def test_aging_calculator(self):
        calculator = build_aging_calculator(get_active_config())
        assert calculator.classify(200).name == "181-365"
        assert calculator.classify(400).name == "over-365"

    def test_compliance_weights(self):
        weights = build_compliance_weights(get_active_config())
        assert (weights.reconciliation, weights.payment, weights.utilization) == (35, 35, 30)
