"""
Tests for the ITC eligibility engine.

Verifies:
- Blocked-credit clauses, one expense variant per clause
- Basic conditions: fatal failures block, review failures only flag
- Import and capital goods branches
- Business-use and exempt-supply apportionment
- eligible + blocked == tax on every path
- Vendor gating and explicit BLOCKED categories for invoice lines
"""

from datetime import date
from decimal import Decimal

import pytest

from itc_engines.eligibility import (
    CapitalGoodsDetails,
    Construction,
    EligibilityEngine,
    EligibilityInput,
    EligibilityPolicy,
    FoodBeverage,
    GeneralExpense,
    ImportDetails,
    ImportType,
    Insurance,
    ItcConditions,
    Membership,
    MotorVehicle,
    PersonalUse,
    expense_from_code,
    expense_to_code,
)
from itc_kernel.domain.records import BlockedReasonTag, ItcCategory, VendorType
from itc_kernel.domain.values import Money
from itc_kernel.exceptions import InvalidCategoryError, ValidationError


@pytest.fixture
def engine():
    return EligibilityEngine(EligibilityPolicy())


def _evaluate(engine, tax="10000", **kwargs):
    return engine.evaluate(
        eligibility_input=EligibilityInput(tax_amount=Money.of(tax), **kwargs)
    )


def _conditions(**overrides):
    values = dict(
        invoice_number="INV-001",
        invoice_date=date(2024, 4, 10),
        supplier_gstin="29ABCDE1234F1Z5",
        goods_receipt_date=date(2024, 4, 12),
        tax_paid_date=date(2024, 5, 11),
        return_filed_date=date(2024, 5, 20),
        claim_date=date(2024, 6, 1),
    )
    values.update(overrides)
    return ItcConditions(**values)


class TestBlockedCredits:
    def test_motor_vehicle_small_seating_blocked(self, engine):
        result = _evaluate(
            engine,
            tax="18000",
            expense=MotorVehicle(seating_capacity=5, business_purpose="OTHER"),
        )
        assert result.is_eligible is False
        assert result.blocked_amount == Money.of("18000")
        assert result.eligible_amount.is_zero
        assert result.category == ItcCategory.BLOCKED
        assert result.blocked_category == "MOTOR_VEHICLE"
        assert "Section 17(5)(a)" in result.blocked_reason
        assert "seating capacity" in result.blocked_reason

    def test_motor_vehicle_large_seating_allowed(self, engine):
        result = _evaluate(engine, expense=MotorVehicle(seating_capacity=14))
        assert result.is_eligible
        assert result.eligible_amount == Money.of("10000")

    def test_motor_vehicle_at_threshold_blocked(self, engine):
        result = _evaluate(engine, expense=MotorVehicle(seating_capacity=13))
        assert not result.is_eligible

    @pytest.mark.parametrize(
        "purpose", ["PASSENGER_TRANSPORT", "GOODS_TRANSPORT", "IMPARTING_TRAINING"]
    )
    def test_motor_vehicle_allowed_purpose(self, engine, purpose):
        result = _evaluate(
            engine, expense=MotorVehicle(seating_capacity=5, business_purpose=purpose)
        )
        assert result.is_eligible

    def test_food_blocked_unless_statutory(self, engine):
        assert not _evaluate(engine, expense=FoodBeverage()).is_eligible
        assert _evaluate(
            engine, expense=FoodBeverage(is_statutory_requirement=True)
        ).is_eligible

    def test_outdoor_catering_reason(self, engine):
        result = _evaluate(engine, expense=FoodBeverage(subcategory="OUTDOOR_CATERING"))
        assert "outdoor catering" in result.blocked_reason

    @pytest.mark.parametrize("kind,blocked", [("CLUB", True), ("GYM", True), ("TRADE_BODY", False)])
    def test_membership(self, engine, kind, blocked):
        result = _evaluate(engine, expense=Membership(membership_type=kind))
        assert result.is_eligible is not blocked

    def test_health_insurance_blocked(self, engine):
        result = _evaluate(engine, expense=Insurance(insurance_type="HEALTH"))
        assert not result.is_eligible
        assert "health insurance" in result.blocked_reason

    def test_statutory_insurance_allowed(self, engine):
        result = _evaluate(
            engine,
            expense=Insurance(insurance_type="LIFE", is_statutory_requirement=True),
        )
        assert result.is_eligible

    def test_other_insurance_allowed(self, engine):
        assert _evaluate(engine, expense=Insurance(insurance_type="FIRE")).is_eligible

    def test_construction_of_immovable_property_blocked(self, engine):
        result = _evaluate(
            engine, expense=Construction(construction_type="IMMOVABLE_PROPERTY")
        )
        assert result.blocked_category == "CONSTRUCTION"

    def test_construction_for_sale_allowed(self, engine):
        result = _evaluate(
            engine,
            expense=Construction(
                construction_type="IMMOVABLE_PROPERTY",
                business_purpose="SALE_DEVELOPMENT",
            ),
        )
        assert result.is_eligible

    def test_plant_machinery_allowed(self, engine):
        result = _evaluate(engine, expense=Construction(construction_type="PLANT_MACHINERY"))
        assert result.is_eligible

    def test_personal_use_blocked(self, engine):
        assert _evaluate(engine, expense=PersonalUse()).blocked_category == "PERSONAL_USE"

    def test_general_personal_usage_blocked(self, engine):
        result = _evaluate(engine, expense=GeneralExpense(usage_type="PERSONAL"))
        assert result.blocked_category == "PERSONAL_USE"

    def test_general_business_usage_allowed(self, engine):
        assert _evaluate(engine, expense=GeneralExpense(usage_type="BUSINESS")).is_eligible

    def test_unknown_expense_type_raises(self, engine):
        with pytest.raises(InvalidCategoryError):
            engine.check_blocked_credit(object())


class TestExpenseFromCode:
    def test_builds_variant(self):
        expense = expense_from_code("motor_vehicle", seating_capacity=7)
        assert expense == MotorVehicle(seating_capacity=7)

    def test_ignores_foreign_attributes(self):
        expense = expense_from_code("PERSONAL_USE", seating_capacity=7)
        assert expense == PersonalUse()

    def test_unknown_code_raises(self):
        with pytest.raises(InvalidCategoryError):
            expense_from_code("YACHT")

    def test_code_and_fields_rebuild_variant(self):
        expense = Insurance(insurance_type="HEALTH", is_statutory_requirement=True)
        code, attributes = expense_to_code(expense)
        assert code == "INSURANCE"
        assert attributes == {"insurance_type": "HEALTH", "is_statutory_requirement": True}
        assert expense_from_code(code, **attributes) == expense

    def test_foreign_object_has_no_code(self):
        with pytest.raises(InvalidCategoryError):
            expense_to_code(object())


class TestApportionment:
    def test_business_use_and_exempt_supply(self, engine):
        result = _evaluate(
            engine,
            business_use_percentage=Decimal("60"),
            exempt_supply_percentage=Decimal("20"),
        )
        assert result.is_eligible
        assert result.is_partial
        assert result.eligible_amount == Money.of("4800")
        assert result.blocked_amount == Money.of("5200")
        assert result.total_reversal == Money.of("5200")
        assert "business use percentage (60%)" in result.reversals[0].reason
        assert "exempt supply percentage (20%)" in result.reversals[0].reason

    def test_business_use_only(self, engine):
        result = _evaluate(engine, business_use_percentage=Decimal("50"))
        assert result.eligible_amount == Money.of("5000")
        assert result.reversals[0].reason == "Reversal due to business use percentage (50%)"

    def test_zero_business_use_still_eligible_flag(self, engine):
        result = _evaluate(engine, business_use_percentage=Decimal("0"))
        assert result.eligible_amount.is_zero
        assert result.blocked_amount == Money.of("10000")

    def test_full_use_has_no_reversal(self, engine):
        result = _evaluate(engine)
        assert result.reversals == ()
        assert not result.is_partial

    def test_split_is_exact_for_awkward_fraction(self, engine):
        result = _evaluate(engine, tax="100", business_use_percentage=Decimal("33.33"))
        assert result.eligible_amount + result.blocked_amount == Money.of("100")

    @pytest.mark.parametrize(
        "field,value",
        [
            ("business_use_percentage", Decimal("101")),
            ("business_use_percentage", Decimal("-1")),
            ("exempt_supply_percentage", Decimal("100.01")),
        ],
    )
    def test_out_of_range_percentage_raises(self, engine, field, value):
        with pytest.raises(ValidationError):
            _evaluate(engine, **{field: value})


class TestConditions:
    def test_all_conditions_met(self, engine):
        result = _evaluate(engine, conditions=_conditions())
        assert result.is_eligible
        assert not result.needs_review
        assert result.conditions.within_time_limit

    def test_missing_invoice_number_blocks(self, engine):
        result = _evaluate(engine, conditions=_conditions(invoice_number=" "))
        assert not result.is_eligible
        assert result.blocked_reason == "Valid tax invoice required"

    def test_claim_after_deadline_blocks(self, engine):
        result = _evaluate(engine, conditions=_conditions(claim_date=date(2025, 10, 1)))
        assert not result.is_eligible
        assert result.blocked_reason == "ITC claim time limit exceeded"
        assert result.conditions.within_time_limit is False

    def test_claim_on_deadline_allowed(self, engine):
        result = _evaluate(engine, conditions=_conditions(claim_date=date(2025, 9, 30)))
        assert result.is_eligible

    def test_claim_deadline(self, engine):
        assert engine.claim_deadline(date(2024, 4, 10)) == date(2025, 9, 30)
        assert engine.claim_deadline(date(2025, 2, 1)) == date(2025, 9, 30)

    def test_review_failures_only_flag(self, engine):
        result = _evaluate(
            engine,
            conditions=_conditions(goods_receipt_date=None, return_filed_date=None),
        )
        assert result.is_eligible
        assert result.needs_review
        assert result.failed_conditions == (
            "Goods/services must be received",
            "GSTR-3B must be filed",
        )

    def test_conditions_skipped_without_gstin(self, engine):
        result = _evaluate(
            engine, conditions=_conditions(supplier_gstin=None, invoice_number=None)
        )
        assert result.is_eligible
        assert result.conditions is None

    def test_blocked_credit_wins_over_conditions(self, engine):
        result = _evaluate(
            engine,
            expense=PersonalUse(),
            conditions=_conditions(invoice_number=None),
        )
        assert result.blocked_category == "PERSONAL_USE"


class TestImports:
    def test_goods_without_customs_duty_blocked(self, engine):
        result = _evaluate(engine, import_details=ImportDetails(ImportType.GOODS))
        assert not result.is_eligible
        assert result.import_source == "CUSTOMS_IGST"

    def test_goods_with_customs_duty(self, engine):
        result = _evaluate(
            engine,
            import_details=ImportDetails(ImportType.GOODS, customs_duty_paid=True),
        )
        assert result.is_eligible
        assert result.import_source == "CUSTOMS_IGST"

    def test_services_need_reverse_charge(self, engine):
        blocked = _evaluate(engine, import_details=ImportDetails(ImportType.SERVICES))
        allowed = _evaluate(
            engine,
            import_details=ImportDetails(
                ImportType.SERVICES, reverse_charge_complied=True
            ),
        )
        assert not blocked.is_eligible
        assert allowed.is_eligible
        assert allowed.import_source == "REVERSE_CHARGE"


class TestCapitalGoods:
    def test_disposal_inside_useful_life(self, engine):
        result = _evaluate(
            engine,
            category=ItcCategory.CAPITAL_GOODS,
            capital_goods=CapitalGoodsDetails(
                useful_life_years=5,
                put_to_use_date=date(2024, 4, 1),
                disposal_date=date(2025, 5, 1),
            ),
        )
        assert result.is_eligible
        assert result.eligible_amount == Money.of("10000")
        assert len(result.reversals) == 1
        assert result.reversals[0].amount == Money.of("6000")
        assert "remaining 3 years" in result.reversals[0].reason
        assert result.reversals[0].due_date == date(2025, 5, 1)

    def test_disposal_after_useful_life(self, engine):
        result = _evaluate(
            engine,
            capital_goods=CapitalGoodsDetails(
                useful_life_years=5,
                put_to_use_date=date(2018, 4, 1),
                disposal_date=date(2024, 5, 1),
            ),
        )
        assert result.reversals == ()

    def test_not_disposed(self, engine):
        result = _evaluate(engine, capital_goods=CapitalGoodsDetails(useful_life_years=5))
        assert result.reversals == ()

    def test_useful_life_defaults_to_policy(self):
        engine = EligibilityEngine(EligibilityPolicy(capital_goods_useful_life_years=4))
        result = _evaluate(
            engine,
            category=ItcCategory.CAPITAL_GOODS,
            capital_goods=CapitalGoodsDetails(
                put_to_use_date=date(2024, 4, 1),
                disposal_date=date(2025, 5, 1),
            ),
        )
        assert result.reversals[0].amount == Money.of("5000")
        assert "within 4 years" in result.reversals[0].reason

    def test_explicit_useful_life_wins(self):
        engine = EligibilityEngine(EligibilityPolicy(capital_goods_useful_life_years=4))
        result = _evaluate(
            engine,
            category=ItcCategory.CAPITAL_GOODS,
            capital_goods=CapitalGoodsDetails(
                useful_life_years=5,
                put_to_use_date=date(2024, 4, 1),
                disposal_date=date(2025, 5, 1),
            ),
        )
        assert result.reversals[0].amount == Money.of("6000")


class TestLineEligibility:
    def test_regular_vendor_inputs(self, engine):
        result = engine.determine_line_eligibility(
            tax_amount=Money.of("1800"),
            itc_category=ItcCategory.INPUTS,
            vendor_type=VendorType.REGULAR,
        )
        assert result.is_eligible
        assert result.eligible_amount == Money.of("1800")

    def test_composition_vendor(self, engine):
        result = engine.determine_line_eligibility(
            tax_amount=Money.of("1800"),
            itc_category=ItcCategory.INPUTS,
            vendor_type=VendorType.COMPOSITION,
        )
        assert not result.is_eligible
        assert result.blocked_reason == "Composition dealer - No ITC available"
        assert result.blocked_amount == Money.of("1800")

    def test_unregistered_vendor(self, engine):
        result = engine.determine_line_eligibility(
            tax_amount=Money.of("1800"),
            itc_category=ItcCategory.INPUTS,
            vendor_type=VendorType.UNREGISTERED,
        )
        assert result.blocked_reason == "Unregistered dealer - No ITC available"

    def test_regular_vendor_that_cannot_claim(self, engine):
        result = engine.determine_line_eligibility(
            tax_amount=Money.of("1800"),
            itc_category=ItcCategory.INPUTS,
            vendor_type=VendorType.REGULAR,
            vendor_can_claim=False,
        )
        assert not result.is_eligible

    def test_explicit_blocked_category(self, engine):
        result = engine.determine_line_eligibility(
            tax_amount=Money.of("1800"),
            itc_category=ItcCategory.BLOCKED,
            vendor_type=VendorType.REGULAR,
            blocked_reason=BlockedReasonTag.MOTOR_VEHICLE,
        )
        assert not result.is_eligible
        assert result.blocked_category == "MOTOR_VEHICLE"
        assert result.blocked_reason == "Section 17(5) - Motor vehicles"

    def test_blocked_category_without_tag(self, engine):
        result = engine.determine_line_eligibility(
            tax_amount=Money.of("1800"),
            itc_category=ItcCategory.BLOCKED,
            vendor_type=VendorType.REGULAR,
        )
        assert result.blocked_reason == "Section 17(5) - Blocked category"

    def test_expense_variant_delegated(self, engine):
        result = engine.determine_line_eligibility(
            tax_amount=Money.of("1800"),
            itc_category=ItcCategory.INPUT_SERVICES,
            vendor_type=VendorType.REGULAR,
            expense=Membership(membership_type="CLUB"),
        )
        assert result.blocked_category == "MEMBERSHIP"

    def test_partial_business_use(self, engine):
        result = engine.determine_line_eligibility(
            tax_amount=Money.of("1800"),
            itc_category=ItcCategory.CAPITAL_GOODS,
            vendor_type=VendorType.REGULAR,
            business_use_percentage=Decimal("50"),
        )
        assert result.eligible_amount == Money.of("900")
        assert result.category == ItcCategory.CAPITAL_GOODS


class TestTracing:
    def test_evaluation_is_traced(self, engine, captured_logs):
        _evaluate(engine)
        traces = [r for r in captured_logs() if r["message"] == "ITC_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "eligibility"
        assert len(traces[-1]["input_fingerprint"]) == 16
