"""
Module: itc_engines.eligibility
Responsibility:
    Decide, per purchase line, how much of the tax paid may be claimed as
    input tax credit: eligible, blocked, or partially eligible, together
    with any reversal obligations the claim creates.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import itc_kernel domain types and itc_engines.tracer.
    Rule tables and constants arrive in an EligibilityPolicy built by
    itc_config.bridges; the claim date arrives inside ItcConditions.

Algorithm (ordered, first match wins):
    1. Blocked-credit check.  Each expense variant carries only the fields
       its clause needs and maps to one predicate in ``_BLOCK_RULES``.
    2. Basic conditions (only when invoice date and supplier GSTIN are
       present).  Missing document or claim past the time limit is fatal;
       missing receipt, supplier payment or return filing alone is flagged
       for review.
    3. Import branch.  Goods need customs duty paid; services need reverse
       charge compliance recorded.
    4. Apportionment by business use and exempt supply share.
    5. Capital goods disposal inside the useful life adds a pro-rata
       reversal obligation.

Invariants enforced:
    - eligible_amount + blocked_amount == tax_amount, exactly, on every
      path (checked in EligibilityResult.__post_init__).
    - Outcomes are data.  Only an unknown expense code
      (InvalidCategoryError) or an out-of-range percentage
      (ValidationError) raise, and both happen before computation.

Audit relevance:
    Every evaluation is traced via ``@traced_engine`` with a fingerprint of
    the full input, and blocked results carry the statutory clause.

Usage:
    from itc_engines.eligibility import EligibilityEngine, EligibilityInput, MotorVehicle
    from itc_kernel.domain.values import Money

    engine = EligibilityEngine()
    result = engine.evaluate(eligibility_input=EligibilityInput(
        tax_amount=Money.of("18000"),
        expense=MotorVehicle(seating_capacity=5, business_purpose="OTHER"),
    ))
    result.is_eligible     # False
    result.blocked_amount  # Money(18000, INR)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Union

from itc_kernel.domain.periods import add_months_end, financial_year_end
from itc_kernel.domain.records import BlockedReasonTag, ItcCategory, VendorType
from itc_kernel.domain.values import Money, to_decimal
from itc_kernel.exceptions import InvalidCategoryError, ValidationError
from itc_kernel.logging_config import get_logger
from itc_engines.tracer import traced_engine

logger = get_logger("engines.eligibility")

HUNDRED = Decimal("100")


# ---------------------------------------------------------------------------
# Expense variants (one per blocked-credit clause)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MotorVehicle:
    seating_capacity: int = 0
    business_purpose: str | None = None


@dataclass(frozen=True)
class FoodBeverage:
    is_statutory_requirement: bool = False
    subcategory: str | None = None


@dataclass(frozen=True)
class Membership:
    membership_type: str | None = None


@dataclass(frozen=True)
class Insurance:
    insurance_type: str | None = None
    is_statutory_requirement: bool = False


@dataclass(frozen=True)
class Construction:
    construction_type: str | None = None
    business_purpose: str | None = None


@dataclass(frozen=True)
class PersonalUse:
    pass


@dataclass(frozen=True)
class GeneralExpense:
    usage_type: str | None = None


Expense = Union[
    MotorVehicle,
    FoodBeverage,
    Membership,
    Insurance,
    Construction,
    PersonalUse,
    GeneralExpense,
]

EXPENSE_CODES: Mapping[str, type] = MappingProxyType({
    "MOTOR_VEHICLE": MotorVehicle,
    "FOOD_BEVERAGE": FoodBeverage,
    "MEMBERSHIP": Membership,
    "INSURANCE": Insurance,
    "CONSTRUCTION": Construction,
    "PERSONAL_USE": PersonalUse,
    "GENERAL": GeneralExpense,
})


def expense_from_code(code: str, **attributes: Any) -> Expense:
    """
    Build the expense variant for a category code.

    Attributes that do not belong to the variant are ignored, so a caller
    holding a flat record can pass it through unchanged.

    Raises:
        InvalidCategoryError: the code has no blocked-credit rule.
    """
    cls = EXPENSE_CODES.get((code or "").strip().upper())
    if cls is None:
        raise InvalidCategoryError(code)
    allowed = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in attributes.items() if k in allowed})


def expense_to_code(expense: Expense) -> tuple[str, dict[str, Any]]:
    """Inverse of ``expense_from_code``: the category code and the variant's fields."""
    for code, cls in EXPENSE_CODES.items():
        if type(expense) is cls:
            return code, {f.name: getattr(expense, f.name) for f in fields(cls)}
    raise InvalidCategoryError(type(expense).__name__)


# ---------------------------------------------------------------------------
# Policy (rule table and constants)
# ---------------------------------------------------------------------------

DEFAULT_BLOCK_REASONS: Mapping[str, str] = MappingProxyType({
    "motor_vehicle": (
        "Section 17(5)(a) - Motor vehicles with seating capacity ≤ 13 "
        "(except for specific business purposes)"
    ),
    "food_beverage": (
        "Section 17(5)(b)(i) - Food and beverages "
        "(except when statutory requirement)"
    ),
    "outdoor_catering": "Section 17(5)(b)(i) - Food and beverages, outdoor catering",
    "membership": (
        "Section 17(5)(b)(ii) - Membership of clubs, health and fitness centres"
    ),
    "health_insurance": (
        "Section 17(5)(b)(iii) - health insurance "
        "(except when statutory requirement)"
    ),
    "life_insurance": (
        "Section 17(5)(b)(iii) - life insurance "
        "(except when statutory requirement)"
    ),
    "construction": (
        "Section 17(5)(c) - Works contract services for construction of "
        "immovable property (except for developers)"
    ),
    "personal_use": "Section 17(5)(g) - Goods or services for personal consumption",
})

DEFAULT_TAG_REASONS: Mapping[BlockedReasonTag, str] = MappingProxyType({
    BlockedReasonTag.MOTOR_VEHICLE: "Section 17(5) - Motor vehicles",
    BlockedReasonTag.PERSONAL_USE: "Section 17(5) - Personal use",
    BlockedReasonTag.ENTERTAINMENT: "Section 17(5) - Entertainment expenses",
    BlockedReasonTag.OTHER: "Section 17(5) - Blocked category",
})


@dataclass(frozen=True)
class BlockedCreditPolicy:
    """Thresholds, allow-lists and reason texts for the blocked-credit table."""

    seating_capacity_threshold: int = 13
    motor_vehicle_allowed_purposes: frozenset[str] = frozenset(
        {"PASSENGER_TRANSPORT", "GOODS_TRANSPORT", "IMPARTING_TRAINING"}
    )
    outdoor_catering_subcategory: str = "OUTDOOR_CATERING"
    membership_blocked_types: frozenset[str] = frozenset(
        {"CLUB", "FITNESS_CENTER", "GYM"}
    )
    insurance_blocked_types: frozenset[str] = frozenset({"HEALTH", "LIFE"})
    construction_blocked_types: frozenset[str] = frozenset({"IMMOVABLE_PROPERTY"})
    construction_allowed_types: frozenset[str] = frozenset({"PLANT_MACHINERY"})
    construction_allowed_purposes: frozenset[str] = frozenset({"SALE_DEVELOPMENT"})
    personal_usage_types: frozenset[str] = frozenset({"PERSONAL"})
    reasons: Mapping[str, str] = field(default_factory=lambda: DEFAULT_BLOCK_REASONS)

    def reason(self, key: str) -> str:
        return self.reasons.get(key) or DEFAULT_BLOCK_REASONS[key]


@dataclass(frozen=True)
class EligibilityPolicy:
    """Everything the eligibility engine needs from configuration."""

    blocked_credits: BlockedCreditPolicy = field(default_factory=BlockedCreditPolicy)
    claim_time_limit_months: int = 6
    capital_goods_useful_life_years: int = 5
    tag_reasons: Mapping[BlockedReasonTag, str] = field(
        default_factory=lambda: DEFAULT_TAG_REASONS
    )


# ---------------------------------------------------------------------------
# Inputs and results
# ---------------------------------------------------------------------------


class ImportType(str, Enum):
    GOODS = "GOODS"
    SERVICES = "SERVICES"


@dataclass(frozen=True)
class ItcConditions:
    """
    Invoice-level facts for the basic-conditions check.

    ``claim_date`` is the as-of date the claim is made on; the time limit
    is not evaluated without it.
    """

    invoice_number: str | None
    invoice_date: date | None
    supplier_gstin: str | None
    goods_receipt_date: date | None = None
    tax_paid_date: date | None = None
    return_filed_date: date | None = None
    claim_date: date | None = None

    @property
    def is_evaluable(self) -> bool:
        return self.invoice_date is not None and bool(self.supplier_gstin)


@dataclass(frozen=True)
class ConditionsSnapshot:
    valid_invoice: bool
    goods_received: bool
    tax_paid: bool
    return_filed: bool
    within_time_limit: bool


@dataclass(frozen=True)
class ImportDetails:
    import_type: ImportType
    customs_duty_paid: bool = False
    reverse_charge_complied: bool = False


@dataclass(frozen=True)
class CapitalGoodsDetails:
    """
    Useful life and, when sold or scrapped, the disposal date.

    ``useful_life_years`` falls back to the policy's
    ``capital_goods_useful_life_years`` when omitted.
    """

    useful_life_years: int | None = None
    put_to_use_date: date | None = None
    disposal_date: date | None = None


@dataclass(frozen=True)
class EligibilityInput:
    tax_amount: Money
    expense: Expense | None = None
    category: ItcCategory = ItcCategory.INPUTS
    business_use_percentage: Decimal = HUNDRED
    exempt_supply_percentage: Decimal = Decimal("0")
    conditions: ItcConditions | None = None
    import_details: ImportDetails | None = None
    capital_goods: CapitalGoodsDetails | None = None


@dataclass(frozen=True)
class ReversalObligation:
    amount: Money
    reason: str
    due_date: date | None = None


@dataclass(frozen=True)
class BlockDecision:
    """Outcome of the blocked-credit table for one expense."""

    is_blocked: bool
    blocked_category: str | None = None
    reason: str | None = None


_NOT_BLOCKED = BlockDecision(is_blocked=False)


@dataclass(frozen=True)
class EligibilityResult:
    """
    Complete eligibility outcome for one line or invoice.

    Contract:
        Always returned, never raised.  ``is_eligible`` is False only when
        nothing may be claimed.
    Guarantees:
        - eligible_amount + blocked_amount == tax_amount exactly.
    """

    tax_amount: Money
    is_eligible: bool
    eligible_amount: Money
    blocked_amount: Money
    category: ItcCategory
    blocked_category: str | None = None
    blocked_reason: str | None = None
    conditions: ConditionsSnapshot | None = None
    failed_conditions: tuple[str, ...] = ()
    needs_review: bool = False
    reversals: tuple[ReversalObligation, ...] = ()
    import_source: str | None = None

    def __post_init__(self) -> None:
        if self.eligible_amount + self.blocked_amount != self.tax_amount:
            raise ValueError(
                f"Eligibility split {self.eligible_amount} + {self.blocked_amount} "
                f"does not equal tax {self.tax_amount}"
            )

    @property
    def total_reversal(self) -> Money:
        return Money.sum(
            (r.amount for r in self.reversals), self.tax_amount.currency
        )

    @property
    def is_partial(self) -> bool:
        return self.is_eligible and self.blocked_amount.is_positive


# ---------------------------------------------------------------------------
# Blocked-credit predicates
# ---------------------------------------------------------------------------


def _motor_vehicle(e: MotorVehicle, p: BlockedCreditPolicy) -> BlockDecision:
    if (e.seating_capacity or 0) > p.seating_capacity_threshold:
        return _NOT_BLOCKED
    if e.business_purpose in p.motor_vehicle_allowed_purposes:
        return _NOT_BLOCKED
    return BlockDecision(True, "MOTOR_VEHICLE", p.reason("motor_vehicle"))


def _food_beverage(e: FoodBeverage, p: BlockedCreditPolicy) -> BlockDecision:
    if e.is_statutory_requirement:
        return _NOT_BLOCKED
    if e.subcategory == p.outdoor_catering_subcategory:
        return BlockDecision(True, "FOOD_BEVERAGE", p.reason("outdoor_catering"))
    return BlockDecision(True, "FOOD_BEVERAGE", p.reason("food_beverage"))


def _membership(e: Membership, p: BlockedCreditPolicy) -> BlockDecision:
    if e.membership_type in p.membership_blocked_types:
        return BlockDecision(True, "MEMBERSHIP", p.reason("membership"))
    return _NOT_BLOCKED


def _insurance(e: Insurance, p: BlockedCreditPolicy) -> BlockDecision:
    if e.insurance_type not in p.insurance_blocked_types:
        return _NOT_BLOCKED
    if e.is_statutory_requirement:
        return _NOT_BLOCKED
    key = "health_insurance" if e.insurance_type == "HEALTH" else "life_insurance"
    return BlockDecision(True, "INSURANCE", p.reason(key))


def _construction(e: Construction, p: BlockedCreditPolicy) -> BlockDecision:
    if e.business_purpose in p.construction_allowed_purposes:
        return _NOT_BLOCKED
    if e.construction_type in p.construction_allowed_types:
        return _NOT_BLOCKED
    if e.construction_type in p.construction_blocked_types:
        return BlockDecision(True, "CONSTRUCTION", p.reason("construction"))
    return _NOT_BLOCKED


def _personal_use(e: PersonalUse, p: BlockedCreditPolicy) -> BlockDecision:
    return BlockDecision(True, "PERSONAL_USE", p.reason("personal_use"))


def _general(e: GeneralExpense, p: BlockedCreditPolicy) -> BlockDecision:
    if e.usage_type in p.personal_usage_types:
        return BlockDecision(True, "PERSONAL_USE", p.reason("personal_use"))
    return _NOT_BLOCKED


_BLOCK_RULES: Mapping[type, Callable[[Any, BlockedCreditPolicy], BlockDecision]] = (
    MappingProxyType({
        MotorVehicle: _motor_vehicle,
        FoodBeverage: _food_beverage,
        Membership: _membership,
        Insurance: _insurance,
        Construction: _construction,
        PersonalUse: _personal_use,
        GeneralExpense: _general,
    })
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _check_percentage(value: Decimal, name: str) -> Decimal:
    value = to_decimal(value)
    if value < 0 or value > HUNDRED:
        raise ValidationError(
            f"{name} must be between 0 and 100, got {value}", field=name
        )
    return value


def apportionment_reason(business_use: Decimal, exempt_supply: Decimal) -> str:
    """Human-readable reason naming whichever apportionment factors applied."""
    if business_use < HUNDRED and exempt_supply > 0:
        return (
            f"Reversal due to business use percentage ({business_use}%) "
            f"and exempt supply percentage ({exempt_supply}%)"
        )
    if business_use < HUNDRED:
        return f"Reversal due to business use percentage ({business_use}%)"
    return f"Reversal due to exempt supply percentage ({exempt_supply}%)"


class EligibilityEngine:
    """
    Rule engine for input tax credit eligibility.

    Contract:
        Pure functions over an immutable EligibilityPolicy.  No I/O, no
        clock access.
    Guarantees:
        - Every call returns a complete EligibilityResult.
        - Rules apply in a fixed order; the first blocking rule wins.
    Non-goals:
        - Does not round.  Amounts are exact Decimal fractions of the tax.
        - Does not persist or post anything to the register.
    """

    def __init__(self, policy: EligibilityPolicy | None = None) -> None:
        self._policy = policy or EligibilityPolicy()

    @property
    def policy(self) -> EligibilityPolicy:
        return self._policy

    def check_blocked_credit(self, expense: Expense | None) -> BlockDecision:
        """Run the expense through its clause in the blocked-credit table."""
        if expense is None:
            return _NOT_BLOCKED
        rule = _BLOCK_RULES.get(type(expense))
        if rule is None:
            raise InvalidCategoryError(type(expense).__name__)
        return rule(expense, self._policy.blocked_credits)

    def claim_deadline(self, invoice_date: date) -> date:
        """Last day a credit on an invoice of this date may be claimed."""
        return add_months_end(
            financial_year_end(invoice_date), self._policy.claim_time_limit_months
        )

    def check_conditions(
        self, conditions: ItcConditions
    ) -> tuple[ConditionsSnapshot, tuple[str, ...], tuple[str, ...]]:
        """
        Evaluate the basic conditions.

        Returns:
            (snapshot, fatal failures, review failures)
        """
        valid_invoice = bool(conditions.invoice_number and conditions.invoice_number.strip())
        goods_received = conditions.goods_receipt_date is not None
        tax_paid = conditions.tax_paid_date is not None
        return_filed = conditions.return_filed_date is not None
        within_time_limit = True
        if conditions.claim_date is not None and conditions.invoice_date is not None:
            within_time_limit = (
                conditions.claim_date <= self.claim_deadline(conditions.invoice_date)
            )

        fatal: list[str] = []
        review: list[str] = []
        if not valid_invoice:
            fatal.append("Valid tax invoice required")
        if not goods_received:
            review.append("Goods/services must be received")
        if not tax_paid:
            review.append("Tax must be paid by supplier")
        if not return_filed:
            review.append("GSTR-3B must be filed")
        if not within_time_limit:
            fatal.append("ITC claim time limit exceeded")

        snapshot = ConditionsSnapshot(
            valid_invoice=valid_invoice,
            goods_received=goods_received,
            tax_paid=tax_paid,
            return_filed=return_filed,
            within_time_limit=within_time_limit,
        )
        return snapshot, tuple(fatal), tuple(review)

    def capital_goods_reversal(
        self,
        eligible: Money,
        details: CapitalGoodsDetails,
        acquired_on: date | None,
    ) -> ReversalObligation | None:
        """Pro-rata reversal for disposal inside the useful life, else None."""
        life = details.useful_life_years
        if life is None:
            life = self._policy.capital_goods_useful_life_years
        if details.disposal_date is None or life <= 0:
            return None
        start = details.put_to_use_date or acquired_on
        if start is None:
            year_of_use = 1
        else:
            if details.disposal_date < start:
                return None
            year_of_use = (details.disposal_date - start).days // 365 + 1
        if year_of_use > life:
            return None
        remaining = life - year_of_use
        if remaining <= 0:
            return None
        return ReversalObligation(
            amount=eligible * Decimal(remaining) / Decimal(life),
            reason=(
                f"Capital goods disposal within {life} years - reversal of ITC "
                f"for remaining {remaining} years"
            ),
            due_date=details.disposal_date,
        )

    @traced_engine("eligibility", "1.0", fingerprint_fields=("eligibility_input",))
    def evaluate(self, eligibility_input: EligibilityInput) -> EligibilityResult:
        """
        Evaluate one line or invoice.

        Args:
            eligibility_input: Tax amount plus the contextual attributes the
                rules need.

        Returns:
            EligibilityResult with eligible + blocked == tax.

        Raises:
            ValidationError: business use or exempt supply outside 0-100.
            InvalidCategoryError: expense is not a known variant.
        """
        inp = eligibility_input
        tax = inp.tax_amount
        zero = Money.zero(tax.currency)
        business_use = _check_percentage(
            inp.business_use_percentage, "business_use_percentage"
        )
        exempt_supply = _check_percentage(
            inp.exempt_supply_percentage, "exempt_supply_percentage"
        )

        def blocked(reason: str, **extra: Any) -> EligibilityResult:
            return EligibilityResult(
                tax_amount=tax,
                is_eligible=False,
                eligible_amount=zero,
                blocked_amount=tax,
                category=ItcCategory.BLOCKED,
                blocked_reason=reason,
                **extra,
            )

        # 1. Blocked credits
        decision = self.check_blocked_credit(inp.expense)
        if decision.is_blocked:
            logger.info(
                "itc_blocked",
                extra={
                    "blocked_category": decision.blocked_category,
                    "tax_amount": tax.amount,
                },
            )
            return blocked(decision.reason, blocked_category=decision.blocked_category)

        # 2. Basic conditions
        snapshot: ConditionsSnapshot | None = None
        review: tuple[str, ...] = ()
        if inp.conditions is not None and inp.conditions.is_evaluable:
            snapshot, fatal, review = self.check_conditions(inp.conditions)
            if fatal:
                logger.info(
                    "itc_conditions_failed",
                    extra={"failed_conditions": list(fatal + review)},
                )
                return blocked(
                    fatal[0],
                    conditions=snapshot,
                    failed_conditions=fatal + review,
                )

        # 3. Imports
        import_source: str | None = None
        if inp.import_details is not None:
            details = inp.import_details
            if details.import_type == ImportType.GOODS:
                if not details.customs_duty_paid:
                    return blocked(
                        "ITC on import of goods - customs duty not paid",
                        conditions=snapshot,
                        failed_conditions=review,
                        import_source="CUSTOMS_IGST",
                    )
                import_source = "CUSTOMS_IGST"
            else:
                if not details.reverse_charge_complied:
                    return blocked(
                        "ITC on import of services - reverse charge "
                        "compliance not recorded",
                        conditions=snapshot,
                        failed_conditions=review,
                        import_source="REVERSE_CHARGE",
                    )
                import_source = "REVERSE_CHARGE"

        # 4. Apportionment
        eligible = tax
        reversals: list[ReversalObligation] = []
        if business_use < HUNDRED or exempt_supply > 0:
            eligible = (
                tax * business_use / HUNDRED * (HUNDRED - exempt_supply) / HUNDRED
            )
            complement = tax - eligible
            if complement.is_positive:
                reversals.append(
                    ReversalObligation(
                        amount=complement,
                        reason=apportionment_reason(business_use, exempt_supply),
                    )
                )

        # 5. Capital goods disposal
        if inp.capital_goods is not None:
            acquired_on = inp.conditions.invoice_date if inp.conditions else None
            disposal = self.capital_goods_reversal(
                eligible, inp.capital_goods, acquired_on
            )
            if disposal is not None:
                reversals.append(disposal)

        return EligibilityResult(
            tax_amount=tax,
            is_eligible=True,
            eligible_amount=eligible,
            blocked_amount=tax - eligible,
            category=inp.category,
            conditions=snapshot,
            failed_conditions=review,
            needs_review=bool(review),
            reversals=tuple(reversals),
            import_source=import_source,
        )

    def determine_line_eligibility(
        self,
        tax_amount: Money,
        itc_category: ItcCategory,
        vendor_type: VendorType,
        vendor_can_claim: bool = True,
        blocked_reason: BlockedReasonTag | None = None,
        business_use_percentage: Decimal = HUNDRED,
        expense: Expense | None = None,
    ) -> EligibilityResult:
        """
        Eligibility for one purchase invoice line during ingestion.

        Vendor restrictions and an explicit BLOCKED category come first;
        everything else is delegated to ``evaluate``.
        """
        zero = Money.zero(tax_amount.currency)
        vendor_reason: str | None = None
        if vendor_type == VendorType.COMPOSITION:
            vendor_reason = "Composition dealer - No ITC available"
        elif vendor_type == VendorType.UNREGISTERED or not vendor_can_claim:
            vendor_reason = "Unregistered dealer - No ITC available"
        if vendor_reason is not None:
            return EligibilityResult(
                tax_amount=tax_amount,
                is_eligible=False,
                eligible_amount=zero,
                blocked_amount=tax_amount,
                category=itc_category,
                blocked_reason=vendor_reason,
            )

        if itc_category == ItcCategory.BLOCKED:
            tag = blocked_reason or BlockedReasonTag.OTHER
            return EligibilityResult(
                tax_amount=tax_amount,
                is_eligible=False,
                eligible_amount=zero,
                blocked_amount=tax_amount,
                category=ItcCategory.BLOCKED,
                blocked_category=tag.value,
                blocked_reason=self._policy.tag_reasons.get(
                    tag, DEFAULT_TAG_REASONS[tag]
                ),
            )

        return self.evaluate(
            eligibility_input=EligibilityInput(
                tax_amount=tax_amount,
                expense=expense,
                category=itc_category,
                business_use_percentage=business_use_percentage,
            )
        )
