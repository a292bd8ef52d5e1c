"""
Module: itc_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines: GST computation, eligibility, reversals,
    matching, aging and register metrics.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import itc_kernel domain types (and sibling engine modules).
    MUST NOT import itc_services or itc_config.

Invariants enforced:
    - Purity: engines never call ``datetime.now()`` or ``date.today()``.
      Dates are explicit parameters supplied by services.
    - Decimal-only arithmetic through Money.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Public engine entry points are traced via ``@traced_engine``
    (see ``itc_engines.tracer``), emitting ITC_ENGINE_TRACE records.
"""

from itc_engines.aging import (
    ITC_AGING_BUCKETS,
    AgeBucket,
    AgingDocument,
    AlertType,
    ComplianceAlert,
    ItcAgingCalculator,
    ItcAgingReport,
)
from itc_engines.eligibility import (
    BlockedCreditPolicy,
    CapitalGoodsDetails,
    Construction,
    EligibilityEngine,
    EligibilityInput,
    EligibilityPolicy,
    EligibilityResult,
    FoodBeverage,
    GeneralExpense,
    ImportDetails,
    ImportType,
    Insurance,
    ItcConditions,
    Membership,
    MotorVehicle,
    PersonalUse,
    ReversalObligation,
    expense_from_code,
    expense_to_code,
)
from itc_engines.gst import TaxBreakdown, compute_tax, gstin_error, is_interstate
from itc_engines.matching import (
    LocalInvoiceRecord,
    MatchResult,
    MatchStatus,
    ReconciliationConfig,
    ReconciliationResult,
    find_duplicate_entries,
    find_potential_matches,
    match_one,
    normalize_gstin,
    normalize_invoice_number,
    reconcile,
)
from itc_engines.metrics import Trend, classify_trend, compliance_score, whole_percent
from itc_engines.reversal import (
    ReversalPolicy,
    ReversalReason,
    ReversalResult,
    calculate_exempt_supply_reversal,
    calculate_reversal,
    track_claim_compliance,
)

__all__ = [
    "ITC_AGING_BUCKETS",
    "AgeBucket",
    "AgingDocument",
    "AlertType",
    "BlockedCreditPolicy",
    "CapitalGoodsDetails",
    "ComplianceAlert",
    "Construction",
    "EligibilityEngine",
    "EligibilityInput",
    "EligibilityPolicy",
    "EligibilityResult",
    "FoodBeverage",
    "GeneralExpense",
    "ImportDetails",
    "ImportType",
    "Insurance",
    "ItcAgingCalculator",
    "ItcAgingReport",
    "ItcConditions",
    "LocalInvoiceRecord",
    "MatchResult",
    "MatchStatus",
    "Membership",
    "MotorVehicle",
    "PersonalUse",
    "ReconciliationConfig",
    "ReconciliationResult",
    "ReversalObligation",
    "ReversalPolicy",
    "ReversalReason",
    "ReversalResult",
    "TaxBreakdown",
    "Trend",
    "calculate_exempt_supply_reversal",
    "calculate_reversal",
    "classify_trend",
    "compliance_score",
    "compute_tax",
    "expense_from_code",
    "expense_to_code",
    "find_duplicate_entries",
    "find_potential_matches",
    "gstin_error",
    "is_interstate",
    "match_one",
    "normalize_gstin",
    "normalize_invoice_number",
    "reconcile",
    "track_claim_compliance",
    "whole_percent",
]
