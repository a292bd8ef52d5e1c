"""
itc_services.register -- Period ledger of input tax credit.

Responsibility:
    Maintains one register row per (owner, period): opening balance,
    eligible / claimed / reversed / blocked totals, category sub-totals and
    the closing balance. Derives the read-only reports built on those rows
    and on the owner's purchase invoices.

Architecture position:
    Services -- imperative shell over engines + kernel.
    Uses ItcAgingCalculator and the metrics helpers (pure engines) with an
    ItcRepository (persistence port) and an injected Clock.

Invariants enforced:
    - closing_balance == opening_balance + claimed_itc - reversed_itc after
      every mutation; closing is recomputed from the totals, never patched.
    - Mutations of one (owner, period) are serialized through
      ``repo.lock_for`` and a row read ``for_update``; the repository's
      version check rejects any write that still races.
    - ``initialize`` is idempotent: an existing row is returned unchanged.
    - Utilization never drives the available balance negative.

Failure modes:
    - InvalidPeriodError: period key is not MM-YYYY.
    - NegativeOpeningBalanceError: opening balance below zero.
    - RegisterNotFoundError: mutation or report on an uninitialized period.
    - InsufficientBalanceError: utilization exceeds the available balance.
    - OptimisticLockError: concurrent writer outside this process won.

Audit relevance:
    Every mutation logs the resulting totals and version under the owner
    and period bound to LogContext.

State machine:
    Uninitialized -> Active (accepting transactions) -> Reconciled.
    Reconciled rows still accept transactions; closing a period is a policy
    outside this service.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from itc_config import get_active_config
from itc_config.bridges import build_aging_calculator, build_compliance_weights
from itc_config.schema import ItcConfiguration
from itc_engines.aging import AgingDocument, AlertType, ItcAgingReport
from itc_engines.metrics import Trend, classify_trend, compliance_score, whole_percent
from itc_kernel.domain.clock import Clock
from itc_kernel.domain.periods import PeriodKey
from itc_kernel.domain.records import (
    InvoiceMatchStatus,
    ItcCategory,
    ItcRegisterPeriod,
    ItcTransaction,
    PaymentStatus,
    PurchaseInvoice,
)
from itc_kernel.domain.values import Money, to_decimal
from itc_kernel.exceptions import (
    InsufficientBalanceError,
    NegativeOpeningBalanceError,
    RegisterNotFoundError,
    ValidationError,
)
from itc_kernel.logging_config import LogContext, get_logger
from itc_services.ports import ItcRepository

logger = get_logger("services.register")


# =============================================================================
# Report types
# =============================================================================


@dataclass(frozen=True)
class RegisterSummary:
    period: str
    financial_year: str
    opening_balance: Money
    eligible_itc: Money
    claimed_itc: Money
    reversed_itc: Money
    blocked_itc: Money
    closing_balance: Money
    net_movement: Money
    utilization_rate: int
    reversal_rate: int
    blockage_rate: int


@dataclass(frozen=True)
class CategoryBreakdown:
    inputs: Money
    capital_goods: Money
    input_services: Money
    blocked: Money

    @property
    def total(self) -> Money:
        return self.inputs + self.capital_goods + self.input_services + self.blocked


@dataclass(frozen=True)
class ReconciliationOverview:
    is_reconciled: bool
    reconciled_at: datetime | None
    pending_invoices: int
    matched_invoices: int
    mismatched_invoices: int
    reconciliation_rate: int


@dataclass(frozen=True)
class VendorBreakdownLine:
    vendor_gstin: str
    vendor_name: str
    invoice_count: int
    total_itc: Money
    eligible_itc: Money


@dataclass(frozen=True)
class ComplianceOverview:
    payment_compliance: bool
    reconciliation_compliance: bool
    utilization_compliance: bool
    overall_score: int


@dataclass(frozen=True)
class MonthlyReport:
    summary: RegisterSummary
    category_breakdown: CategoryBreakdown
    reconciliation: ReconciliationOverview
    vendor_breakdown: tuple[VendorBreakdownLine, ...]
    compliance: ComplianceOverview


@dataclass(frozen=True)
class VendorReportLine:
    vendor_gstin: str
    vendor_name: str
    total_invoices: int
    total_taxable_amount: Money
    total_itc: Money
    eligible_itc: Money
    blocked_itc: Money
    reconciled_invoices: int
    pending_invoices: int
    utilization_rate: int
    reconciliation_rate: int


@dataclass(frozen=True)
class VendorReportTotals:
    total_vendors: int
    total_invoices: int
    total_taxable_amount: Money
    total_itc: Money
    eligible_itc: Money
    average_utilization_rate: int


@dataclass(frozen=True)
class VendorReport:
    period: str
    vendors: tuple[VendorReportLine, ...]
    totals: VendorReportTotals


@dataclass(frozen=True)
class HsnReportLine:
    hsn: str
    description: str
    total_invoices: int
    total_taxable_amount: Money
    total_itc: Money
    eligible_itc: Money
    blocked_itc: Money
    utilization_rate: int
    average_itc_per_invoice: Money
    average_gst_rate: int


@dataclass(frozen=True)
class HsnReportTotals:
    total_hsn_codes: int
    total_invoices: int
    total_taxable_amount: Money
    total_itc: Money
    eligible_itc: Money
    weighted_average_gst_rate: int


@dataclass(frozen=True)
class HsnReport:
    period: str
    hsn_codes: tuple[HsnReportLine, ...]
    totals: HsnReportTotals


@dataclass(frozen=True)
class PeriodUtilization:
    period: str
    eligible_itc: Money
    claimed_itc: Money
    utilization_rate: int


@dataclass(frozen=True)
class UtilizationMetrics:
    total_eligible_itc: Money
    total_claimed_itc: Money
    total_reversed_itc: Money
    total_blocked_itc: Money
    utilization_rate: int
    reversal_rate: int
    blockage_rate: int
    average_monthly_itc: Money
    monthly_trend: Trend
    period_breakdown: tuple[PeriodUtilization, ...]


@dataclass(frozen=True)
class ReconciliationCompliance:
    is_compliant: bool
    status: str
    reconciliation_rate: int


@dataclass(frozen=True)
class PaymentCompliance:
    is_compliant: bool
    at_risk_amount: Money
    critical_invoices: int


@dataclass(frozen=True)
class UtilizationCompliance:
    is_compliant: bool
    utilization_rate: int
    excess_claimed: Money


@dataclass(frozen=True)
class ComplianceStatus:
    period: str
    overall_score: int
    reconciliation: ReconciliationCompliance
    payment: PaymentCompliance
    utilization: UtilizationCompliance
    recommendations: tuple[str, ...]


@dataclass(frozen=True)
class DashboardSummary:
    total_eligible_itc: Money
    total_claimed_itc: Money
    total_reversed_itc: Money
    current_balance: Money
    utilization_rate: int
    month_over_month_growth: int


@dataclass(frozen=True)
class MonthlyPoint:
    period: str
    eligible_itc: Money
    claimed_itc: Money
    closing_balance: Money


@dataclass(frozen=True)
class DashboardAlert:
    alert_type: AlertType
    severity: str
    message: str
    count: int


@dataclass(frozen=True)
class Dashboard:
    financial_year: str
    summary: DashboardSummary
    monthly_data: tuple[MonthlyPoint, ...]
    growth_direction: Trend
    alerts: tuple[DashboardAlert, ...]
    top_category: ItcCategory
    compliance_score: int
    recommendations: tuple[str, ...]


# =============================================================================
# Service
# =============================================================================


class ItcRegisterService:
    """
    Period ledger service.

    Contract:
        All monetary state for a period lives in its register row. Reports
        are read-only and never mutate rows or invoices.

    Non-goals:
        - Does NOT decide eligibility; transactions arrive already tagged
          (see ``PurchaseInvoiceService.to_transactions``).
        - Does NOT guard against applying the same batch twice.
    """

    def __init__(
        self,
        repo: ItcRepository,
        clock: Clock,
        config: ItcConfiguration | None = None,
    ):
        self._repo = repo
        self._clock = clock
        self._config = config or get_active_config()
        self._currency = self._config.currency
        self._aging = build_aging_calculator(self._config)
        self._weights = build_compliance_weights(self._config)

    # =========================================================================
    # Ledger mutations
    # =========================================================================

    def initialize(
        self,
        owner_id: str,
        period: str,
        financial_year: str | None = None,
        opening_balance: Money | Decimal | str | int = 0,
    ) -> ItcRegisterPeriod:
        """
        Create the register row for a period, or return the existing one.

        Args:
            owner_id: Taxpayer the register belongs to.
            period: ``MM-YYYY`` key.
            financial_year: ``YYYY-YY`` label; derived from the period when
                omitted.
            opening_balance: Carried-forward credit, never negative.

        Raises:
            ValidationError: owner missing.
            InvalidPeriodError: malformed period key.
            NegativeOpeningBalanceError: opening balance below zero.
        """
        if not owner_id:
            raise ValidationError("Owner ID is required", field="owner_id")
        key = PeriodKey.parse(period)
        opening = self._money(opening_balance)
        if opening.is_negative:
            raise NegativeOpeningBalanceError(opening.amount)

        period = str(key)
        with LogContext.bind(owner_id=owner_id, period=period):
            with self._repo.lock_for(("register", owner_id, period)):
                existing = self._repo.find_register_row(owner_id, period)
                if existing is not None:
                    logger.debug("register_already_initialized")
                    return existing

                now = self._clock.now()
                row = ItcRegisterPeriod(
                    register_id=str(uuid4()),
                    owner_id=owner_id,
                    period=period,
                    financial_year=financial_year or key.financial_year,
                    opening_balance=opening,
                    eligible_itc=self._zero(),
                    claimed_itc=self._zero(),
                    reversed_itc=self._zero(),
                    blocked_itc=self._zero(),
                    inputs_itc=self._zero(),
                    capital_goods_itc=self._zero(),
                    input_services_itc=self._zero(),
                    closing_balance=opening,
                    created_at=now,
                    updated_at=now,
                )
                saved = self._repo.save_register_row(row)

            logger.info(
                "register_initialized",
                extra={
                    "register_id": saved.register_id,
                    "financial_year": saved.financial_year,
                    "opening_balance": opening.amount,
                },
            )
            return saved

    def apply_transactions(
        self,
        owner_id: str,
        period: str,
        transactions: Iterable[ItcTransaction],
    ) -> ItcRegisterPeriod:
        """
        Add a batch of eligibility-tagged transactions to the period.

        Eligible, non-blocked transactions add their eligible amount (the
        whole tax when unset) to eligible and claimed ITC and to their
        category sub-total; any remainder of the tax is blocked. A
        transaction's reversed amount adds to reversed ITC.

        Raises:
            RegisterNotFoundError: the period is not initialized.
            OptimisticLockError: another writer changed the row.
        """
        period = str(PeriodKey.parse(period))
        batch = list(transactions)
        zero = self._zero()
        eligible = claimed = blocked = reversed_ = zero
        by_category = {
            ItcCategory.INPUTS: zero,
            ItcCategory.CAPITAL_GOODS: zero,
            ItcCategory.INPUT_SERVICES: zero,
        }
        for txn in batch:
            total = txn.total_itc
            if txn.itc_eligible and txn.itc_category != ItcCategory.BLOCKED:
                amount = txn.eligible_amount if txn.eligible_amount is not None else total
                eligible = eligible + amount
                claimed = claimed + amount
                by_category[txn.itc_category] = by_category[txn.itc_category] + amount
                blocked = blocked + (total - amount)
            else:
                blocked = blocked + total
            if txn.reversed_amount is not None:
                reversed_ = reversed_ + txn.reversed_amount

        with LogContext.bind(owner_id=owner_id, period=period):
            with self._repo.lock_for(("register", owner_id, period)):
                row = self._require_row(owner_id, period, for_update=True)
                updated = row.with_recomputed_closing(
                    eligible_itc=row.eligible_itc + eligible,
                    claimed_itc=row.claimed_itc + claimed,
                    blocked_itc=row.blocked_itc + blocked,
                    reversed_itc=row.reversed_itc + reversed_,
                    inputs_itc=row.inputs_itc + by_category[ItcCategory.INPUTS],
                    capital_goods_itc=(
                        row.capital_goods_itc + by_category[ItcCategory.CAPITAL_GOODS]
                    ),
                    input_services_itc=(
                        row.input_services_itc + by_category[ItcCategory.INPUT_SERVICES]
                    ),
                    updated_at=self._clock.now(),
                )
                saved = self._repo.save_register_row(updated)

            logger.info(
                "register_transactions_applied",
                extra={
                    "transaction_count": len(batch),
                    "eligible_added": eligible.amount,
                    "blocked_added": blocked.amount,
                    "closing_balance": saved.closing_balance.amount,
                    "version": saved.version,
                },
            )
            return saved

    def record_reversal(
        self,
        owner_id: str,
        period: str,
        amount: Money | Decimal | str | int,
        reason: str,
    ) -> ItcRegisterPeriod:
        """Add a reversal of previously claimed credit to the period."""
        period = str(PeriodKey.parse(period))
        reversal = self._money(amount)
        if not reversal.is_positive:
            raise ValidationError(
                f"Reversal amount must be positive: {reversal.amount}", field="amount"
            )

        with LogContext.bind(owner_id=owner_id, period=period):
            with self._repo.lock_for(("register", owner_id, period)):
                row = self._require_row(owner_id, period, for_update=True)
                saved = self._repo.save_register_row(
                    row.with_recomputed_closing(
                        reversed_itc=row.reversed_itc + reversal,
                        updated_at=self._clock.now(),
                    )
                )

            logger.info(
                "register_reversal_recorded",
                extra={
                    "amount": reversal.amount,
                    "reason": reason,
                    "closing_balance": saved.closing_balance.amount,
                },
            )
            return saved

    def mark_reconciled(self, owner_id: str, period: str) -> ItcRegisterPeriod:
        """Active -> Reconciled. A row already reconciled is returned as is."""
        period = str(PeriodKey.parse(period))
        with LogContext.bind(owner_id=owner_id, period=period):
            with self._repo.lock_for(("register", owner_id, period)):
                row = self._require_row(owner_id, period, for_update=True)
                if row.is_reconciled:
                    return row
                now = self._clock.now()
                saved = self._repo.save_register_row(
                    row.with_recomputed_closing(
                        is_reconciled=True, reconciled_at=now, updated_at=now
                    )
                )
            logger.info("register_reconciled", extra={"version": saved.version})
            return saved

    def closing_balance(
        self,
        owner_id: str,
        period: str,
        utilization_amount: Money | Decimal | str | int = 0,
    ) -> Money:
        """
        Available balance after a proposed utilization.

        Raises:
            RegisterNotFoundError: the period is not initialized.
            InsufficientBalanceError: utilization exceeds available credit.
        """
        period = str(PeriodKey.parse(period))
        utilization = self._money(utilization_amount)
        if utilization.is_negative:
            raise ValidationError(
                "Utilization amount cannot be negative", field="utilization_amount"
            )
        row = self._require_row(owner_id, period)
        remaining = row.available_balance - utilization
        if remaining.is_negative:
            logger.warning(
                "register_insufficient_balance",
                extra={
                    "owner_id": owner_id,
                    "period": period,
                    "available": row.available_balance.amount,
                    "requested": utilization.amount,
                },
            )
            raise InsufficientBalanceError(
                period, row.available_balance.amount, utilization.amount
            )
        return remaining

    def get_register(self, owner_id: str, period: str) -> ItcRegisterPeriod:
        return self._require_row(owner_id, str(PeriodKey.parse(period)))

    # =========================================================================
    # Reports
    # =========================================================================

    def monthly_summary(
        self,
        owner_id: str,
        period: str,
        as_of: date | None = None,
    ) -> MonthlyReport:
        """Summary, category and vendor breakdowns and compliance for a period."""
        key = PeriodKey.parse(period)
        row = self._require_row(owner_id, str(key))
        invoices = self._period_invoices(owner_id, key)
        as_of = as_of or self._clock.today()

        summary = _summarize(row)
        payment = self._payment_compliance(invoices, as_of)
        utilization_ok = row.claimed_itc <= row.eligible_itc

        groups: dict[str, list[PurchaseInvoice]] = {}
        for inv in invoices:
            groups.setdefault(inv.vendor_gstin, []).append(inv)
        vendor_lines = tuple(
            VendorBreakdownLine(
                vendor_gstin=gstin,
                vendor_name=group[0].vendor_name or "Unknown",
                invoice_count=len(group),
                total_itc=self._sum(inv.total_itc for inv in group),
                eligible_itc=self._sum(inv.itc_claimed for inv in group),
            )
            for gstin, group in groups.items()
        )

        return MonthlyReport(
            summary=summary,
            category_breakdown=CategoryBreakdown(
                inputs=row.inputs_itc,
                capital_goods=row.capital_goods_itc,
                input_services=row.input_services_itc,
                blocked=row.blocked_itc,
            ),
            reconciliation=_reconciliation_overview(row, invoices),
            vendor_breakdown=vendor_lines,
            compliance=ComplianceOverview(
                payment_compliance=payment.is_compliant,
                reconciliation_compliance=row.is_reconciled,
                utilization_compliance=utilization_ok,
                overall_score=compliance_score(
                    row.is_reconciled, payment.is_compliant, utilization_ok, self._weights
                ),
            ),
        )

    def vendor_report(
        self,
        owner_id: str,
        period: str,
        min_itc_amount: Money | Decimal | str | int | None = None,
    ) -> VendorReport:
        """Per-vendor totals for a period, largest total ITC first."""
        key = PeriodKey.parse(period)
        invoices = self._period_invoices(owner_id, key)
        minimum = self._money(min_itc_amount) if min_itc_amount is not None else None

        groups: dict[str, list[PurchaseInvoice]] = {}
        for inv in invoices:
            groups.setdefault(inv.vendor_gstin, []).append(inv)

        lines: list[VendorReportLine] = []
        for gstin, group in groups.items():
            total_itc = self._sum(inv.total_itc for inv in group)
            if minimum is not None and total_itc < minimum:
                continue
            eligible = self._sum(inv.itc_claimed for inv in group)
            reconciled = sum(
                1 for inv in group if inv.match_status == InvoiceMatchStatus.MATCHED
            )
            lines.append(
                VendorReportLine(
                    vendor_gstin=gstin,
                    vendor_name=group[0].vendor_name or "Unknown",
                    total_invoices=len(group),
                    total_taxable_amount=self._sum(inv.taxable_amount for inv in group),
                    total_itc=total_itc,
                    eligible_itc=eligible,
                    blocked_itc=self._sum(inv.itc_blocked for inv in group),
                    reconciled_invoices=reconciled,
                    pending_invoices=len(group) - reconciled,
                    utilization_rate=whole_percent(eligible, total_itc),
                    reconciliation_rate=whole_percent(
                        Decimal(reconciled), Decimal(len(group))
                    ),
                )
            )
        lines.sort(key=lambda line: line.total_itc.amount, reverse=True)

        average = 0
        if lines:
            average = whole_percent(
                Decimal(sum(line.utilization_rate for line in lines)),
                Decimal(len(lines) * 100),
            )
        totals = VendorReportTotals(
            total_vendors=len(lines),
            total_invoices=sum(line.total_invoices for line in lines),
            total_taxable_amount=self._sum(line.total_taxable_amount for line in lines),
            total_itc=self._sum(line.total_itc for line in lines),
            eligible_itc=self._sum(line.eligible_itc for line in lines),
            average_utilization_rate=average,
        )
        return VendorReport(period=str(key), vendors=tuple(lines), totals=totals)

    def hsn_report(self, owner_id: str, period: str) -> HsnReport:
        """Per tariff code totals for a period, from invoice lines."""
        key = PeriodKey.parse(period)
        invoices = self._period_invoices(owner_id, key)

        accs: dict[str, _HsnTotals] = {}
        for inv in invoices:
            for line in inv.line_items:
                acc = accs.get(line.hsn_sac_code)
                if acc is None:
                    acc = _HsnTotals(
                        description=line.description or "N/A",
                        invoice_numbers=set(),
                        taxable=self._zero(),
                        total_itc=self._zero(),
                        eligible=self._zero(),
                        blocked=self._zero(),
                        weighted_rate=Decimal("0"),
                    )
                    accs[line.hsn_sac_code] = acc
                acc.invoice_numbers.add(inv.invoice_number)
                acc.taxable = acc.taxable + line.taxable_amount
                acc.total_itc = acc.total_itc + line.total_itc
                acc.eligible = acc.eligible + line.itc_eligible_amount
                acc.blocked = acc.blocked + line.itc_blocked_amount
                acc.weighted_rate += line.gst_rate * line.taxable_amount.amount

        lines = [
            HsnReportLine(
                hsn=hsn,
                description=acc.description,
                total_invoices=len(acc.invoice_numbers),
                total_taxable_amount=acc.taxable,
                total_itc=acc.total_itc,
                eligible_itc=acc.eligible,
                blocked_itc=acc.blocked,
                utilization_rate=whole_percent(acc.eligible, acc.total_itc),
                average_itc_per_invoice=(acc.total_itc / len(acc.invoice_numbers)).round(),
                average_gst_rate=whole_percent(acc.weighted_rate, acc.taxable.amount * 100),
            )
            for hsn, acc in accs.items()
        ]
        lines.sort(key=lambda line: line.total_itc.amount, reverse=True)

        total_taxable = self._sum(acc.taxable for acc in accs.values())
        weighted = sum((acc.weighted_rate for acc in accs.values()), Decimal("0"))
        totals = HsnReportTotals(
            total_hsn_codes=len(lines),
            total_invoices=sum(line.total_invoices for line in lines),
            total_taxable_amount=total_taxable,
            total_itc=self._sum(line.total_itc for line in lines),
            eligible_itc=self._sum(line.eligible_itc for line in lines),
            weighted_average_gst_rate=whole_percent(weighted, total_taxable.amount * 100),
        )
        return HsnReport(period=str(key), hsn_codes=tuple(lines), totals=totals)

    def utilization_metrics(
        self,
        owner_id: str,
        from_period: str,
        to_period: str,
    ) -> UtilizationMetrics:
        """Totals, rates and the eligible-ITC trend across a period range."""
        rows = self._repo.list_register_rows(
            owner_id,
            from_period=str(PeriodKey.parse(from_period)),
            to_period=str(PeriodKey.parse(to_period)),
        )
        eligible = self._sum(r.eligible_itc for r in rows)
        claimed = self._sum(r.claimed_itc for r in rows)
        reversed_ = self._sum(r.reversed_itc for r in rows)
        blocked = self._sum(r.blocked_itc for r in rows)
        average = (eligible / len(rows)).round() if rows else self._zero()

        return UtilizationMetrics(
            total_eligible_itc=eligible,
            total_claimed_itc=claimed,
            total_reversed_itc=reversed_,
            total_blocked_itc=blocked,
            utilization_rate=whole_percent(claimed, eligible),
            reversal_rate=whole_percent(reversed_, eligible),
            blockage_rate=whole_percent(blocked, eligible),
            average_monthly_itc=average,
            monthly_trend=classify_trend([r.eligible_itc for r in rows]),
            period_breakdown=tuple(
                PeriodUtilization(
                    period=r.period,
                    eligible_itc=r.eligible_itc,
                    claimed_itc=r.claimed_itc,
                    utilization_rate=whole_percent(r.claimed_itc, r.eligible_itc),
                )
                for r in rows
            ),
        )

    def aging_report(self, owner_id: str, as_of: date | None = None) -> ItcAgingReport:
        """Eligible ITC on invoices dated up to ``as_of``, bucketed by age."""
        as_of = as_of or self._clock.today()
        invoices = [
            inv
            for inv in self._repo.list_invoices(owner_id, end_date=as_of)
            if inv.itc_eligible
        ]
        with LogContext.bind(owner_id=owner_id):
            return self._aging.generate_report(
                documents=[_aging_document(inv) for inv in invoices],
                as_of_date=as_of,
                currency=self._currency,
            )

    def compliance_status(
        self,
        owner_id: str,
        period: str,
        as_of: date | None = None,
    ) -> ComplianceStatus:
        """
        Weighted compliance score for a period.

        Pillars: reconciliation confirmed, no unpaid eligible invoice of the
        period older than the payment window, claimed within eligible.
        """
        key = PeriodKey.parse(period)
        row = self._require_row(owner_id, str(key))
        invoices = self._period_invoices(owner_id, key)
        as_of = as_of or self._clock.today()

        mismatched = any(
            inv.match_status == InvoiceMatchStatus.AMOUNT_MISMATCH for inv in invoices
        )
        if row.is_reconciled:
            status = "RECONCILED"
        elif mismatched:
            status = "MISMATCHED"
        else:
            status = "PENDING"
        reconciliation = ReconciliationCompliance(
            is_compliant=row.is_reconciled,
            status=status,
            reconciliation_rate=100 if row.is_reconciled else 0,
        )

        payment = self._payment_compliance(invoices, as_of)

        excess = row.claimed_itc - row.eligible_itc
        utilization = UtilizationCompliance(
            is_compliant=not excess.is_positive,
            utilization_rate=whole_percent(row.claimed_itc, row.eligible_itc),
            excess_claimed=excess if excess.is_positive else self._zero(),
        )

        recommendations: list[str] = []
        if not reconciliation.is_compliant:
            recommendations.append("Complete GSTR-2A/2B reconciliation")
        if not payment.is_compliant:
            recommendations.append(
                "Reverse ITC for unpaid invoices older than "
                f"{self._config.constants.reversal_alert_days} days"
            )
        if not utilization.is_compliant:
            recommendations.append(
                "Review ITC claims to ensure compliance with eligibility rules"
            )

        return ComplianceStatus(
            period=str(key),
            overall_score=compliance_score(
                reconciliation.is_compliant,
                payment.is_compliant,
                utilization.is_compliant,
                self._weights,
            ),
            reconciliation=reconciliation,
            payment=payment,
            utilization=utilization,
            recommendations=tuple(recommendations),
        )

    def dashboard(
        self,
        owner_id: str,
        financial_year: str,
        as_of: date | None = None,
    ) -> Dashboard:
        """Financial-year overview: totals, monthly series, alerts, advice."""
        rows = self._repo.list_register_rows(owner_id, financial_year=financial_year)
        if not rows:
            zero = self._zero()
            return Dashboard(
                financial_year=financial_year,
                summary=DashboardSummary(zero, zero, zero, zero, 0, 0),
                monthly_data=(),
                growth_direction=Trend.STABLE,
                alerts=(),
                top_category=ItcCategory.INPUTS,
                compliance_score=0,
                recommendations=(),
            )

        as_of = as_of or self._clock.today()
        eligible = self._sum(r.eligible_itc for r in rows)
        claimed = self._sum(r.claimed_itc for r in rows)

        growth = 0
        if len(rows) >= 2:
            previous, latest = rows[-2].eligible_itc, rows[-1].eligible_itc
            growth = whole_percent(latest - previous, previous)
        if growth > 0:
            direction = Trend.INCREASING
        elif growth < 0:
            direction = Trend.DECREASING
        else:
            direction = Trend.STABLE

        alerts: list[DashboardAlert] = []
        overdue = self.aging_report(owner_id, as_of).critical_invoices
        if overdue:
            alerts.append(
                DashboardAlert(
                    alert_type=AlertType.PAYMENT_OVERDUE,
                    severity="high",
                    message=(
                        f"{overdue} invoices require payment to maintain ITC eligibility"
                    ),
                    count=overdue,
                )
            )
        unreconciled = sum(1 for r in rows if not r.is_reconciled)
        if unreconciled:
            alerts.append(
                DashboardAlert(
                    alert_type=AlertType.RECONCILIATION_PENDING,
                    severity="medium",
                    message=f"{unreconciled} periods are pending reconciliation",
                    count=unreconciled,
                )
            )

        average_utilization = sum(
            (
                r.claimed_itc.ratio_to(r.eligible_itc) * 100
                for r in rows
                if r.eligible_itc.is_positive
            ),
            Decimal("0"),
        ) / len(rows)
        recommendations: list[str] = []
        if average_utilization < 80:
            recommendations.append("Review ITC eligibility to improve utilization rate")
        if overdue:
            recommendations.append(
                "Prioritize payments for invoices nearing "
                f"{self._config.constants.reversal_alert_days}-day limit"
            )
        if unreconciled:
            recommendations.append("Complete pending GSTR-2A/2B reconciliations")

        return Dashboard(
            financial_year=financial_year,
            summary=DashboardSummary(
                total_eligible_itc=eligible,
                total_claimed_itc=claimed,
                total_reversed_itc=self._sum(r.reversed_itc for r in rows),
                current_balance=rows[-1].closing_balance,
                utilization_rate=whole_percent(claimed, eligible),
                month_over_month_growth=growth,
            ),
            monthly_data=tuple(
                MonthlyPoint(r.period, r.eligible_itc, r.claimed_itc, r.closing_balance)
                for r in rows
            ),
            growth_direction=direction,
            alerts=tuple(alerts),
            top_category=_top_category(rows, self._zero()),
            compliance_score=whole_percent(
                Decimal(len(rows) - unreconciled), Decimal(len(rows))
            ),
            recommendations=tuple(recommendations),
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _zero(self) -> Money:
        return Money.zero(self._currency)

    def _money(self, value: Money | Decimal | str | int) -> Money:
        if isinstance(value, Money):
            return value
        return Money.of(to_decimal(value), self._currency)

    def _sum(self, values: Iterable[Money]) -> Money:
        return Money.sum(values, self._currency)

    def _require_row(
        self, owner_id: str, period: str, for_update: bool = False
    ) -> ItcRegisterPeriod:
        row = self._repo.find_register_row(owner_id, period, for_update=for_update)
        if row is None:
            raise RegisterNotFoundError(owner_id, period)
        return row

    def _period_invoices(self, owner_id: str, key: PeriodKey) -> list[PurchaseInvoice]:
        return self._repo.list_invoices(
            owner_id, start_date=key.start_date, end_date=key.end_date
        )

    def _payment_compliance(
        self, invoices: Sequence[PurchaseInvoice], as_of: date
    ) -> PaymentCompliance:
        unpaid = [
            _aging_document(inv)
            for inv in invoices
            if inv.itc_eligible
            and inv.payment_status == PaymentStatus.UNPAID
            and inv.invoice_date <= as_of
        ]
        report = self._aging.generate_report(
            documents=unpaid, as_of_date=as_of, currency=self._currency
        )
        return PaymentCompliance(
            is_compliant=report.critical_invoices == 0,
            at_risk_amount=report.at_risk_amount,
            critical_invoices=report.critical_invoices,
        )


@dataclass
class _HsnTotals:
    description: str
    invoice_numbers: set[str]
    taxable: Money
    total_itc: Money
    eligible: Money
    blocked: Money
    weighted_rate: Decimal


def _aging_document(invoice: PurchaseInvoice) -> AgingDocument:
    return AgingDocument(
        invoice_id=invoice.invoice_id,
        invoice_number=invoice.invoice_number,
        vendor_gstin=invoice.vendor_gstin,
        invoice_date=invoice.invoice_date,
        total_itc=invoice.itc_claimed,
        payment_status=invoice.payment_status,
    )


def _summarize(row: ItcRegisterPeriod) -> RegisterSummary:
    return RegisterSummary(
        period=row.period,
        financial_year=row.financial_year,
        opening_balance=row.opening_balance,
        eligible_itc=row.eligible_itc,
        claimed_itc=row.claimed_itc,
        reversed_itc=row.reversed_itc,
        blocked_itc=row.blocked_itc,
        closing_balance=row.closing_balance,
        net_movement=row.closing_balance - row.opening_balance,
        utilization_rate=whole_percent(row.claimed_itc, row.eligible_itc),
        reversal_rate=whole_percent(row.reversed_itc, row.eligible_itc),
        blockage_rate=whole_percent(row.blocked_itc, row.eligible_itc),
    )


def _reconciliation_overview(
    row: ItcRegisterPeriod, invoices: Sequence[PurchaseInvoice]
) -> ReconciliationOverview:
    matched = sum(1 for i in invoices if i.match_status == InvoiceMatchStatus.MATCHED)
    mismatched = sum(
        1 for i in invoices if i.match_status == InvoiceMatchStatus.AMOUNT_MISMATCH
    )
    rate = 100 if row.is_reconciled else whole_percent(
        Decimal(matched), Decimal(len(invoices))
    )
    return ReconciliationOverview(
        is_reconciled=row.is_reconciled,
        reconciled_at=row.reconciled_at,
        pending_invoices=len(invoices) - matched - mismatched,
        matched_invoices=matched,
        mismatched_invoices=mismatched,
        reconciliation_rate=rate,
    )


def _top_category(rows: Sequence[ItcRegisterPeriod], zero: Money) -> ItcCategory:
    # Ties keep the earlier category.
    totals = {
        ItcCategory.INPUTS: Money.sum((r.inputs_itc for r in rows), zero.currency),
        ItcCategory.CAPITAL_GOODS: Money.sum(
            (r.capital_goods_itc for r in rows), zero.currency
        ),
        ItcCategory.INPUT_SERVICES: Money.sum(
            (r.input_services_itc for r in rows), zero.currency
        ),
    }
    best = ItcCategory.INPUTS
    for category, total in totals.items():
        if total > totals[best]:
            best = category
    return best
