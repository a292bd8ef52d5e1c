"""
Module: itc_engines.aging
Responsibility:
    Age outstanding eligible credit by invoice date, bucket it, and raise a
    reversal alert for every unpaid invoice past the payment window.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The as-of date is always a parameter; this module never reads a clock.

Invariants enforced:
    - Buckets are contiguous and exclusive; every non-negative age lands in
      exactly one.
    - One REVERSAL_REQUIRED alert per unpaid invoice older than the
      threshold, never more.
    - Bucket totals sum to the total aged ITC.

Failure modes:
    - ValueError when an age does not fall into any configured bucket.

Usage:
    from itc_engines.aging import ItcAgingCalculator, AgingDocument

    report = ItcAgingCalculator().generate_report(
        documents=[doc], as_of_date=date(2024, 10, 27),
    )
    report.bucket_totals["181-365"]
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from enum import Enum

from itc_kernel.domain.records import PaymentStatus
from itc_kernel.domain.values import Money
from itc_kernel.logging_config import get_logger
from itc_engines.tracer import traced_engine

logger = get_logger("engines.aging")


@dataclass(frozen=True)
class AgeBucket:
    """Inclusive day range; ``max_days`` None means unbounded."""

    name: str
    min_days: int
    max_days: int | None

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        return self.max_days is None or age_days <= self.max_days


ITC_AGING_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket("0-30", 0, 30),
    AgeBucket("31-60", 31, 60),
    AgeBucket("61-90", 61, 90),
    AgeBucket("91-180", 91, 180),
    AgeBucket("181-365", 181, 365),
    AgeBucket("over-365", 366, None),
)


class AlertType(str, Enum):
    REVERSAL_REQUIRED = "REVERSAL_REQUIRED"
    PAYMENT_OVERDUE = "PAYMENT_OVERDUE"
    RECONCILIATION_PENDING = "RECONCILIATION_PENDING"


@dataclass(frozen=True)
class AgingDocument:
    """An eligible purchase invoice as seen by the aging report."""

    invoice_id: str
    invoice_number: str
    vendor_gstin: str
    invoice_date: date
    total_itc: Money
    payment_status: PaymentStatus = PaymentStatus.UNPAID


@dataclass(frozen=True)
class AgedDocument:
    document: AgingDocument
    age_days: int
    bucket: AgeBucket


@dataclass(frozen=True)
class ComplianceAlert:
    alert_type: AlertType
    invoice_number: str
    vendor_gstin: str
    amount: Money
    age_days: int
    message: str


@dataclass(frozen=True)
class ItcAgingReport:
    as_of_date: date
    buckets: tuple[AgeBucket, ...]
    items: tuple[AgedDocument, ...]
    bucket_totals: dict[str, Money]
    at_risk_amount: Money
    critical_invoices: int
    recommended_action: str
    alerts: tuple[ComplianceAlert, ...]

    @property
    def total_itc(self) -> Money:
        currency = self.at_risk_amount.currency
        return Money.sum(self.bucket_totals.values(), currency)


class ItcAgingCalculator:
    """
    Bucket eligible ITC by invoice age.

    Contract:
        Pure functions; all dates are parameters.
    Non-goals:
        - Does not select which invoices are eligible.  Callers pass only
          eligible invoices dated on or before the as-of date.
    """

    def __init__(
        self,
        buckets: Sequence[AgeBucket] = ITC_AGING_BUCKETS,
        reversal_threshold_days: int = 180,
    ) -> None:
        self._buckets = tuple(buckets)
        self._threshold = reversal_threshold_days

    @staticmethod
    def calculate_age(document_date: date, as_of_date: date) -> int:
        return (as_of_date - document_date).days

    def classify(self, age_days: int) -> AgeBucket:
        # Future-dated documents age as zero.
        age_days = max(age_days, 0)
        for bucket in self._buckets:
            if bucket.contains(age_days):
                return bucket
        logger.warning("age_classification_no_bucket", extra={
            "age_days": age_days,
            "bucket_count": len(self._buckets),
        })
        raise ValueError(f"Age {age_days} does not fit any bucket")

    def requires_reversal(self, document: AgingDocument, age_days: int) -> bool:
        return (
            age_days > self._threshold
            and document.payment_status == PaymentStatus.UNPAID
        )

    @traced_engine("aging", "1.0", fingerprint_fields=("documents", "as_of_date"))
    def generate_report(
        self,
        documents: Sequence[AgingDocument],
        as_of_date: date,
        currency=None,
    ) -> ItcAgingReport:
        if currency is None:
            currency = (
                documents[0].total_itc.currency if documents else Money.zero().currency
            )
        zero = Money.zero(currency)
        totals: dict[str, Money] = {b.name: zero for b in self._buckets}
        items: list[AgedDocument] = []
        alerts: list[ComplianceAlert] = []
        at_risk = zero

        for doc in documents:
            age = self.calculate_age(doc.invoice_date, as_of_date)
            bucket = self.classify(age)
            totals[bucket.name] = totals[bucket.name] + doc.total_itc
            items.append(AgedDocument(document=doc, age_days=age, bucket=bucket))

            if self.requires_reversal(doc, age):
                at_risk = at_risk + doc.total_itc
                alerts.append(
                    ComplianceAlert(
                        alert_type=AlertType.REVERSAL_REQUIRED,
                        invoice_number=doc.invoice_number,
                        vendor_gstin=doc.vendor_gstin,
                        amount=doc.total_itc,
                        age_days=age,
                        message=(
                            f"Invoice is {age} days old and unpaid. ITC must be "
                            "reversed as per Section 16(2)(c)."
                        ),
                    )
                )

        if alerts:
            action = (
                f"{len(alerts)} invoices require immediate payment or ITC reversal"
            )
        else:
            action = "All invoices are within compliance parameters"

        logger.info("aging_report_generated", extra={
            "as_of_date": as_of_date.isoformat(),
            "item_count": len(items),
            "critical_invoices": len(alerts),
            "at_risk_amount": str(at_risk.amount),
        })

        return ItcAgingReport(
            as_of_date=as_of_date,
            buckets=self._buckets,
            items=tuple(items),
            bucket_totals=totals,
            at_risk_amount=at_risk,
            critical_invoices=len(alerts),
            recommended_action=action,
            alerts=tuple(alerts),
        )
