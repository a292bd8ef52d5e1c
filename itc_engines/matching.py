"""
Module: itc_engines.matching
Responsibility:
    Reconcile locally recorded purchase invoices against the tax
    authority's reference ledger.  Pairwise comparison with tolerant date
    and amount checks, confidence scoring, a greedy one-to-one assignment
    and the four-way partition of the result.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import itc_kernel domain types and itc_engines.tracer.

Invariants enforced:
    - Identities compare only after normalization (upper case, whitespace
      and separators removed), never on raw strings.
    - Each reference entry is consumed at most once.
    - Every local invoice lands in exactly one of matched, mismatched or
      local-only; every reference entry in exactly one of matched,
      mismatched or reference-only.
    - Same inputs, same partition.  Ties go to the earliest reference
      entry.

Failure modes:
    - None.  NO_MATCH and AMOUNT_MISMATCH are results, not errors.

Audit relevance:
    ``reconcile`` is traced via ``@traced_engine``; the summary totals feed
    the register's reconciliation pillar.

Note:
    The assignment is greedy: each local invoice, in input order, takes its
    best remaining candidate.  With ambiguous duplicates this can be
    locally suboptimal.  Replacing it with a maximum-weight bipartite
    matching changes observable output.
"""

from __future__ import annotations

import re
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from itc_kernel.domain.records import PurchaseInvoice, ReferenceLedgerEntry
from itc_kernel.domain.values import Money, to_decimal
from itc_kernel.logging_config import get_logger
from itc_engines.tracer import traced_engine

logger = get_logger("engines.matching")

_SEPARATORS_RE = re.compile(r"[\s\-/\\.#@_:;,|~]+")
_WHITESPACE_RE = re.compile(r"\s+")

FULL_CONFIDENCE = 100
MIN_MATCH_CONFIDENCE = 50
DATE_PENALTY_PER_DAY = 2
TOLERATED_DIFF_PENALTY = 2
MISMATCH_PENALTY = 20


def normalize_gstin(gstin: str | None) -> str:
    if not gstin:
        return ""
    return _WHITESPACE_RE.sub("", gstin.upper())


def normalize_invoice_number(invoice_number: str | None) -> str:
    if not invoice_number:
        return ""
    return _SEPARATORS_RE.sub("", str(invoice_number).upper()).strip()


@dataclass(frozen=True)
class ReconciliationConfig:
    """Tolerances for the pairwise match test."""

    date_tolerance_days: int = 3
    amount_tolerance_percent: Decimal = Decimal("1")
    amount_tolerance_absolute: Decimal = Decimal("1")


class MatchStatus(str, Enum):
    MATCHED = "MATCHED"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"
    NO_MATCH = "NO_MATCH"


@dataclass(frozen=True)
class LocalInvoiceRecord:
    """The fields of a local purchase invoice that matching compares."""

    invoice_id: str
    vendor_gstin: str
    invoice_number: str
    invoice_date: date
    taxable_value: Money
    igst: Money
    cgst: Money
    sgst: Money

    @classmethod
    def from_invoice(cls, invoice: PurchaseInvoice) -> LocalInvoiceRecord:
        return cls(
            invoice_id=invoice.invoice_id,
            vendor_gstin=invoice.vendor_gstin,
            invoice_number=invoice.invoice_number,
            invoice_date=invoice.invoice_date,
            taxable_value=invoice.taxable_amount,
            igst=invoice.igst,
            cgst=invoice.cgst,
            sgst=invoice.sgst,
        )

    @property
    def total_itc(self) -> Money:
        return self.igst + self.cgst + self.sgst


@dataclass(frozen=True)
class MismatchDetail:
    """Signed differences, reference minus local, for every compared field."""

    taxable_value_diff: Money
    igst_diff: Money
    cgst_diff: Money
    sgst_diff: Money
    date_diff_days: int
    out_of_tolerance: tuple[str, ...] = ()


@dataclass(frozen=True)
class MatchResult:
    status: MatchStatus
    confidence: int
    mismatch: MismatchDetail | None = None
    date_difference_days: int | None = None

    @property
    def is_candidate(self) -> bool:
        return self.status != MatchStatus.NO_MATCH


_NO_MATCH = MatchResult(status=MatchStatus.NO_MATCH, confidence=0)


@dataclass(frozen=True)
class MatchedPair:
    local: LocalInvoiceRecord
    reference: ReferenceLedgerEntry
    result: MatchResult


@dataclass(frozen=True)
class ReconciliationSummary:
    matched_count: int
    matched_itc: Money
    mismatched_count: int
    mismatched_itc: Money
    local_only_count: int
    local_only_itc: Money
    reference_only_count: int
    reference_only_itc: Money


@dataclass(frozen=True)
class ReconciliationResult:
    matched: tuple[MatchedPair, ...]
    mismatched: tuple[MatchedPair, ...]
    local_only: tuple[LocalInvoiceRecord, ...]
    reference_only: tuple[ReferenceLedgerEntry, ...]
    summary: ReconciliationSummary


@dataclass(frozen=True)
class PotentialMatch:
    local: LocalInvoiceRecord
    similarity: int


@dataclass(frozen=True)
class DuplicateReferenceEntry:
    vendor_gstin: str
    invoice_number: str
    occurrences: int
    total_itc: Money
    entries: tuple[ReferenceLedgerEntry, ...] = field(default=())


def is_amount_within_tolerance(
    base: Money,
    compare: Money,
    config: ReconciliationConfig,
) -> bool:
    """
    |diff| <= absolute floor, or |diff| / max(|base|, 1) <= percent / 100.

    ``base`` is the local value.
    """
    diff = abs((compare - base).amount)
    if diff <= to_decimal(config.amount_tolerance_absolute):
        return True
    denominator = max(abs(base.amount), Decimal("1"))
    return diff / denominator <= to_decimal(config.amount_tolerance_percent) / 100


def match_one(
    local: LocalInvoiceRecord,
    reference: ReferenceLedgerEntry,
    config: ReconciliationConfig | None = None,
) -> MatchResult:
    """
    Pairwise match test.

    Identity, then invoice number, then date tolerance (inclusive), then
    the four amount fields.  Confidence starts at 100, loses 2 per day of
    date difference and 2 per tolerated non-zero amount difference.  Any
    field outside tolerance gives AMOUNT_MISMATCH with a further 20 off.
    A returned match is clamped to [50, 100].
    """
    config = config or ReconciliationConfig()

    if normalize_gstin(local.vendor_gstin) != normalize_gstin(reference.vendor_gstin):
        return _NO_MATCH
    if (
        normalize_invoice_number(local.invoice_number)
        != normalize_invoice_number(reference.invoice_number)
    ):
        return _NO_MATCH

    date_diff = abs((local.invoice_date - reference.invoice_date).days)
    if date_diff > config.date_tolerance_days:
        return _NO_MATCH

    confidence = FULL_CONFIDENCE - DATE_PENALTY_PER_DAY * date_diff

    compared = (
        ("taxable_value", local.taxable_value, reference.taxable_value),
        ("igst", local.igst, reference.igst),
        ("cgst", local.cgst, reference.cgst),
        ("sgst", local.sgst, reference.sgst),
    )
    diffs: dict[str, Money] = {}
    out_of_tolerance: list[str] = []
    for name, local_value, reference_value in compared:
        diff = reference_value - local_value
        diffs[name] = diff
        if not is_amount_within_tolerance(local_value, reference_value, config):
            out_of_tolerance.append(name)
        elif not diff.is_zero:
            confidence -= TOLERATED_DIFF_PENALTY

    if out_of_tolerance:
        return MatchResult(
            status=MatchStatus.AMOUNT_MISMATCH,
            confidence=min(
                max(confidence - MISMATCH_PENALTY, MIN_MATCH_CONFIDENCE),
                FULL_CONFIDENCE,
            ),
            mismatch=MismatchDetail(
                taxable_value_diff=diffs["taxable_value"],
                igst_diff=diffs["igst"],
                cgst_diff=diffs["cgst"],
                sgst_diff=diffs["sgst"],
                date_diff_days=date_diff,
                out_of_tolerance=tuple(out_of_tolerance),
            ),
            date_difference_days=date_diff,
        )

    return MatchResult(
        status=MatchStatus.MATCHED,
        confidence=min(max(confidence, MIN_MATCH_CONFIDENCE), FULL_CONFIDENCE),
        date_difference_days=date_diff,
    )


def _summarize(
    matched: Sequence[MatchedPair],
    mismatched: Sequence[MatchedPair],
    local_only: Sequence[LocalInvoiceRecord],
    reference_only: Sequence[ReferenceLedgerEntry],
    currency,
) -> ReconciliationSummary:
    return ReconciliationSummary(
        matched_count=len(matched),
        matched_itc=Money.sum((p.reference.total_itc for p in matched), currency),
        mismatched_count=len(mismatched),
        mismatched_itc=Money.sum(
            (p.reference.total_itc for p in mismatched), currency
        ),
        local_only_count=len(local_only),
        local_only_itc=Money.sum((i.total_itc for i in local_only), currency),
        reference_only_count=len(reference_only),
        reference_only_itc=Money.sum(
            (e.total_itc for e in reference_only), currency
        ),
    )


@traced_engine(
    "matching",
    "1.0",
    fingerprint_fields=("local_invoices", "reference_entries", "config"),
)
def reconcile(
    local_invoices: Sequence[LocalInvoiceRecord],
    reference_entries: Sequence[ReferenceLedgerEntry],
    config: ReconciliationConfig | None = None,
) -> ReconciliationResult:
    """
    Greedy one-to-one reconciliation.

    For each local invoice in order, every unconsumed reference entry is
    tested; the highest-confidence candidate wins (strictly higher, so the
    first found keeps a tie) and is consumed.
    """
    config = config or ReconciliationConfig()
    t0 = time.monotonic()
    logger.info("reconciliation_started", extra={
        "local_count": len(local_invoices),
        "reference_count": len(reference_entries),
        "date_tolerance_days": config.date_tolerance_days,
    })

    consumed: set[int] = set()
    matched: list[MatchedPair] = []
    mismatched: list[MatchedPair] = []
    local_only: list[LocalInvoiceRecord] = []

    for local in local_invoices:
        best_index: int | None = None
        best_result: MatchResult | None = None
        for index, reference in enumerate(reference_entries):
            if index in consumed:
                continue
            result = match_one(local, reference, config)
            if not result.is_candidate:
                continue
            if best_result is None or result.confidence > best_result.confidence:
                best_index, best_result = index, result

        if best_index is None:
            local_only.append(local)
            continue

        consumed.add(best_index)
        pair = MatchedPair(local, reference_entries[best_index], best_result)
        if best_result.status == MatchStatus.MATCHED:
            matched.append(pair)
        else:
            mismatched.append(pair)

    reference_only = [
        entry for index, entry in enumerate(reference_entries)
        if index not in consumed
    ]

    if local_invoices:
        currency = local_invoices[0].igst.currency
    elif reference_entries:
        currency = reference_entries[0].igst.currency
    else:
        currency = Money.zero().currency

    summary = _summarize(matched, mismatched, local_only, reference_only, currency)

    duration_ms = round((time.monotonic() - t0) * 1000, 2)
    logger.info("reconciliation_completed", extra={
        "matched": summary.matched_count,
        "mismatched": summary.mismatched_count,
        "local_only": summary.local_only_count,
        "reference_only": summary.reference_only_count,
        "duration_ms": duration_ms,
    })

    return ReconciliationResult(
        matched=tuple(matched),
        mismatched=tuple(mismatched),
        local_only=tuple(local_only),
        reference_only=tuple(reference_only),
        summary=summary,
    )


def find_potential_matches(
    reference_entry: ReferenceLedgerEntry,
    candidates: Sequence[LocalInvoiceRecord],
    limit: int = 5,
) -> list[PotentialMatch]:
    """
    Rank local invoices by similarity to an unmatched reference entry.

    Advisory only, for manual matching.  Scores: GSTIN 50 exact or 10 for
    the same state prefix; invoice number 30 exact or 15 substring; date
    10 within 3 days or 5 within 30; taxable value 10 within 1% or 5
    within 5%.  A blank GSTIN or invoice number on either side scores
    nothing for that field.  Zero scores are dropped.
    """
    entry_gstin = normalize_gstin(reference_entry.vendor_gstin)
    entry_number = normalize_invoice_number(reference_entry.invoice_number)
    ranked: list[PotentialMatch] = []

    for candidate in candidates:
        similarity = 0

        gstin = normalize_gstin(candidate.vendor_gstin)
        if gstin and entry_gstin:
            if gstin == entry_gstin:
                similarity += 50
            elif gstin[:2] == entry_gstin[:2]:
                similarity += 10

        number = normalize_invoice_number(candidate.invoice_number)
        if number and entry_number:
            if number == entry_number:
                similarity += 30
            elif number in entry_number or entry_number in number:
                similarity += 15

        date_diff = abs((candidate.invoice_date - reference_entry.invoice_date).days)
        if date_diff <= 3:
            similarity += 10
        elif date_diff <= 30:
            similarity += 5

        local_value = candidate.taxable_value.amount
        reference_value = reference_entry.taxable_value.amount
        amount_pct = (
            abs(local_value - reference_value)
            / max(local_value, reference_value, Decimal("1"))
            * 100
        )
        if amount_pct <= 1:
            similarity += 10
        elif amount_pct <= 5:
            similarity += 5

        if similarity > 0:
            ranked.append(PotentialMatch(local=candidate, similarity=similarity))

    # sorted() is stable, so equal scores keep candidate order
    ranked = sorted(ranked, key=lambda m: m.similarity, reverse=True)
    return ranked[:limit]


def find_duplicate_entries(
    reference_entries: Sequence[ReferenceLedgerEntry],
) -> list[DuplicateReferenceEntry]:
    """Reference entries sharing a (GSTIN, normalized number) key."""
    groups: dict[tuple[str, str], list[ReferenceLedgerEntry]] = {}
    for entry in reference_entries:
        key = (
            normalize_gstin(entry.vendor_gstin),
            normalize_invoice_number(entry.invoice_number),
        )
        groups.setdefault(key, []).append(entry)

    duplicates: list[DuplicateReferenceEntry] = []
    for (gstin, number), entries in groups.items():
        if len(entries) < 2:
            continue
        duplicates.append(
            DuplicateReferenceEntry(
                vendor_gstin=gstin,
                invoice_number=number,
                occurrences=len(entries),
                total_itc=Money.sum(
                    (e.total_itc for e in entries), entries[0].igst.currency
                ),
                entries=tuple(entries),
            )
        )
    if duplicates:
        logger.warning("reference_duplicates_found", extra={
            "duplicate_keys": len(duplicates),
        })
    return duplicates
