"""
Tests for the reference-ledger matching engine.

Verifies:
- Clean match and amount mismatch inside the date window
- Date tolerance boundary (3 days match, 4 days do not)
- Absolute and percentage amount tolerances
- Identity normalization
- Greedy one-to-one assignment and the four-way partition
- Potential-match ranking and duplicate detection
"""

from datetime import date
from decimal import Decimal

import pytest

from itc_engines.matching import (
    LocalInvoiceRecord,
    MatchStatus,
    ReconciliationConfig,
    find_duplicate_entries,
    find_potential_matches,
    is_amount_within_tolerance,
    match_one,
    normalize_gstin,
    normalize_invoice_number,
    reconcile,
)
from itc_kernel.domain.values import Money
from tests.helpers import VENDOR_GSTIN, make_reference_entry


def _local(
    invoice_id="inv-1",
    invoice_number="INV-001",
    invoice_date=date(2024, 4, 10),
    taxable="10000",
    igst="1800",
    cgst="0",
    sgst="0",
    gstin=VENDOR_GSTIN,
):
    return LocalInvoiceRecord(
        invoice_id=invoice_id,
        vendor_gstin=gstin,
        invoice_number=invoice_number,
        invoice_date=invoice_date,
        taxable_value=Money.of(taxable),
        igst=Money.of(igst),
        cgst=Money.of(cgst),
        sgst=Money.of(sgst),
    )


class TestNormalization:
    def test_gstin(self):
        assert normalize_gstin(" 29abcde1234f1z5 ") == VENDOR_GSTIN
        assert normalize_gstin(None) == ""

    @pytest.mark.parametrize("raw", ["INV-001", "inv/001", "INV 001", "inv.001", "INV_001"])
    def test_invoice_number_separators(self, raw):
        assert normalize_invoice_number(raw) == "INV001"


class TestMatchOne:
    def test_clean_match(self):
        result = match_one(_local(), make_reference_entry())
        assert result.status == MatchStatus.MATCHED
        assert result.confidence == 100
        assert result.mismatch is None

    def test_amount_mismatch_inside_date_window(self):
        result = match_one(
            _local(),
            make_reference_entry(invoice_date=date(2024, 4, 12), igst="1850"),
        )
        assert result.status == MatchStatus.AMOUNT_MISMATCH
        assert result.confidence <= 80
        assert result.confidence == 76
        assert result.mismatch.igst_diff == Money.of("50")
        assert result.mismatch.out_of_tolerance == ("igst",)
        assert result.date_difference_days == 2

    def test_date_tolerance_boundary(self):
        three = match_one(_local(), make_reference_entry(invoice_date=date(2024, 4, 13)))
        four = match_one(_local(), make_reference_entry(invoice_date=date(2024, 4, 14)))
        assert three.status == MatchStatus.MATCHED
        assert three.confidence == 94
        assert four.status == MatchStatus.NO_MATCH

    def test_different_gstin_no_match(self):
        result = match_one(_local(), make_reference_entry(gstin="27ZZZZZ9999Z1Z9"))
        assert result.status == MatchStatus.NO_MATCH
        assert not result.is_candidate

    def test_formatted_number_matches(self):
        result = match_one(_local(), make_reference_entry(invoice_number="inv/001"))
        assert result.status == MatchStatus.MATCHED

    def test_half_percent_on_large_value_tolerated(self):
        result = match_one(
            _local(taxable="1000000", igst="180000"),
            make_reference_entry(taxable="1005000", igst="180000"),
        )
        assert result.status == MatchStatus.MATCHED
        assert result.confidence == 98

    def test_rupee_floor(self):
        within = match_one(_local(igst="50"), make_reference_entry(igst="51"))
        outside = match_one(_local(igst="50"), make_reference_entry(igst="51.01"))
        assert within.status == MatchStatus.MATCHED
        assert outside.status == MatchStatus.AMOUNT_MISMATCH

    def test_confidence_floor(self):
        config = ReconciliationConfig(date_tolerance_days=30)
        result = match_one(
            _local(),
            make_reference_entry(invoice_date=date(2024, 5, 5), igst="2500"),
            config,
        )
        assert result.status == MatchStatus.AMOUNT_MISMATCH
        assert result.confidence == 50

    def test_custom_tolerances(self):
        config = ReconciliationConfig(
            date_tolerance_days=7,
            amount_tolerance_percent=Decimal("5"),
            amount_tolerance_absolute=Decimal("0"),
        )
        result = match_one(
            _local(),
            make_reference_entry(invoice_date=date(2024, 4, 16), igst="1850"),
            config,
        )
        assert result.status == MatchStatus.MATCHED
        assert result.confidence == 100 - 12 - 2


class TestAmountTolerance:
    def test_zero_base_uses_unit_denominator(self):
        config = ReconciliationConfig(amount_tolerance_absolute=Decimal("0"))
        assert is_amount_within_tolerance(Money.zero(), Money.of("0.01"), config)
        assert not is_amount_within_tolerance(Money.zero(), Money.of("0.02"), config)


class TestReconcile:
    def test_partition_is_complete(self):
        locals_ = [
            _local("a", "INV-001"),
            _local("b", "INV-002", igst="900"),
            _local("c", "INV-003"),
        ]
        references = [
            make_reference_entry("INV-001"),
            make_reference_entry("INV-002", igst="1000"),
            make_reference_entry("INV-099"),
        ]
        result = reconcile(
            local_invoices=locals_, reference_entries=references, config=None
        )

        assert [p.local.invoice_id for p in result.matched] == ["a"]
        assert [p.local.invoice_id for p in result.mismatched] == ["b"]
        assert [l.invoice_id for l in result.local_only] == ["c"]
        assert [e.invoice_number for e in result.reference_only] == ["INV-099"]

        summary = result.summary
        assert summary.matched_count + summary.mismatched_count + summary.local_only_count == 3
        assert summary.matched_count + summary.mismatched_count + summary.reference_only_count == 3
        assert summary.matched_itc == Money.of("1800")
        assert summary.mismatched_itc == Money.of("1000")
        assert summary.local_only_itc == Money.of("1800")
        assert summary.reference_only_itc == Money.of("1800")

    def test_reference_consumed_once(self):
        locals_ = [_local("a"), _local("b")]
        result = reconcile(
            local_invoices=locals_,
            reference_entries=[make_reference_entry()],
            config=ReconciliationConfig(),
        )
        assert [p.local.invoice_id for p in result.matched] == ["a"]
        assert [l.invoice_id for l in result.local_only] == ["b"]
        assert result.reference_only == ()

    def test_best_candidate_wins(self):
        references = [
            make_reference_entry(invoice_date=date(2024, 4, 12)),
            make_reference_entry(invoice_date=date(2024, 4, 10)),
        ]
        result = reconcile(
            local_invoices=[_local()], reference_entries=references, config=None
        )
        assert result.matched[0].reference is references[1]
        assert result.matched[0].result.confidence == 100

    def test_tie_goes_to_earliest_reference(self):
        references = [make_reference_entry(), make_reference_entry()]
        result = reconcile(
            local_invoices=[_local()], reference_entries=references, config=None
        )
        assert result.matched[0].reference is references[0]
        assert result.reference_only == (references[1],)

    def test_empty_inputs(self):
        result = reconcile(local_invoices=[], reference_entries=[], config=None)
        assert result.summary.matched_count == 0
        assert result.summary.matched_itc.is_zero

    def test_deterministic(self):
        locals_ = [_local("a"), _local("b", "INV-002")]
        references = [make_reference_entry("INV-002"), make_reference_entry()]
        first = reconcile(local_invoices=locals_, reference_entries=references, config=None)
        second = reconcile(local_invoices=locals_, reference_entries=references, config=None)
        assert first == second


class TestPotentialMatches:
    def test_ranked_by_similarity(self):
        entry = make_reference_entry()
        candidates = [
            _local("far", "OTHER-9", invoice_date=date(2024, 1, 1), taxable="1", gstin="07XXXXX0000X1Z0"),
            _local("close", "INV-001X", invoice_date=date(2024, 4, 20)),
            _local("exact"),
        ]
        matches = find_potential_matches(entry, candidates)
        assert [m.local.invoice_id for m in matches] == ["exact", "close"]
        assert matches[0].similarity == 100
        assert matches[1].similarity == 50 + 15 + 5 + 10

    def test_limit(self):
        entry = make_reference_entry()
        candidates = [_local(f"c{i}") for i in range(10)]
        assert len(find_potential_matches(entry, candidates, limit=3)) == 3

    def test_blank_number_earns_nothing(self):
        entry = make_reference_entry()
        (match,) = find_potential_matches(entry, [_local("blank", invoice_number="  ")])
        assert match.similarity == 50 + 10 + 10

    def test_blank_gstins_do_not_match_each_other(self):
        entry = make_reference_entry(gstin="")
        candidate = _local(
            "anon", "XYZ-9", invoice_date=date(2023, 1, 1), taxable="1", gstin=""
        )
        assert find_potential_matches(entry, [candidate]) == []


class TestDuplicates:
    def test_duplicate_keys_grouped(self):
        entries = [
            make_reference_entry("INV-001"),
            make_reference_entry("inv/001"),
            make_reference_entry("INV-002"),
        ]
        duplicates = find_duplicate_entries(entries)
        assert len(duplicates) == 1
        assert duplicates[0].invoice_number == "INV001"
        assert duplicates[0].occurrences == 2
        assert duplicates[0].total_itc == Money.of("3600")

    def test_no_duplicates(self):
        assert find_duplicate_entries([make_reference_entry()]) == []
