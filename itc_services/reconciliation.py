"""
itc_services.reconciliation -- Match a period's purchase invoices against the
reference ledger and record the outcome on each invoice.

Responsibility:
    Load the owner's invoices for a period, run the matching engine against
    the already-parsed reference entries, write each invoice's match status
    and, once a person has reviewed the result, confirm the period as
    reconciled in the register.

Architecture position:
    Services -- imperative shell over engines + kernel.
    Composes ``itc_engines.matching`` (pure) with the repository port and
    ItcRegisterService.

Invariants enforced:
    - Re-running with the same inputs writes the same statuses.
    - Every invoice of the period ends with exactly one status:
      MATCHED, AMOUNT_MISMATCH or NOT_IN_REFERENCE.
    - The run never applies transactions to the ledger; callers must not
      apply a matched batch twice.

Failure modes:
    - InvalidPeriodError: malformed period key.
    - RegisterNotFoundError: ``confirm`` on an uninitialized period.
"""

from __future__ import annotations

import time
from collections.abc import Sequence

from itc_config import get_active_config
from itc_config.bridges import build_reconciliation_config
from itc_config.schema import ItcConfiguration
from itc_engines.matching import (
    LocalInvoiceRecord,
    ReconciliationConfig,
    ReconciliationResult,
    find_duplicate_entries,
    reconcile,
)
from itc_kernel.domain.clock import Clock
from itc_kernel.domain.periods import PeriodKey
from itc_kernel.domain.records import (
    InvoiceMatchStatus,
    ItcRegisterPeriod,
    ReferenceLedgerEntry,
)
from itc_kernel.logging_config import LogContext, get_logger
from itc_services.ports import ItcRepository
from itc_services.register import ItcRegisterService

logger = get_logger("services.reconciliation")


class ReconciliationService:
    """Period reconciliation against the reference ledger."""

    def __init__(
        self,
        repo: ItcRepository,
        clock: Clock,
        register: ItcRegisterService | None = None,
        config: ItcConfiguration | None = None,
    ):
        self._repo = repo
        self._clock = clock
        self._config = config or get_active_config()
        self._register = register or ItcRegisterService(repo, clock, self._config)
        self._defaults = build_reconciliation_config(self._config)

    def run(
        self,
        owner_id: str,
        period: str,
        reference_entries: Sequence[ReferenceLedgerEntry],
        config: ReconciliationConfig | None = None,
    ) -> ReconciliationResult:
        """
        Reconcile one period and record each invoice's match status.

        Args:
            owner_id: Taxpayer whose invoices are reconciled.
            period: ``MM-YYYY`` key; invoices dated in that month take part.
            reference_entries: The reference ledger for the period.
            config: Tolerances; the configured defaults when omitted.
        """
        key = PeriodKey.parse(period)
        config = config or self._defaults
        start = time.monotonic()

        with LogContext.bind(owner_id=owner_id, period=str(key)):
            invoices = self._repo.list_invoices(
                owner_id, start_date=key.start_date, end_date=key.end_date
            )
            duplicates = find_duplicate_entries(reference_entries)
            if duplicates:
                logger.warning(
                    "reference_duplicates_found",
                    extra={
                        "duplicate_count": len(duplicates),
                        "keys": [
                            f"{d.vendor_gstin}/{d.invoice_number}" for d in duplicates
                        ],
                    },
                )

            result = reconcile(
                local_invoices=[LocalInvoiceRecord.from_invoice(inv) for inv in invoices],
                reference_entries=reference_entries,
                config=config,
            )

            statuses: dict[str, InvoiceMatchStatus] = {}
            for pair in result.matched:
                statuses[pair.local.invoice_id] = InvoiceMatchStatus.MATCHED
            for pair in result.mismatched:
                statuses[pair.local.invoice_id] = InvoiceMatchStatus.AMOUNT_MISMATCH
            for local in result.local_only:
                statuses[local.invoice_id] = InvoiceMatchStatus.NOT_IN_REFERENCE

            now = self._clock.now()
            updated = 0
            for invoice in invoices:
                status = statuses[invoice.invoice_id]
                if invoice.match_status != status:
                    self._repo.save_invoice(invoice.with_match_status(status, now))
                    updated += 1

            summary = result.summary
            logger.info(
                "period_reconciled",
                extra={
                    "invoice_count": len(invoices),
                    "reference_count": len(reference_entries),
                    "matched_count": summary.matched_count,
                    "mismatched_count": summary.mismatched_count,
                    "local_only_count": summary.local_only_count,
                    "reference_only_count": summary.reference_only_count,
                    "statuses_updated": updated,
                    "duration_ms": round((time.monotonic() - start) * 1000, 2),
                },
            )
            return result

    def confirm(self, owner_id: str, period: str) -> ItcRegisterPeriod:
        """Mark the period's register row reconciled."""
        return self._register.mark_reconciled(owner_id, period)
