"""
Repository port for ITC services, plus the dict-backed implementation.

Responsibility:
    Define the only persistence surface services use: vendors, purchase
    invoices and register rows, looked up and saved by key. Also own the
    per-key mutual-exclusion primitive that serializes register updates.

Architecture position:
    Services -- imperative shell. ``ItcRepository`` is the port;
    ``InMemoryItcRepository`` backs tests and embedding and
    ``itc_services.sql_repository.SqlItcRepository`` backs production.

Invariants enforced:
    - Repositories store and return frozen domain records, never ORM rows.
    - ``save_register_row`` rejects a write whose version is not exactly
      one above the stored version (lost-update detection).
    - Locks are owned by the repository instance, never by module or class
      state, so two repositories never share lock state.

Failure modes:
    - OptimisticLockError from ``save_register_row`` on a stale version.
    - DuplicateInvoiceError from ``save_invoice`` when another invoice
      holds the same (owner, vendor, invoice number).
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Hashable
from datetime import date

from itc_kernel.domain.periods import PeriodKey
from itc_kernel.domain.records import ItcRegisterPeriod, PurchaseInvoice, Vendor
from itc_kernel.exceptions import DuplicateInvoiceError, OptimisticLockError


def invoice_number_key(invoice_number: str) -> str:
    """Uniqueness key for an invoice number: trimmed and upper-cased."""
    return invoice_number.strip().upper()


class KeyedLocks:
    """One ``threading.Lock`` per key, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}

    def get(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock


class ItcRepository(ABC):
    """Persistence port: find, create and update by key."""

    def __init__(self) -> None:
        self._locks = KeyedLocks()

    def lock_for(self, key: Hashable) -> threading.Lock:
        """
        Mutual-exclusion primitive for ``key``.

        Usage:
            with repo.lock_for(("register", owner_id, period)):
                ...read, modify, save...
        """
        return self._locks.get(key)

    # Vendors

    @abstractmethod
    def find_vendor(self, vendor_id: str) -> Vendor | None: ...

    @abstractmethod
    def save_vendor(self, vendor: Vendor) -> Vendor: ...

    # Purchase invoices

    @abstractmethod
    def find_invoice(self, invoice_id: str) -> PurchaseInvoice | None: ...

    @abstractmethod
    def find_invoice_by_number(
        self, owner_id: str, vendor_id: str, invoice_number: str
    ) -> PurchaseInvoice | None: ...

    @abstractmethod
    def save_invoice(self, invoice: PurchaseInvoice) -> PurchaseInvoice: ...

    @abstractmethod
    def list_invoices(
        self,
        owner_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
        vendor_id: str | None = None,
    ) -> list[PurchaseInvoice]:
        """Invoices for an owner ordered by (invoice_date, invoice_number)."""

    # Register rows

    @abstractmethod
    def find_register_row(
        self, owner_id: str, period: str, for_update: bool = False
    ) -> ItcRegisterPeriod | None: ...

    @abstractmethod
    def save_register_row(self, row: ItcRegisterPeriod) -> ItcRegisterPeriod: ...

    @abstractmethod
    def list_register_rows(
        self,
        owner_id: str,
        financial_year: str | None = None,
        from_period: str | None = None,
        to_period: str | None = None,
    ) -> list[ItcRegisterPeriod]:
        """Rows for an owner in chronological period order."""


def _in_period_range(
    period: str, from_period: str | None, to_period: str | None
) -> bool:
    key = PeriodKey.parse(period)
    if from_period is not None and key < PeriodKey.parse(from_period):
        return False
    if to_period is not None and key > PeriodKey.parse(to_period):
        return False
    return True


class InMemoryItcRepository(ItcRepository):
    """
    Dict-backed repository.

    Contract:
        Same observable behaviour as the SQL repository, including the
        duplicate-number and version checks.
    Non-goals:
        - No durability; state lives as long as the instance.
    """

    def __init__(self) -> None:
        super().__init__()
        self._guard = threading.Lock()
        self._vendors: dict[str, Vendor] = {}
        self._invoices: dict[str, PurchaseInvoice] = {}
        self._registers: dict[tuple[str, str], ItcRegisterPeriod] = {}

    def find_vendor(self, vendor_id: str) -> Vendor | None:
        return self._vendors.get(vendor_id)

    def save_vendor(self, vendor: Vendor) -> Vendor:
        with self._guard:
            self._vendors[vendor.vendor_id] = vendor
        return vendor

    def find_invoice(self, invoice_id: str) -> PurchaseInvoice | None:
        return self._invoices.get(invoice_id)

    def find_invoice_by_number(
        self, owner_id: str, vendor_id: str, invoice_number: str
    ) -> PurchaseInvoice | None:
        key = invoice_number_key(invoice_number)
        for invoice in self._invoices.values():
            if (
                invoice.owner_id == owner_id
                and invoice.vendor_id == vendor_id
                and invoice_number_key(invoice.invoice_number) == key
            ):
                return invoice
        return None

    def save_invoice(self, invoice: PurchaseInvoice) -> PurchaseInvoice:
        with self._guard:
            existing = self.find_invoice_by_number(
                invoice.owner_id, invoice.vendor_id, invoice.invoice_number
            )
            if existing is not None and existing.invoice_id != invoice.invoice_id:
                raise DuplicateInvoiceError(
                    invoice.owner_id, invoice.vendor_id, invoice.invoice_number
                )
            self._invoices[invoice.invoice_id] = invoice
        return invoice

    def list_invoices(
        self,
        owner_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
        vendor_id: str | None = None,
    ) -> list[PurchaseInvoice]:
        result = [
            inv for inv in self._invoices.values()
            if inv.owner_id == owner_id
            and (start_date is None or inv.invoice_date >= start_date)
            and (end_date is None or inv.invoice_date <= end_date)
            and (vendor_id is None or inv.vendor_id == vendor_id)
        ]
        return sorted(result, key=lambda inv: (inv.invoice_date, inv.invoice_number))

    def find_register_row(
        self, owner_id: str, period: str, for_update: bool = False
    ) -> ItcRegisterPeriod | None:
        return self._registers.get((owner_id, period))

    def save_register_row(self, row: ItcRegisterPeriod) -> ItcRegisterPeriod:
        key = (row.owner_id, row.period)
        with self._guard:
            current = self._registers.get(key)
            if current is None:
                if row.version != 0:
                    raise OptimisticLockError("ItcRegisterPeriod", row.register_id)
            elif row.version != current.version + 1:
                raise OptimisticLockError("ItcRegisterPeriod", row.register_id)
            self._registers[key] = row
        return row

    def list_register_rows(
        self,
        owner_id: str,
        financial_year: str | None = None,
        from_period: str | None = None,
        to_period: str | None = None,
    ) -> list[ItcRegisterPeriod]:
        rows = [
            row for (owner, _), row in self._registers.items()
            if owner == owner_id
            and (financial_year is None or row.financial_year == financial_year)
            and _in_period_range(row.period, from_period, to_period)
        ]
        return sorted(rows, key=lambda row: PeriodKey.parse(row.period))
