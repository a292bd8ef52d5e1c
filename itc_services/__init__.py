"""
itc_services -- imperative shell over the ITC engines.

Services own persistence (through the ``ItcRepository`` port), the clock
and configuration loading. They hand engines plain values and record the
engines' outcomes.

    PurchaseInvoiceService   ingestion, validation, derivation, queries
    ItcRegisterService       period ledger and its reports
    ReconciliationService    reference-ledger matching per period
"""

from itc_services.ingestion import (
    PurchaseInvoiceInput,
    PurchaseInvoiceService,
    PurchaseLineItemInput,
    ValidationReport,
)
from itc_services.ports import InMemoryItcRepository, ItcRepository
from itc_services.reconciliation import ReconciliationService
from itc_services.register import ItcRegisterService
from itc_services.sql_repository import SqlItcRepository

__all__ = [
    "InMemoryItcRepository",
    "ItcRegisterService",
    "ItcRepository",
    "PurchaseInvoiceInput",
    "PurchaseInvoiceService",
    "PurchaseLineItemInput",
    "ReconciliationService",
    "SqlItcRepository",
    "ValidationReport",
]
