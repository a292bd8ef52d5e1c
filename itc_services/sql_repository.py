"""
SqlItcRepository -- SQLAlchemy implementation of the ITC repository port.

Responsibility:
    Convert between frozen domain records and the ORM models in
    ``itc_kernel.models`` and persist them through a caller-owned Session.

Architecture position:
    Services -- imperative shell, persistence adapter.

Invariants enforced:
    - Flush-only: never commits or rolls back; the caller's
      ``session_scope()`` owns the transaction boundary.
    - Register writes compare the stored version before updating and raise
      OptimisticLockError on a stale write.
    - On PostgreSQL, ``find_register_row(for_update=True)`` issues
      ``SELECT ... FOR UPDATE``; other dialects rely on the per-key lock
      and the version check.
    - Money columns use ExactDecimal, so every amount reloads equal to the
      value that was saved.

Failure modes:
    - DuplicateInvoiceError on a second invoice with the same
      (owner, vendor, invoice number).
    - OptimisticLockError on a stale register write.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from itc_kernel.domain.clock import Clock, SystemClock
from itc_kernel.domain.periods import PeriodKey
from itc_kernel.domain.records import (
    BlockedReasonTag,
    InvoiceMatchStatus,
    ItcCategory,
    ItcRegisterPeriod,
    PaymentStatus,
    PurchaseInvoice,
    PurchaseLineItem,
    Vendor,
    VendorType,
)
from itc_kernel.domain.values import Money
from itc_kernel.exceptions import DuplicateInvoiceError, OptimisticLockError
from itc_kernel.logging_config import get_logger
from itc_kernel.models import (
    ItcRegisterModel,
    PurchaseInvoiceModel,
    PurchaseLineItemModel,
    VendorModel,
)
from itc_services.ports import ItcRepository, invoice_number_key

logger = get_logger("services.sql_repository")


def _period_ordinal(period: str) -> int:
    key = PeriodKey.parse(period)
    return key.year * 100 + key.month


def _vendor_to_domain(model: VendorModel) -> Vendor:
    return Vendor(
        vendor_id=model.vendor_ref,
        name=model.name,
        gstin=model.gstin,
        vendor_type=VendorType(model.vendor_type),
        is_active=model.is_active,
        is_registered=model.is_registered,
    )


def _line_to_domain(model: PurchaseLineItemModel, currency: str) -> PurchaseLineItem:
    def money(value):
        return Money.of(value, currency)

    return PurchaseLineItem(
        line_number=model.line_number,
        description=model.description,
        hsn_sac_code=model.hsn_sac_code,
        quantity=model.quantity,
        unit_rate=money(model.unit_rate),
        gst_rate=model.gst_rate,
        itc_category=ItcCategory(model.itc_category),
        taxable_amount=money(model.taxable_amount),
        cgst=money(model.cgst_amount),
        sgst=money(model.sgst_amount),
        igst=money(model.igst_amount),
        cess=money(model.cess_amount),
        itc_eligible=model.itc_eligible,
        itc_eligible_amount=money(model.itc_eligible_amount),
        itc_blocked_amount=money(model.itc_blocked_amount),
        blocked_reason=(
            BlockedReasonTag(model.blocked_reason) if model.blocked_reason else None
        ),
        itc_blocked_reason=model.itc_blocked_reason,
        business_use_percentage=model.business_use_percentage,
        cess_rate=model.cess_rate,
        declared_category=(
            ItcCategory(model.declared_category) if model.declared_category else None
        ),
        expense_code=model.expense_code,
        expense_attributes=tuple(sorted((model.expense_attributes or {}).items())),
    )


def _invoice_to_domain(model: PurchaseInvoiceModel) -> PurchaseInvoice:
    currency = model.currency

    def money(value):
        return Money.of(value, currency)

    return PurchaseInvoice(
        invoice_id=str(model.id),
        owner_id=model.owner_id,
        vendor_id=model.vendor_ref,
        vendor_gstin=model.vendor_gstin,
        vendor_name=model.vendor_name,
        invoice_number=model.invoice_number,
        invoice_date=model.invoice_date,
        origin_state_code=model.origin_state_code,
        destination_state_code=model.destination_state_code,
        is_interstate=model.is_interstate,
        line_items=tuple(_line_to_domain(li, currency) for li in model.line_items),
        taxable_amount=money(model.taxable_amount),
        cgst=money(model.cgst_amount),
        sgst=money(model.sgst_amount),
        igst=money(model.igst_amount),
        cess=money(model.cess_amount),
        total_gst=money(model.total_gst_amount),
        total_amount=money(model.total_amount),
        is_reverse_charge=model.is_reverse_charge,
        rcm_percentage=model.rcm_percentage,
        rcm_amount=money(model.rcm_amount),
        payable_to_vendor=money(model.payable_to_vendor),
        payable_to_government=money(model.payable_to_government),
        itc_eligible=model.itc_eligible,
        itc_category=ItcCategory(model.itc_category),
        itc_claimed=money(model.itc_claimed),
        itc_blocked=money(model.itc_blocked),
        itc_reversed=money(model.itc_reversed),
        payment_status=PaymentStatus(model.payment_status),
        payment_date=model.payment_date,
        match_status=InvoiceMatchStatus(model.match_status),
        notes=model.notes,
        document_url=model.document_url,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _register_to_domain(model: ItcRegisterModel) -> ItcRegisterPeriod:
    currency = model.currency

    def money(value):
        return Money.of(value, currency)

    return ItcRegisterPeriod(
        register_id=str(model.id),
        owner_id=model.owner_id,
        period=model.period,
        financial_year=model.financial_year,
        opening_balance=money(model.opening_balance),
        eligible_itc=money(model.eligible_itc),
        claimed_itc=money(model.claimed_itc),
        reversed_itc=money(model.reversed_itc),
        blocked_itc=money(model.blocked_itc),
        inputs_itc=money(model.inputs_itc),
        capital_goods_itc=money(model.capital_goods_itc),
        input_services_itc=money(model.input_services_itc),
        closing_balance=money(model.closing_balance),
        is_reconciled=model.is_reconciled,
        reconciled_at=model.reconciled_at,
        version=model.version,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _line_to_model(line: PurchaseLineItem) -> PurchaseLineItemModel:
    return PurchaseLineItemModel(
        line_number=line.line_number,
        description=line.description,
        hsn_sac_code=line.hsn_sac_code,
        quantity=line.quantity,
        unit_rate=line.unit_rate.amount,
        gst_rate=line.gst_rate,
        cess_rate=line.cess_rate,
        itc_category=line.itc_category.value,
        blocked_reason=line.blocked_reason.value if line.blocked_reason else None,
        business_use_percentage=line.business_use_percentage,
        declared_category=(
            line.declared_category.value if line.declared_category else None
        ),
        expense_code=line.expense_code,
        expense_attributes=dict(line.expense_attributes) if line.expense_code else None,
        taxable_amount=line.taxable_amount.amount,
        cgst_amount=line.cgst.amount,
        sgst_amount=line.sgst.amount,
        igst_amount=line.igst.amount,
        cess_amount=line.cess.amount,
        itc_eligible=line.itc_eligible,
        itc_eligible_amount=line.itc_eligible_amount.amount,
        itc_blocked_amount=line.itc_blocked_amount.amount,
        itc_blocked_reason=line.itc_blocked_reason,
    )


class SqlItcRepository(ItcRepository):
    """
    Repository over a SQLAlchemy Session.

    Contract:
        One instance per unit of work; share the instance (not just the
        engine) between threads that must serialize on the same keys.
    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    def __init__(self, session: Session, clock: Clock | None = None) -> None:
        super().__init__()
        self._session = session
        self._clock = clock or SystemClock()

    @property
    def session(self) -> Session:
        return self._session

    def _supports_row_locks(self) -> bool:
        return self._session.get_bind().dialect.name == "postgresql"

    # Vendors

    def _vendor_model(self, vendor_id: str) -> VendorModel | None:
        return self._session.execute(
            select(VendorModel).where(VendorModel.vendor_ref == vendor_id)
        ).scalar_one_or_none()

    def find_vendor(self, vendor_id: str) -> Vendor | None:
        model = self._vendor_model(vendor_id)
        return _vendor_to_domain(model) if model is not None else None

    def save_vendor(self, vendor: Vendor) -> Vendor:
        now = self._clock.now()
        model = self._vendor_model(vendor.vendor_id)
        if model is None:
            model = VendorModel(vendor_ref=vendor.vendor_id, created_at=now)
            self._session.add(model)
        model.name = vendor.name
        model.gstin = vendor.gstin
        model.vendor_type = vendor.vendor_type.value
        model.is_active = vendor.is_active
        model.is_registered = vendor.is_registered
        model.updated_at = now
        self._session.flush()
        return vendor

    # Purchase invoices

    def _invoice_query(self):
        return select(PurchaseInvoiceModel).options(
            selectinload(PurchaseInvoiceModel.line_items)
        )

    def find_invoice(self, invoice_id: str) -> PurchaseInvoice | None:
        if not isinstance(invoice_id, str):
            return None
        try:
            invoice_uuid = UUID(invoice_id)
        except ValueError:
            # Not an id this repository ever issued.
            return None
        model = self._session.execute(
            self._invoice_query().where(PurchaseInvoiceModel.id == invoice_uuid)
        ).scalar_one_or_none()
        return _invoice_to_domain(model) if model is not None else None

    def find_invoice_by_number(
        self, owner_id: str, vendor_id: str, invoice_number: str
    ) -> PurchaseInvoice | None:
        model = self._session.execute(
            self._invoice_query().where(
                PurchaseInvoiceModel.owner_id == owner_id,
                PurchaseInvoiceModel.vendor_ref == vendor_id,
                PurchaseInvoiceModel.normalized_number
                == invoice_number_key(invoice_number),
            )
        ).scalar_one_or_none()
        return _invoice_to_domain(model) if model is not None else None

    def save_invoice(self, invoice: PurchaseInvoice) -> PurchaseInvoice:
        existing = self.find_invoice_by_number(
            invoice.owner_id, invoice.vendor_id, invoice.invoice_number
        )
        if existing is not None and existing.invoice_id != invoice.invoice_id:
            raise DuplicateInvoiceError(
                invoice.owner_id, invoice.vendor_id, invoice.invoice_number
            )

        invoice_uuid = UUID(invoice.invoice_id)
        model = self._session.get(PurchaseInvoiceModel, invoice_uuid)
        if model is None:
            model = PurchaseInvoiceModel(
                id=invoice_uuid,
                created_at=invoice.created_at or self._clock.now(),
            )
            self._session.add(model)
        elif model.line_items:
            # Delete old lines before inserting replacements with the same
            # line numbers; the unit of work inserts before it deletes.
            model.line_items.clear()
            self._session.flush()

        model.owner_id = invoice.owner_id
        model.vendor_ref = invoice.vendor_id
        model.vendor_gstin = invoice.vendor_gstin
        model.vendor_name = invoice.vendor_name
        model.invoice_number = invoice.invoice_number
        model.normalized_number = invoice_number_key(invoice.invoice_number)
        model.invoice_date = invoice.invoice_date
        model.origin_state_code = invoice.origin_state_code
        model.destination_state_code = invoice.destination_state_code
        model.is_interstate = invoice.is_interstate
        model.currency = invoice.taxable_amount.currency.code
        model.taxable_amount = invoice.taxable_amount.amount
        model.cgst_amount = invoice.cgst.amount
        model.sgst_amount = invoice.sgst.amount
        model.igst_amount = invoice.igst.amount
        model.cess_amount = invoice.cess.amount
        model.total_gst_amount = invoice.total_gst.amount
        model.total_amount = invoice.total_amount.amount
        model.is_reverse_charge = invoice.is_reverse_charge
        model.rcm_percentage = invoice.rcm_percentage
        model.rcm_amount = invoice.rcm_amount.amount
        model.payable_to_vendor = invoice.payable_to_vendor.amount
        model.payable_to_government = invoice.payable_to_government.amount
        model.itc_eligible = invoice.itc_eligible
        model.itc_category = invoice.itc_category.value
        model.itc_claimed = invoice.itc_claimed.amount
        model.itc_blocked = invoice.itc_blocked.amount
        model.itc_reversed = invoice.itc_reversed.amount
        model.payment_status = invoice.payment_status.value
        model.payment_date = invoice.payment_date
        model.match_status = invoice.match_status.value
        model.notes = invoice.notes
        model.document_url = invoice.document_url
        model.updated_at = invoice.updated_at or self._clock.now()
        # Full re-derivation replaces every line.
        model.line_items = [_line_to_model(line) for line in invoice.line_items]

        try:
            self._session.flush()
        except IntegrityError as e:
            logger.warning("invoice_save_integrity_error", extra={
                "owner_id": invoice.owner_id,
                "vendor_id": invoice.vendor_id,
                "invoice_number": invoice.invoice_number,
            })
            raise DuplicateInvoiceError(
                invoice.owner_id, invoice.vendor_id, invoice.invoice_number
            ) from e
        return invoice

    def list_invoices(
        self,
        owner_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
        vendor_id: str | None = None,
    ) -> list[PurchaseInvoice]:
        query = self._invoice_query().where(PurchaseInvoiceModel.owner_id == owner_id)
        if start_date is not None:
            query = query.where(PurchaseInvoiceModel.invoice_date >= start_date)
        if end_date is not None:
            query = query.where(PurchaseInvoiceModel.invoice_date <= end_date)
        if vendor_id is not None:
            query = query.where(PurchaseInvoiceModel.vendor_ref == vendor_id)
        query = query.order_by(
            PurchaseInvoiceModel.invoice_date, PurchaseInvoiceModel.invoice_number
        )
        return [_invoice_to_domain(m) for m in self._session.execute(query).scalars()]

    # Register rows

    def _register_model(
        self, owner_id: str, period: str, for_update: bool = False
    ) -> ItcRegisterModel | None:
        query = select(ItcRegisterModel).where(
            ItcRegisterModel.owner_id == owner_id,
            ItcRegisterModel.period == period,
        )
        if for_update and self._supports_row_locks():
            query = query.with_for_update()
        return self._session.execute(query).scalar_one_or_none()

    def find_register_row(
        self, owner_id: str, period: str, for_update: bool = False
    ) -> ItcRegisterPeriod | None:
        model = self._register_model(owner_id, period, for_update)
        return _register_to_domain(model) if model is not None else None

    def save_register_row(self, row: ItcRegisterPeriod) -> ItcRegisterPeriod:
        model = self._register_model(row.owner_id, row.period)
        if model is None:
            if row.version != 0:
                raise OptimisticLockError("ItcRegisterPeriod", row.register_id)
            model = ItcRegisterModel(
                id=UUID(row.register_id),
                owner_id=row.owner_id,
                period=row.period,
                period_ordinal=_period_ordinal(row.period),
                financial_year=row.financial_year,
                currency=row.opening_balance.currency.code,
                created_at=row.created_at or self._clock.now(),
            )
            self._session.add(model)
        elif model.version + 1 != row.version:
            logger.warning("register_version_conflict", extra={
                "owner_id": row.owner_id,
                "period": row.period,
                "stored_version": model.version,
                "incoming_version": row.version,
            })
            raise OptimisticLockError("ItcRegisterPeriod", row.register_id)

        model.opening_balance = row.opening_balance.amount
        model.eligible_itc = row.eligible_itc.amount
        model.claimed_itc = row.claimed_itc.amount
        model.reversed_itc = row.reversed_itc.amount
        model.blocked_itc = row.blocked_itc.amount
        model.inputs_itc = row.inputs_itc.amount
        model.capital_goods_itc = row.capital_goods_itc.amount
        model.input_services_itc = row.input_services_itc.amount
        model.closing_balance = row.closing_balance.amount
        model.is_reconciled = row.is_reconciled
        model.reconciled_at = row.reconciled_at
        model.version = row.version
        model.updated_at = row.updated_at or self._clock.now()
        self._session.flush()
        return row

    def list_register_rows(
        self,
        owner_id: str,
        financial_year: str | None = None,
        from_period: str | None = None,
        to_period: str | None = None,
    ) -> list[ItcRegisterPeriod]:
        query = select(ItcRegisterModel).where(ItcRegisterModel.owner_id == owner_id)
        if financial_year is not None:
            query = query.where(ItcRegisterModel.financial_year == financial_year)
        if from_period is not None:
            query = query.where(
                ItcRegisterModel.period_ordinal >= _period_ordinal(from_period)
            )
        if to_period is not None:
            query = query.where(
                ItcRegisterModel.period_ordinal <= _period_ordinal(to_period)
            )
        query = query.order_by(ItcRegisterModel.period_ordinal)
        return [_register_to_domain(m) for m in self._session.execute(query).scalars()]
