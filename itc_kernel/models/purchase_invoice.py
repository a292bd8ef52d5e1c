"""
Module: itc_kernel.models.purchase_invoice
Responsibility: ORM persistence for purchase invoices and their line items.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Invoice number is unique per (owner, vendor) (uq_purchase_invoice_number).
    - Line items belong to exactly one invoice and are replaced wholesale on
      update (delete-orphan cascade), matching full re-derivation.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    JSON,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from itc_kernel.db.base import Base, TrackedBase, UUIDString


class PurchaseInvoiceModel(TrackedBase):
    """Persisted purchase invoice with derived aggregates."""

    __tablename__ = "itc_purchase_invoices"

    __table_args__ = (
        UniqueConstraint(
            "owner_id",
            "vendor_ref",
            "normalized_number",
            name="uq_purchase_invoice_number",
        ),
        Index("idx_purchase_invoice_owner_date", "owner_id", "invoice_date"),
        Index("idx_purchase_invoice_vendor", "owner_id", "vendor_ref"),
    )

    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    vendor_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    vendor_gstin: Mapped[str] = mapped_column(String(15), nullable=False)
    vendor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    normalized_number: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    origin_state_code: Mapped[str] = mapped_column(String(2), nullable=False)
    destination_state_code: Mapped[str] = mapped_column(String(2), nullable=False)
    is_interstate: Mapped[bool] = mapped_column(Boolean, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)

    taxable_amount: Mapped[Decimal] = mapped_column(nullable=False)
    cgst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    sgst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    igst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    cess_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_gst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    is_reverse_charge: Mapped[bool] = mapped_column(Boolean, nullable=False)
    rcm_percentage: Mapped[Decimal] = mapped_column(nullable=False)
    rcm_amount: Mapped[Decimal] = mapped_column(nullable=False)
    payable_to_vendor: Mapped[Decimal] = mapped_column(nullable=False)
    payable_to_government: Mapped[Decimal] = mapped_column(nullable=False)

    itc_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)
    itc_category: Mapped[str] = mapped_column(String(20), nullable=False)
    itc_claimed: Mapped[Decimal] = mapped_column(nullable=False)
    itc_blocked: Mapped[Decimal] = mapped_column(nullable=False)
    itc_reversed: Mapped[Decimal] = mapped_column(nullable=False)

    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    match_status: Mapped[str] = mapped_column(String(20), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    document_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    line_items: Mapped[list["PurchaseLineItemModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="PurchaseLineItemModel.line_number",
    )

    def __repr__(self) -> str:
        return f"<PurchaseInvoiceModel {self.invoice_number} ({self.vendor_ref})>"


class PurchaseLineItemModel(Base):
    """One computed line of a purchase invoice."""

    __tablename__ = "itc_purchase_line_items"

    __table_args__ = (
        UniqueConstraint("invoice_id", "line_number", name="uq_purchase_line_number"),
        Index("idx_purchase_line_hsn", "hsn_sac_code"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("itc_purchase_invoices.id", ondelete="CASCADE"),
        nullable=False,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    hsn_sac_code: Mapped[str] = mapped_column(String(10), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_rate: Mapped[Decimal] = mapped_column(nullable=False)
    gst_rate: Mapped[Decimal] = mapped_column(nullable=False)
    cess_rate: Mapped[Decimal] = mapped_column(nullable=False)
    itc_category: Mapped[str] = mapped_column(String(20), nullable=False)
    blocked_reason: Mapped[str | None] = mapped_column(String(20), nullable=True)
    business_use_percentage: Mapped[Decimal] = mapped_column(nullable=False)
    declared_category: Mapped[str | None] = mapped_column(String(20), nullable=True)
    expense_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    expense_attributes: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    taxable_amount: Mapped[Decimal] = mapped_column(nullable=False)
    cgst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    sgst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    igst_amount: Mapped[Decimal] = mapped_column(nullable=False)
    cess_amount: Mapped[Decimal] = mapped_column(nullable=False)

    itc_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)
    itc_eligible_amount: Mapped[Decimal] = mapped_column(nullable=False)
    itc_blocked_amount: Mapped[Decimal] = mapped_column(nullable=False)
    itc_blocked_reason: Mapped[str | None] = mapped_column(String(200), nullable=True)

    invoice: Mapped[PurchaseInvoiceModel] = relationship(back_populates="line_items")
