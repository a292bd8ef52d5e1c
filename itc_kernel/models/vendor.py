"""
Module: itc_kernel.models.vendor
Responsibility: ORM persistence for the supplier master used by eligibility
    gating (vendor type, registration and active flags).
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from itc_kernel.db.base import TrackedBase


class VendorModel(TrackedBase):
    """
    Supplier known to an owner.

    Guarantees:
        - vendor_ref is unique; it is the identifier purchase invoices cite.
    """

    __tablename__ = "itc_vendors"

    __table_args__ = (
        UniqueConstraint("vendor_ref", name="uq_vendor_ref"),
        Index("idx_vendor_gstin", "gstin"),
    )

    vendor_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    gstin: Mapped[str | None] = mapped_column(String(15), nullable=True)
    vendor_type: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_registered: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    def __repr__(self) -> str:
        return f"<VendorModel {self.vendor_ref}: {self.vendor_type}>"
