"""
Module: itc_kernel.models.register
Responsibility: ORM persistence for the per-(owner, period) ITC register.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per (owner, period) (uq_itc_register_owner_period).
    - version increases by one on each write; the repository compares it
      before updating to detect lost updates.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from itc_kernel.db.base import TrackedBase


class ItcRegisterModel(TrackedBase):
    """Running ITC balance for one owner and one MM-YYYY period."""

    __tablename__ = "itc_registers"

    __table_args__ = (
        UniqueConstraint("owner_id", "period", name="uq_itc_register_owner_period"),
        Index("idx_itc_register_fy", "owner_id", "financial_year"),
    )

    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    period: Mapped[str] = mapped_column(String(7), nullable=False)
    # YYYYMM, for range queries; the MM-YYYY key does not sort chronologically
    period_ordinal: Mapped[int] = mapped_column(Integer, nullable=False)
    financial_year: Mapped[str] = mapped_column(String(7), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR", nullable=False)

    opening_balance: Mapped[Decimal] = mapped_column(nullable=False)
    eligible_itc: Mapped[Decimal] = mapped_column(nullable=False)
    claimed_itc: Mapped[Decimal] = mapped_column(nullable=False)
    reversed_itc: Mapped[Decimal] = mapped_column(nullable=False)
    blocked_itc: Mapped[Decimal] = mapped_column(nullable=False)
    inputs_itc: Mapped[Decimal] = mapped_column(nullable=False)
    capital_goods_itc: Mapped[Decimal] = mapped_column(nullable=False)
    input_services_itc: Mapped[Decimal] = mapped_column(nullable=False)
    closing_balance: Mapped[Decimal] = mapped_column(nullable=False)

    is_reconciled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reconciled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<ItcRegisterModel {self.owner_id} {self.period} v{self.version}>"
