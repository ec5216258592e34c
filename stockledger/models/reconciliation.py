from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base

_ZERO = Decimal("0.00")


def _money_column():
    return mapped_column(Numeric(15, 2), nullable=False, default=_ZERO)


class Reconciliation(Base):
    __tablename__ = "reconciliations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    period_id: Mapped[str] = mapped_column(String(36), ForeignKey("periods.id"), nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(String(36), ForeignKey("locations.id"), nullable=False, index=True)
    opening_stock: Mapped[Decimal] = _money_column()
    receipts: Mapped[Decimal] = _money_column()
    transfers_in: Mapped[Decimal] = _money_column()
    transfers_out: Mapped[Decimal] = _money_column()
    issues: Mapped[Decimal] = _money_column()
    closing_stock: Mapped[Decimal] = _money_column()
    adjustments: Mapped[Decimal] = _money_column()
    back_charges: Mapped[Decimal] = _money_column()
    credits: Mapped[Decimal] = _money_column()
    condemnations: Mapped[Decimal] = _money_column()
    ncr_credits: Mapped[Decimal] = _money_column()
    ncr_losses: Mapped[Decimal] = _money_column()
    updated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("period_id", "location_id", name="uq_reconciliations_period_location"),
    )
