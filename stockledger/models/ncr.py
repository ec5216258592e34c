from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base
from stockledger.models.enums import FinancialImpact, NCRStatus, NCRType


class NCR(Base):
    __tablename__ = "ncrs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    ncr_no: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    location_id: Mapped[str] = mapped_column(String(36), ForeignKey("locations.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=NCRType.MANUAL.value)
    auto_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    delivery_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("deliveries.id"), nullable=True, index=True)
    delivery_line_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("delivery_lines.id"),
        nullable=True,
    )
    item_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("items.id"), nullable=True)
    reason: Mapped[str] = mapped_column(String(1000), nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(Numeric(15, 4), nullable=True)
    value: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=NCRStatus.OPEN.value)
    financial_impact: Mapped[str] = mapped_column(String(10), nullable=False, default=FinancialImpact.NONE.value)
    resolution_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_ncrs_location_status", "location_id", "status"),
        Index("ix_ncrs_location_created_at", "location_id", "created_at"),
    )
