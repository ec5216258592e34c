from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base
from stockledger.models.enums import PeriodLocationStatus, PeriodStatus


class Period(Base):
    __tablename__ = "periods"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PeriodStatus.DRAFT.value)
    prices_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    approval_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_periods_status", "status"),
        Index("ix_periods_start_end", "start_date", "end_date"),
    )


class PeriodLocation(Base):
    __tablename__ = "period_locations"

    period_id: Mapped[str] = mapped_column(String(36), ForeignKey("periods.id"), primary_key=True)
    location_id: Mapped[str] = mapped_column(String(36), ForeignKey("locations.id"), primary_key=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PeriodLocationStatus.OPEN.value)
    opening_value: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    closing_value: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    # Serialized JSON text, returned verbatim by the snapshot endpoint.
    snapshot_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    ready_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ready_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_period_locations_period_status", "period_id", "status"),)
