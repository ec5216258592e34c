from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base
from stockledger.models.enums import CostCentre


class Issue(Base):
    __tablename__ = "issues"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    issue_no: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    period_id: Mapped[str] = mapped_column(String(36), ForeignKey("periods.id"), nullable=False, index=True)
    location_id: Mapped[str] = mapped_column(String(36), ForeignKey("locations.id"), nullable=False, index=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    cost_centre: Mapped[str] = mapped_column(String(10), nullable=False, default=CostCentre.FOOD.value)
    total_value: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    posted_by: Mapped[str] = mapped_column(String(36), nullable=False)
    posted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("ix_issues_location_period", "location_id", "period_id"),)


class IssueLine(Base):
    __tablename__ = "issue_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    issue_id: Mapped[str] = mapped_column(String(36), ForeignKey("issues.id"), nullable=False, index=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False)
    wac_at_issue: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False)
    line_value: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
