from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base


class LocationStock(Base):
    """On-hand quantity and weighted average cost for one item at one location."""

    __tablename__ = "location_stock"

    location_id: Mapped[str] = mapped_column(String(36), ForeignKey("locations.id"), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), primary_key=True)
    on_hand: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False, default=Decimal("0"))
    wac: Mapped[Decimal] = mapped_column(Numeric(15, 4), nullable=False, default=Decimal("0"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("on_hand >= 0", name="ck_location_stock_on_hand_non_negative"),
        CheckConstraint("wac >= 0", name="ck_location_stock_wac_non_negative"),
        Index("ix_location_stock_item", "item_id"),
    )
