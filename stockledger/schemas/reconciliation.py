from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator


class ReconciliationUpdateIn(BaseModel):
    adjustments: Decimal | None = Field(default=None, max_digits=15, decimal_places=2)
    back_charges: Decimal | None = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    credits: Decimal | None = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    condemnations: Decimal | None = Field(default=None, ge=0, max_digits=15, decimal_places=2)


class ReconciliationFiguresOut(BaseModel):
    opening_stock: Decimal
    receipts: Decimal
    transfers_in: Decimal
    transfers_out: Decimal
    issues: Decimal
    closing_stock: Decimal
    adjustments: Decimal
    back_charges: Decimal
    credits: Decimal
    condemnations: Decimal
    ncr_credits: Decimal
    ncr_losses: Decimal


class ReconciliationOut(BaseModel):
    period_id: str
    location_id: str
    reconciliation_id: str | None
    is_auto_calculated: bool
    figures: ReconciliationFiguresOut
    calculated_closing: Decimal
    variance: Decimal
    total_adjustments: Decimal
    consumption: Decimal
    total_mandays: int | None = None
    manday_cost: Decimal | None = None
    last_updated: datetime | None = None

    @model_validator(mode="after")
    def validate_manday_pair(self) -> "ReconciliationOut":
        if (self.total_mandays is None) != (self.manday_cost is None):
            raise ValueError("total_mandays and manday_cost go together")
        return self


class ConsolidatedReconciliationOut(BaseModel):
    period_id: str
    locations: list[ReconciliationOut]
    totals: ReconciliationFiguresOut
    total_variance: Decimal
    total_consumption: Decimal
