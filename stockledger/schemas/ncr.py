from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator

from stockledger.models.enums import FinancialImpact, NCRStatus
from stockledger.schemas.common import PaginationMeta


class NCRCreateIn(BaseModel):
    location_id: str = Field(min_length=1, max_length=36)
    reason: str = Field(min_length=3, max_length=1000)
    value: Decimal = Field(ge=0, max_digits=15, decimal_places=2)
    quantity: Decimal | None = Field(default=None, gt=0, max_digits=15, decimal_places=4)
    item_id: str | None = Field(default=None, max_length=36)
    delivery_id: str | None = Field(default=None, max_length=36)

    @field_validator("reason")
    @classmethod
    def normalize_reason(cls, value: str) -> str:
        cleaned = value.strip()
        if len(cleaned) < 3:
            raise ValueError("reason must be at least 3 characters")
        return cleaned


class NCRUpdateIn(BaseModel):
    status: NCRStatus | None = None
    financial_impact: FinancialImpact | None = None
    resolution_notes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_any_field_present(self) -> "NCRUpdateIn":
        if self.status is None and self.financial_impact is None and self.resolution_notes is None:
            raise ValueError("At least one field must be provided")
        return self


class NCROut(BaseModel):
    id: str
    ncr_no: str
    location_id: str
    type: str
    auto_generated: bool
    delivery_id: str | None
    delivery_line_id: str | None
    item_id: str | None
    reason: str
    quantity: Decimal | None
    value: Decimal
    status: str
    financial_impact: str
    resolution_notes: str | None
    created_by: str
    created_at: datetime | None
    resolved_at: datetime | None


class NCRListOut(BaseModel):
    items: list[NCROut]
    pagination: PaginationMeta


class NCRSummaryOut(BaseModel):
    period_id: str
    location_id: str
    credited_total: Decimal
    credited_count: int
    losses_total: Decimal
    losses_count: int
    pending_total: Decimal
    pending_count: int
    open_total: Decimal
    open_count: int
