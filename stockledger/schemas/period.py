from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator


class PeriodCreateIn(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def validate_date_range(self) -> "PeriodCreateIn":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class PeriodPriceIn(BaseModel):
    item_id: str = Field(min_length=1, max_length=36)
    price: Decimal = Field(ge=0, max_digits=15, decimal_places=4)


class PeriodPricesIn(BaseModel):
    prices: list[PeriodPriceIn] = Field(min_length=1)


class PeriodRollForwardIn(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    end_date: date | None = None
    copy_prices: bool = True


class PeriodLocationOut(BaseModel):
    location_id: str
    status: str
    opening_value: Decimal
    closing_value: Decimal | None
    ready_at: datetime | None
    closed_at: datetime | None
    has_snapshot: bool


class PeriodOut(BaseModel):
    id: str
    name: str
    start_date: date
    end_date: date
    status: str
    prices_complete: bool
    approval_id: str | None
    closed_at: datetime | None
    locations: list[PeriodLocationOut]


class PeriodCloseRequestOut(BaseModel):
    period: PeriodOut
    approval_id: str
