from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator


class TransferLineIn(BaseModel):
    item_id: str = Field(min_length=1, max_length=36)
    quantity: Decimal = Field(gt=0, max_digits=15, decimal_places=4)


class TransferCreateIn(BaseModel):
    from_location_id: str = Field(min_length=1, max_length=36)
    to_location_id: str = Field(min_length=1, max_length=36)
    request_date: date | None = None
    notes: str | None = Field(default=None, max_length=500)
    lines: list[TransferLineIn] = Field(min_length=1)

    @model_validator(mode="after")
    def validate_distinct_locations(self) -> "TransferCreateIn":
        if self.from_location_id == self.to_location_id:
            raise ValueError("Source and destination locations must be different")
        return self


class TransferRejectIn(BaseModel):
    comments: str | None = Field(default=None, max_length=1000)


class TransferLineOut(BaseModel):
    id: str
    item_id: str
    quantity: Decimal
    wac_at_transfer: Decimal
    line_value: Decimal


class TransferOut(BaseModel):
    id: str
    transfer_no: str
    from_location_id: str
    to_location_id: str
    status: str
    requested_by: str
    approved_by: str | None
    request_date: date
    approval_date: datetime | None
    transfer_date: date | None
    total_value: Decimal
    notes: str | None
    approval_id: str | None = None
    lines: list[TransferLineOut]
