from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator


class DeliveryLineIn(BaseModel):
    item_id: str = Field(min_length=1, max_length=36)
    quantity: Decimal = Field(gt=0, max_digits=15, decimal_places=4)
    unit_price: Decimal = Field(ge=0, max_digits=15, decimal_places=4)


class DeliveryCreateIn(BaseModel):
    location_id: str = Field(min_length=1, max_length=36)
    delivery_date: date
    supplier_id: str | None = Field(default=None, max_length=36)
    invoice_no: str | None = Field(default=None, max_length=100)
    delivery_note: str | None = Field(default=None, max_length=500)
    lines: list[DeliveryLineIn] = Field(min_length=1)
    post: bool = False

    @field_validator("invoice_no", "delivery_note")
    @classmethod
    def normalize_optional_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None


class DeliveryUpdateIn(BaseModel):
    delivery_date: date | None = None
    supplier_id: str | None = Field(default=None, max_length=36)
    invoice_no: str | None = Field(default=None, max_length=100)
    delivery_note: str | None = Field(default=None, max_length=500)
    lines: list[DeliveryLineIn] | None = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def validate_any_field_present(self) -> "DeliveryUpdateIn":
        if all(
            value is None
            for value in (self.delivery_date, self.supplier_id, self.invoice_no, self.delivery_note, self.lines)
        ):
            raise ValueError("At least one field must be provided")
        return self


class DeliveryLineOut(BaseModel):
    id: str
    item_id: str
    quantity: Decimal
    unit_price: Decimal
    period_price: Decimal | None
    price_variance: Decimal
    line_value: Decimal
    ncr_id: str | None


class DeliveryOut(BaseModel):
    id: str
    delivery_no: str | None
    period_id: str | None
    location_id: str
    supplier_id: str | None
    invoice_no: str | None
    delivery_note: str | None
    delivery_date: date
    status: str
    total_amount: Decimal
    has_variance: bool
    created_by: str
    posted_by: str | None
    posted_at: datetime | None
    lines: list[DeliveryLineOut]
    ncr_ids: list[str] = Field(default_factory=list)
