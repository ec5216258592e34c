from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class StockPositionOut(BaseModel):
    location_id: str
    item_id: str
    item_code: str
    item_name: str
    unit: str
    on_hand: Decimal
    wac: Decimal
    value: Decimal
    updated_at: datetime | None = None


class LocationStockListOut(BaseModel):
    location_id: str
    items: list[StockPositionOut]
    total_value: Decimal
