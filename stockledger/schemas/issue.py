from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from stockledger.models.enums import CostCentre


class IssueLineIn(BaseModel):
    item_id: str = Field(min_length=1, max_length=36)
    quantity: Decimal = Field(gt=0, max_digits=15, decimal_places=4)


class IssueCreateIn(BaseModel):
    location_id: str = Field(min_length=1, max_length=36)
    issue_date: date
    cost_centre: CostCentre = CostCentre.FOOD
    notes: str | None = Field(default=None, max_length=500)
    lines: list[IssueLineIn] = Field(min_length=1)


class IssueLineOut(BaseModel):
    id: str
    item_id: str
    quantity: Decimal
    wac_at_issue: Decimal
    line_value: Decimal


class IssueOut(BaseModel):
    id: str
    issue_no: str
    period_id: str
    location_id: str
    issue_date: date
    cost_centre: str
    total_value: Decimal
    notes: str | None
    posted_by: str
    posted_at: datetime
    lines: list[IssueLineOut]
