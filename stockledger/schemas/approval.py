from datetime import datetime

from pydantic import BaseModel, Field


class ApprovalRejectIn(BaseModel):
    comments: str | None = Field(default=None, max_length=1000)


class ApprovalOut(BaseModel):
    id: str
    entity_type: str
    entity_id: str
    status: str
    requested_by: str
    reviewed_by: str | None
    requested_at: datetime | None
    reviewed_at: datetime | None
    comments: str | None
