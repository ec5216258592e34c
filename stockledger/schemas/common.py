from typing import Any

from pydantic import BaseModel, ConfigDict


class PaginationMeta(BaseModel):
    total: int
    limit: int
    offset: int
    count: int
    has_next: bool

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total": 42,
                "limit": 10,
                "offset": 0,
                "count": 10,
                "has_next": True,
            }
        }
    )


class ErrorDetailOut(BaseModel):
    code: str
    message: str
    request_id: str
    path: str
    details: list[dict[str, Any]] | None = None


class ErrorOut(BaseModel):
    error: ErrorDetailOut

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": {
                    "code": "insufficient_stock",
                    "message": "Insufficient stock for 1 item(s): Basmati Rice",
                    "request_id": "8d8f2b00-6c79-4a45-8ff4-b0a5f2bc4bc2",
                    "path": "/issues",
                    "details": [
                        {
                            "item_id": "nYhPq2s8aK3vVbTq6Z1cWd",
                            "item_code": "RICE-01",
                            "item_name": "Basmati Rice",
                            "requested": "25.0000",
                            "available": "10.0000",
                            "shortfall": "15.0000",
                        }
                    ],
                }
            }
        }
    )
