"""OpenAPI ``responses=`` entries rendered in the standard error envelope.

Examples are built from the error classes themselves so the documented
``code`` values cannot drift from what the services raise.
"""

from typing import Any

from stockledger.core.errors import (
    ConflictError,
    InventoryError,
    NotFoundError,
    PermissionDeniedError,
    UnsupportedApprovalError,
    ValidationError,
)
from stockledger.schemas.common import ErrorOut


def _envelope(code: str, message: str, details: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "request_id": "8d8f2b00-6c79-4a45-8ff4-b0a5f2bc4bc2",
            "path": "/periods/{period_id}",
            "details": details,
        }
    }


def _from_error(error: InventoryError) -> dict[str, Any]:
    return _envelope(error.code, error.message, error.details)


_DEFAULT_EXAMPLES: dict[int, tuple[str, dict[str, Any]]] = {
    401: ("Missing or invalid bearer token", _envelope("unauthorized", "Could not validate credentials")),
    403: (
        "Role not allowed",
        _from_error(PermissionDeniedError("Role 'operator' cannot approve period close")),
    ),
    404: ("Entity not found", _from_error(NotFoundError("Period", "period-id"))),
    409: ("State conflict", _from_error(ConflictError("Request conflicts with the current state"))),
    422: (
        "Invalid request",
        _envelope(
            ValidationError.code,
            "Request validation failed",
            [{"loc": ["body", "lines", 0, "quantity"], "msg": "Input should be greater than 0"}],
        ),
    ),
    500: ("Unexpected server error", _envelope("internal_error", "Internal server error")),
    501: (
        "Approval handled elsewhere",
        _from_error(UnsupportedApprovalError("PRF approvals are processed by the purchasing service")),
    ),
}


def error_responses(*status_codes: int, conflicts: tuple[InventoryError, ...] = ()) -> dict[int, dict]:
    """Build ``responses=`` for a route.

    ``conflicts`` lists sample 409 errors the route can raise; each becomes a
    named example instead of the generic conflict.
    """
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        description, example = _DEFAULT_EXAMPLES.get(
            status_code, ("HTTP error", _envelope("http_error", "HTTP error"))
        )
        content: dict[str, Any] = {"example": example}
        if status_code == 409 and conflicts:
            description = "Conflict: " + ", ".join(error.code for error in conflicts)
            content = {"examples": {error.code: {"value": _from_error(error)} for error in conflicts}}
        responses[status_code] = {
            "model": ErrorOut,
            "description": description,
            "content": {"application/json": content},
        }
    return responses
