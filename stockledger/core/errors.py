"""
Typed errors raised by the ledger and period-close services.

Every error carries a stable machine-readable ``code``, a human-readable
message and optional structured ``details``. The HTTP layer renders them in
the standard error envelope (see ``stockledger.core.observability``); the
service layer never builds HTTP responses itself.

Hierarchy::

    InventoryError
    ├── ValidationError            (422)
    ├── NotFoundError              (404)
    ├── PermissionDeniedError      (403)
    ├── UnsupportedApprovalError   (501)
    └── ConflictError              (409)
        ├── InsufficientStockError
        ├── OverlappingPeriodError
        ├── LocationsNotReadyError
        ├── AlreadyProcessedError
        ├── InvalidPeriodStatusError
        ├── InvalidStatusError
        ├── ApprovalAlreadyExistsError
        ├── PeriodAlreadyOpenError
        └── TransactionTimeoutError
"""

from decimal import Decimal
from typing import Any


class InventoryError(Exception):
    code: str = "inventory_error"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: list[dict[str, Any]] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class ValidationError(InventoryError):
    code = "validation_error"
    status_code = 422


class NotFoundError(InventoryError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: str | None = None):
        message = f"{entity} not found"
        super().__init__(
            message,
            details=[{"entity": entity, "id": entity_id}] if entity_id else None,
        )
        self.entity = entity
        self.entity_id = entity_id


class PermissionDeniedError(InventoryError):
    code = "forbidden"
    status_code = 403


class UnsupportedApprovalError(InventoryError):
    code = "approval_handler_unavailable"
    status_code = 501


class ConflictError(InventoryError):
    code = "conflict"
    status_code = 409


class InsufficientStockError(ConflictError):
    """One or more lines ask for more than the location holds."""

    code = "insufficient_stock"

    def __init__(self, shortages: list[dict[str, Any]], *, location_id: str | None = None):
        self.shortages = shortages
        self.location_id = location_id
        names = ", ".join(str(s.get("item_name") or s.get("item_id")) for s in shortages)
        super().__init__(
            f"Insufficient stock for {len(shortages)} item(s): {names}",
            details=[_jsonable(s) for s in shortages],
        )


class OverlappingPeriodError(ConflictError):
    code = "overlapping_period"

    def __init__(self, period_id: str, period_name: str):
        super().__init__(
            f"Period dates overlap with existing period '{period_name}'",
            details=[{"period_id": period_id, "period_name": period_name}],
        )


class LocationsNotReadyError(ConflictError):
    code = "locations_not_ready"

    def __init__(self, locations: list[dict[str, Any]]):
        self.locations = locations
        super().__init__(
            f"{len(locations)} location(s) are not ready for period close",
            details=locations,
        )


class AlreadyProcessedError(ConflictError):
    code = "already_processed"

    def __init__(self, entity: str, status: str):
        super().__init__(
            f"{entity} has already been processed (status: {status})",
            details=[{"entity": entity, "status": status}],
        )


class InvalidPeriodStatusError(ConflictError):
    code = "invalid_period_status"

    def __init__(self, *, current: str, expected: str | tuple[str, ...], action: str):
        expected_values = (expected,) if isinstance(expected, str) else expected
        super().__init__(
            f"Cannot {action}: period is {current}, expected {' or '.join(expected_values)}",
            details=[{"current_status": current, "expected_status": list(expected_values)}],
        )


class InvalidStatusError(ConflictError):
    code = "invalid_status"


class ApprovalAlreadyExistsError(ConflictError):
    code = "approval_pending"

    def __init__(self, entity_type: str, entity_id: str, approval_id: str):
        super().__init__(
            f"A pending {entity_type} approval already exists for this entity",
            details=[{"entity_type": entity_type, "entity_id": entity_id, "approval_id": approval_id}],
        )


class PeriodAlreadyOpenError(ConflictError):
    code = "period_already_open"

    def __init__(self, period_id: str, period_name: str):
        super().__init__(
            f"Another period is already open: {period_name}",
            details=[{"period_id": period_id, "period_name": period_name}],
        )


class TransactionTimeoutError(ConflictError):
    """Raised when the close transaction exceeds its lock wait or statement timeout. Retry."""

    code = "transaction_timeout"


def _jsonable(row: dict[str, Any]) -> dict[str, Any]:
    return {key: (str(value) if isinstance(value, Decimal) else value) for key, value in row.items()}
