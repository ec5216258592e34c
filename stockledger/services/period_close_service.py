"""Sealing a period.

Runs only from an approved PERIOD_CLOSE approval. The close is planned first
(every location's snapshot and closing value is computed before anything is
written), then applied as one batch inside the caller's transaction. A failure
anywhere leaves the period PENDING_CLOSE, every location READY and the approval
PENDING.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from stockledger.core.errors import InvalidPeriodStatusError, LocationsNotReadyError, NotFoundError
from stockledger.core.money import ZERO_MONEY, line_value, to_money
from stockledger.core.observability import log_event
from stockledger.models.approval import Approval
from stockledger.models.enums import ApprovalStatus, PeriodLocationStatus, PeriodStatus
from stockledger.models.period import Period, PeriodLocation
from stockledger.services.approval_service import record_decision
from stockledger.services.audit_service import log_audit_event
from stockledger.services.catalog_service import get_item, get_location
from stockledger.services.period_service import get_period, list_period_locations, not_ready_locations
from stockledger.services.reconciliation_service import (
    calculate_consumption,
    calculate_variance,
    figures_from_row,
    get_reconciliation_row,
)
from stockledger.services.stock_ledger_service import list_location_stock

logger = logging.getLogger("stockledger.period")


@dataclass(frozen=True)
class LocationClose:
    period_location: PeriodLocation
    closing_value: Decimal
    snapshot_data: str


def _decimal_str(value: Decimal) -> str:
    return format(value, "f")


def build_location_snapshot(db: Session, *, period: Period, location_id: str, taken_at: datetime) -> dict[str, Any]:
    location = get_location(db, location_id)
    items = []
    total = ZERO_MONEY
    for row in list_location_stock(db, location_id=location_id, positive_only=True):
        item = get_item(db, row.item_id)
        value = line_value(row.on_hand, row.wac)
        total += value
        items.append(
            {
                "item_id": item.id,
                "item_code": item.code,
                "item_name": item.name,
                "unit": item.unit,
                "quantity": _decimal_str(row.on_hand),
                "wac": _decimal_str(row.wac),
                "value": _decimal_str(value),
            }
        )

    reconciliation = None
    row = get_reconciliation_row(db, period_id=period.id, location_id=location_id)
    if row is not None:
        figures = figures_from_row(row)
        result = calculate_variance(figures)
        reconciliation = {
            **{field: _decimal_str(getattr(figures, field)) for field in figures.__dataclass_fields__},
            "calculated_closing": _decimal_str(result.calculated_closing),
            "variance": _decimal_str(result.variance),
            "consumption": _decimal_str(calculate_consumption(figures)),
        }

    return {
        "period_id": period.id,
        "period_name": period.name,
        "location_id": location.id,
        "location_code": location.code,
        "location_name": location.name,
        "location_type": location.type,
        "items": items,
        "item_count": len(items),
        "total_value": _decimal_str(to_money(total)),
        "reconciliation": reconciliation,
        "snapshot_timestamp": taken_at.isoformat(),
    }


def plan_period_close(db: Session, *, period: Period, taken_at: datetime) -> list[LocationClose]:
    if period.status != PeriodStatus.PENDING_CLOSE.value:
        raise InvalidPeriodStatusError(
            current=period.status,
            expected=PeriodStatus.PENDING_CLOSE.value,
            action="close period",
        )
    period_locations = list_period_locations(db, period.id, for_update=True)
    pending = not_ready_locations(db, period_locations)
    if pending:
        raise LocationsNotReadyError(pending)

    plan = []
    for period_location in period_locations:
        snapshot = build_location_snapshot(
            db,
            period=period,
            location_id=period_location.location_id,
            taken_at=taken_at,
        )
        plan.append(
            LocationClose(
                period_location=period_location,
                closing_value=to_money(snapshot["total_value"]),
                snapshot_data=json.dumps(snapshot),
            )
        )
    return plan


def apply_location_close(close: LocationClose, *, closed_at: datetime) -> None:
    period_location = close.period_location
    period_location.snapshot_data = close.snapshot_data
    period_location.closing_value = close.closing_value
    period_location.status = PeriodLocationStatus.CLOSED.value
    period_location.closed_at = closed_at


def execute_period_close(db: Session, *, approval: Approval, reviewer_id: str) -> Period:
    """Seal the period named by ``approval``. The caller commits or rolls back."""
    period = get_period(db, approval.entity_id, for_update=True)
    if period.approval_id and period.approval_id != approval.id:
        raise InvalidPeriodStatusError(
            current=period.status,
            expected=PeriodStatus.PENDING_CLOSE.value,
            action="close period with a superseded approval",
        )

    closed_at = datetime.now(timezone.utc)
    plan = plan_period_close(db, period=period, taken_at=closed_at)

    for close in plan:
        apply_location_close(close, closed_at=closed_at)
    period.status = PeriodStatus.CLOSED.value
    period.closed_at = closed_at
    record_decision(approval, status=ApprovalStatus.APPROVED, reviewer_id=reviewer_id, decided_at=closed_at)

    log_audit_event(
        db,
        actor_user_id=reviewer_id,
        action="period.close",
        target_type="period",
        target_id=period.id,
        metadata_json={
            "approval_id": approval.id,
            "locations": [
                {"location_id": close.period_location.location_id, "closing_value": str(close.closing_value)}
                for close in plan
            ],
        },
    )
    db.flush()
    log_event(
        logger,
        "period.closed",
        period_id=period.id,
        approval_id=approval.id,
        locations=len(plan),
        total_value=sum((close.closing_value for close in plan), ZERO_MONEY),
    )
    return period


def get_period_snapshot(db: Session, *, period_id: str, location_id: str) -> str:
    """The stored snapshot JSON, exactly as written at close."""
    get_period(db, period_id)
    period_location = db.get(PeriodLocation, (period_id, location_id))
    if not period_location:
        raise NotFoundError("PeriodLocation", f"{period_id}/{location_id}")
    if period_location.snapshot_data is None:
        raise NotFoundError("Snapshot", f"{period_id}/{location_id}")
    return period_location.snapshot_data
