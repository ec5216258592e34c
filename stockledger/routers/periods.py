from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.core.errors import InvalidPeriodStatusError, LocationsNotReadyError, NotFoundError
from stockledger.core.permissions import require_roles
from stockledger.core.security_current import Actor
from stockledger.models.period import Period, PeriodLocation
from stockledger.schemas.period import (
    PeriodCloseRequestOut,
    PeriodCreateIn,
    PeriodLocationOut,
    PeriodOut,
    PeriodPricesIn,
    PeriodRollForwardIn,
)
from stockledger.services.period_close_service import get_period_snapshot
from stockledger.services.period_service import (
    create_period,
    get_current_period,
    get_period,
    list_period_locations,
    mark_location_ready,
    mark_location_unready,
    open_period,
    request_period_close,
    roll_forward_period,
    set_period_prices,
)

router = APIRouter(prefix="/periods", tags=["periods"])

_any_role = require_roles("admin", "supervisor", "operator")


def _period_location_out(period_location: PeriodLocation) -> PeriodLocationOut:
    return PeriodLocationOut(
        location_id=period_location.location_id,
        status=period_location.status,
        opening_value=period_location.opening_value,
        closing_value=period_location.closing_value,
        ready_at=period_location.ready_at,
        closed_at=period_location.closed_at,
        has_snapshot=period_location.snapshot_data is not None,
    )


def _period_out(db: Session, period: Period) -> PeriodOut:
    return PeriodOut(
        id=period.id,
        name=period.name,
        start_date=period.start_date,
        end_date=period.end_date,
        status=period.status,
        prices_complete=period.prices_complete,
        approval_id=period.approval_id,
        closed_at=period.closed_at,
        locations=[_period_location_out(row) for row in list_period_locations(db, period.id)],
    )


@router.post(
    "",
    response_model=PeriodOut,
    summary="Create a draft period",
    responses=error_responses(401, 403, 409, 422, 500),
)
def create_period_endpoint(
    payload: PeriodCreateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin")),
):
    period = create_period(
        db,
        actor=actor,
        name=payload.name,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )
    return _period_out(db, period)


@router.get(
    "/current",
    response_model=PeriodOut,
    summary="Get the open period",
    responses=error_responses(401, 403, 404, 500),
)
def current_period_endpoint(
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    period = get_current_period(db)
    if not period:
        raise NotFoundError("Open period")
    return _period_out(db, period)


@router.get(
    "/{period_id}",
    response_model=PeriodOut,
    summary="Get period with location statuses",
    responses=error_responses(401, 403, 404, 500),
)
def get_period_endpoint(
    period_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    return _period_out(db, get_period(db, period_id))


@router.put(
    "/{period_id}/prices",
    response_model=PeriodOut,
    summary="Set locked item prices for a draft period",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def set_prices_endpoint(
    period_id: str,
    payload: PeriodPricesIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin")),
):
    period = set_period_prices(
        db,
        actor=actor,
        period_id=period_id,
        prices=[(row.item_id, row.price) for row in payload.prices],
    )
    return _period_out(db, period)


@router.post(
    "/{period_id}/open",
    response_model=PeriodOut,
    summary="Open a draft period",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def open_period_endpoint(
    period_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin")),
):
    return _period_out(db, open_period(db, actor=actor, period_id=period_id))


@router.post(
    "/{period_id}/roll-forward",
    response_model=PeriodOut,
    summary="Create the next period from a closed one",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def roll_forward_endpoint(
    period_id: str,
    payload: PeriodRollForwardIn | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin")),
):
    payload = payload or PeriodRollForwardIn()
    period = roll_forward_period(
        db,
        actor=actor,
        period_id=period_id,
        name=payload.name,
        end_date=payload.end_date,
        copy_prices=payload.copy_prices,
    )
    return _period_out(db, period)


@router.patch(
    "/{period_id}/locations/{location_id}/ready",
    response_model=PeriodLocationOut,
    summary="Confirm a location's reconciliation and mark it ready",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def mark_ready_endpoint(
    period_id: str,
    location_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor")),
):
    period_location = mark_location_ready(db, actor=actor, period_id=period_id, location_id=location_id)
    return _period_location_out(period_location)


@router.patch(
    "/{period_id}/locations/{location_id}/unready",
    response_model=PeriodLocationOut,
    summary="Return a ready location to open",
    responses=error_responses(401, 403, 404, 409, 500),
)
def mark_unready_endpoint(
    period_id: str,
    location_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor")),
):
    period_location = mark_location_unready(db, actor=actor, period_id=period_id, location_id=location_id)
    return _period_location_out(period_location)


_CLOSE_CONFLICTS = (
    LocationsNotReadyError(
        [{"location_id": "location-id", "location_code": "KITCHEN", "location_name": "Kitchen", "status": "OPEN"}]
    ),
    InvalidPeriodStatusError(current="PENDING_CLOSE", expected="OPEN", action="request period close"),
)


@router.post(
    "/{period_id}/close",
    response_model=PeriodCloseRequestOut,
    summary="Request period close approval",
    responses=error_responses(401, 403, 404, 409, 422, 500, conflicts=_CLOSE_CONFLICTS),
)
def request_close_endpoint(
    period_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin")),
):
    period = request_period_close(db, actor=actor, period_id=period_id)
    return PeriodCloseRequestOut(period=_period_out(db, period), approval_id=period.approval_id)


@router.get(
    "/{period_id}/locations/{location_id}/snapshot",
    summary="Get the closing snapshot exactly as stored",
    response_class=Response,
    responses={
        200: {"content": {"application/json": {}}, "description": "Stored snapshot document"},
        **error_responses(401, 403, 404, 500),
    },
)
def snapshot_endpoint(
    period_id: str,
    location_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    return Response(
        content=get_period_snapshot(db, period_id=period_id, location_id=location_id),
        media_type="application/json",
    )
