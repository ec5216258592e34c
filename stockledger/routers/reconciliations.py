from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.core.money import ZERO_MONEY, to_money
from stockledger.core.permissions import require_roles
from stockledger.core.security_current import Actor
from stockledger.schemas.reconciliation import (
    ConsolidatedReconciliationOut,
    ReconciliationFiguresOut,
    ReconciliationOut,
    ReconciliationUpdateIn,
)
from stockledger.services.reconciliation_service import (
    ReconciliationView,
    calculate_manday_cost,
    consolidated_reconciliation,
    get_reconciliation,
    save_reconciliation,
)

router = APIRouter(prefix="/reconciliations", tags=["reconciliations"])


def _reconciliation_out(view: ReconciliationView, total_mandays: int | None = None) -> ReconciliationOut:
    return ReconciliationOut(
        period_id=view.period_id,
        location_id=view.location_id,
        reconciliation_id=view.reconciliation_id,
        is_auto_calculated=view.is_auto_calculated,
        figures=ReconciliationFiguresOut(**asdict(view.figures)),
        calculated_closing=view.calculated_closing,
        variance=view.variance,
        total_adjustments=view.total_adjustments,
        consumption=view.consumption,
        total_mandays=total_mandays,
        manday_cost=calculate_manday_cost(view.consumption, total_mandays) if total_mandays else None,
        last_updated=view.last_updated,
    )


@router.get(
    "/{period_id}",
    response_model=ConsolidatedReconciliationOut,
    summary="Reconciliation for every location in a period",
    responses=error_responses(401, 403, 404, 500),
)
def consolidated_endpoint(
    period_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor")),
):
    views, totals = consolidated_reconciliation(db, period_id=period_id)
    return ConsolidatedReconciliationOut(
        period_id=period_id,
        locations=[_reconciliation_out(view) for view in views],
        totals=ReconciliationFiguresOut(**asdict(totals)),
        total_variance=to_money(sum((view.variance for view in views), ZERO_MONEY)),
        total_consumption=to_money(sum((view.consumption for view in views), ZERO_MONEY)),
    )


@router.get(
    "/{period_id}/{location_id}",
    response_model=ReconciliationOut,
    summary="Reconciliation for one location",
    responses=error_responses(401, 403, 404, 422, 500),
)
def get_reconciliation_endpoint(
    period_id: str,
    location_id: str,
    total_mandays: int | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor", "operator")),
):
    view = get_reconciliation(db, period_id=period_id, location_id=location_id)
    return _reconciliation_out(view, total_mandays)


@router.put(
    "/{period_id}/{location_id}",
    response_model=ReconciliationOut,
    summary="Save reconciliation adjustments",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def save_reconciliation_endpoint(
    period_id: str,
    location_id: str,
    payload: ReconciliationUpdateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor")),
):
    view = save_reconciliation(
        db,
        actor=actor,
        period_id=period_id,
        location_id=location_id,
        adjustments=payload.adjustments,
        back_charges=payload.back_charges,
        credits=payload.credits,
        condemnations=payload.condemnations,
    )
    return _reconciliation_out(view)
