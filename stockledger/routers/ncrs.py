from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.core.permissions import require_roles
from stockledger.core.security_current import Actor
from stockledger.models.enums import NCRStatus
from stockledger.models.ncr import NCR
from stockledger.schemas.common import PaginationMeta
from stockledger.schemas.ncr import NCRCreateIn, NCRListOut, NCROut, NCRSummaryOut, NCRUpdateIn
from stockledger.services.ncr_service import create_manual_ncr, get_ncr, ncr_period_summary, update_ncr
from stockledger.services.period_service import get_period

router = APIRouter(prefix="/ncrs", tags=["ncrs"])

_any_role = require_roles("admin", "supervisor", "operator")


def _ncr_out(ncr: NCR) -> NCROut:
    return NCROut(
        id=ncr.id,
        ncr_no=ncr.ncr_no,
        location_id=ncr.location_id,
        type=ncr.type,
        auto_generated=ncr.auto_generated,
        delivery_id=ncr.delivery_id,
        delivery_line_id=ncr.delivery_line_id,
        item_id=ncr.item_id,
        reason=ncr.reason,
        quantity=ncr.quantity,
        value=ncr.value,
        status=ncr.status,
        financial_impact=ncr.financial_impact,
        resolution_notes=ncr.resolution_notes,
        created_by=ncr.created_by,
        created_at=ncr.created_at,
        resolved_at=ncr.resolved_at,
    )


@router.post(
    "",
    response_model=NCROut,
    summary="Raise a manual NCR",
    responses=error_responses(401, 403, 404, 422, 500),
)
def create_ncr_endpoint(
    payload: NCRCreateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    ncr = create_manual_ncr(
        db,
        actor=actor,
        location_id=payload.location_id,
        reason=payload.reason,
        value=payload.value,
        quantity=payload.quantity,
        item_id=payload.item_id,
        delivery_id=payload.delivery_id,
    )
    return _ncr_out(ncr)


@router.get(
    "",
    response_model=NCRListOut,
    summary="List NCRs",
    responses=error_responses(401, 403, 422, 500),
)
def list_ncrs_endpoint(
    location_id: str | None = Query(default=None, max_length=36),
    status: NCRStatus | None = Query(default=None),
    delivery_id: str | None = Query(default=None, max_length=36),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    count_stmt = select(func.count(NCR.id))
    stmt = select(NCR)
    if location_id:
        count_stmt = count_stmt.where(NCR.location_id == location_id)
        stmt = stmt.where(NCR.location_id == location_id)
    if status:
        count_stmt = count_stmt.where(NCR.status == status.value)
        stmt = stmt.where(NCR.status == status.value)
    if delivery_id:
        count_stmt = count_stmt.where(NCR.delivery_id == delivery_id)
        stmt = stmt.where(NCR.delivery_id == delivery_id)

    total = int(db.execute(count_stmt).scalar_one())
    rows = db.execute(stmt.order_by(NCR.created_at.desc(), NCR.ncr_no.desc()).offset(offset).limit(limit)).scalars().all()
    items = [_ncr_out(row) for row in rows]
    count = len(items)
    return NCRListOut(
        items=items,
        pagination=PaginationMeta(
            total=total,
            limit=limit,
            offset=offset,
            count=count,
            has_next=(offset + count) < total,
        ),
    )


@router.get(
    "/summary",
    response_model=NCRSummaryOut,
    summary="Credited and lost NCR totals for a location in a period",
    responses=error_responses(401, 403, 404, 422, 500),
)
def ncr_summary_endpoint(
    period_id: str = Query(min_length=1, max_length=36),
    location_id: str = Query(min_length=1, max_length=36),
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    period = get_period(db, period_id)
    summary = ncr_period_summary(db, period=period, location_id=location_id)
    return NCRSummaryOut(
        period_id=period.id,
        location_id=location_id,
        credited_total=summary.credited_total,
        credited_count=summary.credited_count,
        losses_total=summary.losses_total,
        losses_count=summary.losses_count,
        pending_total=summary.pending_total,
        pending_count=summary.pending_count,
        open_total=summary.open_total,
        open_count=summary.open_count,
    )


@router.get(
    "/{ncr_id}",
    response_model=NCROut,
    summary="Get NCR",
    responses=error_responses(401, 403, 404, 500),
)
def get_ncr_endpoint(
    ncr_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    return _ncr_out(get_ncr(db, ncr_id))


@router.patch(
    "/{ncr_id}",
    response_model=NCROut,
    summary="Update NCR status or outcome",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def update_ncr_endpoint(
    ncr_id: str,
    payload: NCRUpdateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor")),
):
    ncr = update_ncr(
        db,
        actor=actor,
        ncr_id=ncr_id,
        status=payload.status,
        financial_impact=payload.financial_impact,
        resolution_notes=payload.resolution_notes,
    )
    return _ncr_out(ncr)
