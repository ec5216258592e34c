"""Non-conformance records: creation, status lifecycle and per-period totals."""

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from stockledger.core.errors import InvalidStatusError, NotFoundError, ValidationError
from stockledger.core.id_utils import generate_shortuuid
from stockledger.core.money import ZERO_MONEY, to_decimal, to_money, to_qty
from stockledger.core.observability import log_event
from stockledger.core.security_current import Actor
from stockledger.db.session import unit_of_work
from stockledger.models.delivery import Delivery, DeliveryLine
from stockledger.models.enums import FinancialImpact, NCRStatus, NCRType
from stockledger.models.ncr import NCR
from stockledger.models.period import Period
from stockledger.services.audit_service import log_audit_event
from stockledger.services.catalog_service import ItemRef, get_active_location, get_location
from stockledger.services.document_numbering import next_ncr_number
from stockledger.services.notification_service import notify_ncr_created
from stockledger.services.price_variance_service import PriceVariance, describe_variance

logger = logging.getLogger("stockledger.ncr")

_TRANSITIONS: dict[str, set[str]] = {
    NCRStatus.OPEN.value: {NCRStatus.SENT.value, NCRStatus.RESOLVED.value},
    NCRStatus.SENT.value: {NCRStatus.CREDITED.value, NCRStatus.REJECTED.value, NCRStatus.RESOLVED.value},
    NCRStatus.CREDITED.value: {NCRStatus.RESOLVED.value},
    NCRStatus.REJECTED.value: {NCRStatus.RESOLVED.value},
    NCRStatus.RESOLVED.value: set(),
}

_FINAL_STATUSES = {NCRStatus.CREDITED.value, NCRStatus.REJECTED.value, NCRStatus.RESOLVED.value}

_STATUS_IMPACT = {
    NCRStatus.CREDITED.value: FinancialImpact.CREDIT.value,
    NCRStatus.REJECTED.value: FinancialImpact.LOSS.value,
}


@dataclass(frozen=True)
class NCRSummary:
    credited_total: Decimal
    credited_count: int
    losses_total: Decimal
    losses_count: int
    pending_total: Decimal
    pending_count: int
    open_total: Decimal
    open_count: int


def get_ncr(db: Session, ncr_id: str) -> NCR:
    ncr = db.get(NCR, ncr_id)
    if not ncr:
        raise NotFoundError("NCR", ncr_id)
    return ncr


def add_price_variance_ncr(
    db: Session,
    *,
    delivery: Delivery,
    line: DeliveryLine,
    item: ItemRef,
    variance: PriceVariance,
    created_by: str,
) -> NCR:
    ncr = NCR(
        id=generate_shortuuid(),
        ncr_no=next_ncr_number(db, delivery.delivery_date),
        location_id=delivery.location_id,
        type=NCRType.PRICE_VARIANCE.value,
        auto_generated=True,
        delivery_id=delivery.id,
        delivery_line_id=line.id,
        item_id=item.id,
        reason=describe_variance(variance, item_code=item.code, item_name=item.name),
        quantity=to_qty(line.quantity),
        value=to_money(abs(variance.variance_amount)),
        status=NCRStatus.OPEN.value,
        financial_impact=FinancialImpact.NONE.value,
        created_by=created_by,
        created_at=datetime.now(timezone.utc),
    )
    db.add(ncr)
    db.flush()
    line.ncr_id = ncr.id
    return ncr


def create_manual_ncr(
    db: Session,
    *,
    actor: Actor,
    location_id: str,
    reason: str,
    value: Decimal,
    quantity: Decimal | None = None,
    item_id: str | None = None,
    delivery_id: str | None = None,
) -> NCR:
    with unit_of_work(db):
        location = get_active_location(db, location_id)
        if to_decimal(value) < 0:
            raise ValidationError("NCR value cannot be negative")
        if delivery_id:
            delivery = db.get(Delivery, delivery_id)
            if not delivery:
                raise NotFoundError("Delivery", delivery_id)
            if delivery.location_id != location_id:
                raise ValidationError("Delivery belongs to a different location", code="delivery_location_mismatch")

        ncr = NCR(
            id=generate_shortuuid(),
            ncr_no=next_ncr_number(db),
            location_id=location_id,
            type=NCRType.MANUAL.value,
            auto_generated=False,
            delivery_id=delivery_id,
            item_id=item_id,
            reason=reason.strip(),
            quantity=to_qty(quantity) if quantity is not None else None,
            value=to_money(value),
            status=NCRStatus.OPEN.value,
            financial_impact=FinancialImpact.NONE.value,
            created_by=actor.user_id,
            created_at=datetime.now(timezone.utc),
        )
        db.add(ncr)
        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="ncr.create",
            target_type="ncr",
            target_id=ncr.id,
            metadata_json={"ncr_no": ncr.ncr_no, "value": str(ncr.value)},
        )
    notify_ncr_created(
        ncr_no=ncr.ncr_no,
        location_name=location.name,
        reason=ncr.reason,
        value=ncr.value,
        auto_generated=False,
    )
    return ncr


def update_ncr(
    db: Session,
    *,
    actor: Actor,
    ncr_id: str,
    status: NCRStatus | None = None,
    financial_impact: FinancialImpact | None = None,
    resolution_notes: str | None = None,
) -> NCR:
    with unit_of_work(db):
        ncr = get_ncr(db, ncr_id)
        previous = ncr.status

        if status is not None and status.value != ncr.status:
            if status.value not in _TRANSITIONS.get(ncr.status, set()):
                raise InvalidStatusError(
                    f"NCR cannot move from {ncr.status} to {status.value}",
                    code="invalid_ncr_transition",
                    details=[{"current_status": ncr.status, "requested_status": status.value}],
                )
            ncr.status = status.value
            if status.value in _FINAL_STATUSES and ncr.resolved_at is None:
                ncr.resolved_at = datetime.now(timezone.utc)

        if financial_impact is not None:
            ncr.financial_impact = financial_impact.value
        elif ncr.status != previous and ncr.status in _STATUS_IMPACT:
            # RESOLVED keeps the outcome set here.
            ncr.financial_impact = _STATUS_IMPACT[ncr.status]

        if resolution_notes is not None:
            ncr.resolution_notes = resolution_notes.strip() or None

        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="ncr.update",
            target_type="ncr",
            target_id=ncr.id,
            metadata_json={
                "from_status": previous,
                "to_status": ncr.status,
                "financial_impact": ncr.financial_impact,
            },
        )
    log_event(logger, "ncr.updated", ncr_id=ncr.id, from_status=previous, to_status=ncr.status)
    return ncr


def is_credited(ncr: NCR) -> bool:
    return ncr.status == NCRStatus.CREDITED.value or (
        ncr.status == NCRStatus.RESOLVED.value and ncr.financial_impact == FinancialImpact.CREDIT.value
    )


def is_loss(ncr: NCR) -> bool:
    return ncr.status == NCRStatus.REJECTED.value or (
        ncr.status == NCRStatus.RESOLVED.value and ncr.financial_impact == FinancialImpact.LOSS.value
    )


def _period_bounds(period: Period) -> tuple[datetime, datetime]:
    start = datetime.combine(period.start_date, time.min, tzinfo=timezone.utc)
    end = datetime.combine(period.end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return start, end


def list_period_ncrs(db: Session, *, period: Period, location_id: str) -> list[NCR]:
    """NCRs raised against the period's deliveries, plus free-standing NCRs dated inside it."""
    start, end = _period_bounds(period)
    stmt = (
        select(NCR)
        .outerjoin(Delivery, Delivery.id == NCR.delivery_id)
        .where(
            NCR.location_id == location_id,
            or_(
                Delivery.period_id == period.id,
                and_(NCR.delivery_id.is_(None), NCR.created_at >= start, NCR.created_at < end),
            ),
        )
        .order_by(NCR.created_at.asc())
    )
    return db.execute(stmt).scalars().all()


def ncr_period_summary(db: Session, *, period: Period, location_id: str) -> NCRSummary:
    get_location(db, location_id)
    credited = losses = pending = opened = ZERO_MONEY
    credited_count = losses_count = pending_count = open_count = 0
    for ncr in list_period_ncrs(db, period=period, location_id=location_id):
        value = to_money(ncr.value)
        if is_credited(ncr):
            credited += value
            credited_count += 1
        elif is_loss(ncr):
            losses += value
            losses_count += 1
        elif ncr.status == NCRStatus.SENT.value:
            pending += value
            pending_count += 1
        elif ncr.status == NCRStatus.OPEN.value:
            opened += value
            open_count += 1
    return NCRSummary(
        credited_total=to_money(credited),
        credited_count=credited_count,
        losses_total=to_money(losses),
        losses_count=losses_count,
        pending_total=to_money(pending),
        pending_count=pending_count,
        open_total=to_money(opened),
        open_count=open_count,
    )
