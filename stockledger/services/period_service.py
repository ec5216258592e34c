"""Period lifecycle and per-location readiness.

Period: DRAFT -> OPEN -> PENDING_CLOSE -> CLOSED, with PENDING_CLOSE -> OPEN
when the close approval is rejected. PeriodLocation: OPEN -> READY -> CLOSED,
with READY -> OPEN when a location is marked unready or its reconciliation
figures change. Only the period close executor moves anything to CLOSED.
"""

import calendar
import logging
from collections.abc import Iterable
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.core.errors import (
    ConflictError,
    InvalidPeriodStatusError,
    InvalidStatusError,
    LocationsNotReadyError,
    NotFoundError,
    OverlappingPeriodError,
    PeriodAlreadyOpenError,
    ValidationError,
)
from stockledger.core.id_utils import generate_shortuuid
from stockledger.core.money import to_decimal, to_money
from stockledger.core.observability import log_event
from stockledger.core.security_current import Actor
from stockledger.db.session import unit_of_work
from stockledger.models.catalog import ItemPrice, Location
from stockledger.models.enums import ApprovalEntityType, PeriodLocationStatus, PeriodStatus
from stockledger.models.period import Period, PeriodLocation
from stockledger.models.reconciliation import Reconciliation
from stockledger.services.approval_service import request_approval
from stockledger.services.audit_service import log_audit_event
from stockledger.services.catalog_service import get_location, list_active_item_ids, list_active_locations

logger = logging.getLogger("stockledger.period")


def get_period(db: Session, period_id: str, *, for_update: bool = False) -> Period:
    stmt = select(Period).where(Period.id == period_id)
    if for_update:
        stmt = stmt.with_for_update()
    period = db.execute(stmt).scalar_one_or_none()
    if not period:
        raise NotFoundError("Period", period_id)
    return period


def get_current_period(db: Session) -> Period | None:
    return db.execute(
        select(Period).where(Period.status == PeriodStatus.OPEN.value).order_by(Period.start_date.desc()).limit(1)
    ).scalar_one_or_none()


def get_active_period(db: Session) -> Period | None:
    # A PENDING_CLOSE period returns to OPEN when its close is rejected.
    return db.execute(
        select(Period)
        .where(Period.status.in_([PeriodStatus.OPEN.value, PeriodStatus.PENDING_CLOSE.value]))
        .order_by(Period.start_date.desc())
        .limit(1)
    ).scalar_one_or_none()


def list_period_locations(db: Session, period_id: str, *, for_update: bool = False) -> list[PeriodLocation]:
    stmt = select(PeriodLocation).where(PeriodLocation.period_id == period_id)
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt.order_by(PeriodLocation.location_id.asc())).scalars().all()


def get_period_location(db: Session, *, period_id: str, location_id: str) -> PeriodLocation:
    period_location = db.get(PeriodLocation, (period_id, location_id))
    if not period_location:
        raise NotFoundError("PeriodLocation", f"{period_id}/{location_id}")
    return period_location


def get_open_period_for_location(db: Session, location_id: str) -> tuple[Period, PeriodLocation]:
    """The OPEN period, provided the location can still take postings in it."""
    period = get_current_period(db)
    if not period:
        raise ConflictError("No open period found", code="no_open_period")
    period_location = db.get(PeriodLocation, (period.id, location_id))
    if not period_location or period_location.status != PeriodLocationStatus.OPEN.value:
        raise ConflictError(
            "Period is not open for this location",
            code="period_location_not_open",
            details=[
                {
                    "period_id": period.id,
                    "location_id": location_id,
                    "status": period_location.status if period_location else None,
                }
            ],
        )
    return period, period_location


def find_overlapping_period(
    db: Session,
    *,
    start_date: date,
    end_date: date,
    exclude_period_id: str | None = None,
) -> Period | None:
    stmt = select(Period).where(Period.start_date <= end_date, Period.end_date >= start_date)
    if exclude_period_id:
        stmt = stmt.where(Period.id != exclude_period_id)
    return db.execute(stmt.limit(1)).scalar_one_or_none()


def _prior_closed_period(db: Session, start_date: date) -> Period | None:
    return db.execute(
        select(Period)
        .where(Period.status == PeriodStatus.CLOSED.value, Period.end_date < start_date)
        .order_by(Period.end_date.desc())
        .limit(1)
    ).scalar_one_or_none()


def _opening_values(db: Session, prior: Period | None) -> dict[str, Decimal]:
    if prior is None:
        return {}
    rows = db.execute(
        select(PeriodLocation.location_id, PeriodLocation.closing_value).where(PeriodLocation.period_id == prior.id)
    ).all()
    return {location_id: to_money(closing_value) for location_id, closing_value in rows if closing_value is not None}


def _add_period(db: Session, *, actor: Actor, name: str, start_date: date, end_date: date) -> Period:
    if not name.strip():
        raise ValidationError("Period name is required")
    if end_date <= start_date:
        raise ValidationError(
            "End date must be after start date",
            details=[{"start_date": start_date.isoformat(), "end_date": end_date.isoformat()}],
        )
    overlapping = find_overlapping_period(db, start_date=start_date, end_date=end_date)
    if overlapping:
        raise OverlappingPeriodError(overlapping.id, overlapping.name)

    period = Period(
        id=generate_shortuuid(),
        name=name.strip(),
        start_date=start_date,
        end_date=end_date,
        status=PeriodStatus.DRAFT.value,
        prices_complete=False,
        created_by=actor.user_id,
    )
    db.add(period)

    opening = _opening_values(db, _prior_closed_period(db, start_date))
    for location in list_active_locations(db):
        db.add(
            PeriodLocation(
                period_id=period.id,
                location_id=location.id,
                status=PeriodLocationStatus.OPEN.value,
                opening_value=opening.get(location.id, to_money(0)),
            )
        )
    db.flush()
    return period


def create_period(db: Session, *, actor: Actor, name: str, start_date: date, end_date: date) -> Period:
    with unit_of_work(db):
        period = _add_period(db, actor=actor, name=name, start_date=start_date, end_date=end_date)
        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="period.create",
            target_type="period",
            target_id=period.id,
            metadata_json={
                "name": period.name,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
            },
        )
    log_event(logger, "period.created", period_id=period.id, name=period.name)
    return period


def _refresh_prices_complete(db: Session, period: Period) -> bool:
    db.flush()
    priced = set(db.execute(select(ItemPrice.item_id).where(ItemPrice.period_id == period.id)).scalars().all())
    active = list_active_item_ids(db)
    period.prices_complete = bool(active) and active.issubset(priced)
    return period.prices_complete


def _upsert_prices(db: Session, *, period: Period, prices: Iterable[tuple[str, Decimal]], set_by: str) -> int:
    existing = {
        price.item_id: price
        for price in db.execute(select(ItemPrice).where(ItemPrice.period_id == period.id)).scalars().all()
    }
    count = 0
    for item_id, price in prices:
        price = to_decimal(price)
        if price < 0:
            raise ValidationError("Price cannot be negative", details=[{"item_id": item_id}])
        row = existing.get(item_id)
        if row:
            row.price = price
            row.set_by = set_by
        else:
            row = ItemPrice(id=generate_shortuuid(), item_id=item_id, period_id=period.id, price=price, set_by=set_by)
            db.add(row)
            existing[item_id] = row
        count += 1
    return count


def set_period_prices(
    db: Session,
    *,
    actor: Actor,
    period_id: str,
    prices: list[tuple[str, Decimal]],
) -> Period:
    with unit_of_work(db):
        period = get_period(db, period_id, for_update=True)
        if period.status != PeriodStatus.DRAFT.value:
            raise InvalidPeriodStatusError(current=period.status, expected=PeriodStatus.DRAFT.value, action="set prices")
        count = _upsert_prices(db, period=period, prices=prices, set_by=actor.user_id)
        complete = _refresh_prices_complete(db, period)
        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="period.prices.set",
            target_type="period",
            target_id=period.id,
            metadata_json={"count": count, "prices_complete": complete},
        )
    return period


def roll_forward_period(
    db: Session,
    *,
    actor: Actor,
    period_id: str,
    name: str | None = None,
    end_date: date | None = None,
    copy_prices: bool = True,
) -> Period:
    """Create the next DRAFT period after a CLOSED one, optionally carrying its prices."""
    with unit_of_work(db):
        source = get_period(db, period_id)
        if source.status != PeriodStatus.CLOSED.value:
            raise InvalidPeriodStatusError(
                current=source.status,
                expected=PeriodStatus.CLOSED.value,
                action="roll forward",
            )

        start_date = source.end_date + timedelta(days=1)
        if end_date is None:
            end_date = start_date.replace(day=calendar.monthrange(start_date.year, start_date.month)[1])
        period = _add_period(
            db,
            actor=actor,
            name=name or start_date.strftime("%B %Y"),
            start_date=start_date,
            end_date=end_date,
        )

        copied = 0
        if copy_prices:
            source_prices = db.execute(
                select(ItemPrice.item_id, ItemPrice.price).where(ItemPrice.period_id == source.id)
            ).all()
            copied = _upsert_prices(db, period=period, prices=source_prices, set_by=actor.user_id)
        _refresh_prices_complete(db, period)

        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="period.roll_forward",
            target_type="period",
            target_id=period.id,
            metadata_json={"source_period_id": source.id, "prices_copied": copied},
        )
    log_event(logger, "period.rolled_forward", source_period_id=source.id, period_id=period.id)
    return period


def open_period(db: Session, *, actor: Actor, period_id: str) -> Period:
    with unit_of_work(db):
        period = get_period(db, period_id, for_update=True)
        if period.status != PeriodStatus.DRAFT.value:
            raise InvalidPeriodStatusError(current=period.status, expected=PeriodStatus.DRAFT.value, action="open period")
        if not period.prices_complete:
            raise ValidationError(
                "Every item must have a price for this period before it can be opened",
                code="prices_incomplete",
            )
        if not list_period_locations(db, period.id):
            raise ValidationError("Period has no locations", code="period_has_no_locations")

        current = get_active_period(db)
        if current and current.id != period.id:
            raise PeriodAlreadyOpenError(current.id, current.name)

        period.status = PeriodStatus.OPEN.value
        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="period.open",
            target_type="period",
            target_id=period.id,
        )
    log_event(logger, "period.opened", period_id=period.id)
    return period


def mark_location_ready(db: Session, *, actor: Actor, period_id: str, location_id: str) -> PeriodLocation:
    with unit_of_work(db):
        period = get_period(db, period_id)
        get_location(db, location_id)
        if period.status != PeriodStatus.OPEN.value:
            raise InvalidPeriodStatusError(
                current=period.status,
                expected=PeriodStatus.OPEN.value,
                action="mark location ready",
            )

        reconciliation = db.execute(
            select(Reconciliation.id).where(
                Reconciliation.period_id == period_id,
                Reconciliation.location_id == location_id,
            )
        ).scalar_one_or_none()
        if not reconciliation:
            raise ValidationError(
                "Reconciliation must be completed before marking location as ready",
                code="reconciliation_not_completed",
            )

        period_location = get_period_location(db, period_id=period_id, location_id=location_id)
        if period_location.status == PeriodLocationStatus.CLOSED.value:
            raise InvalidStatusError("Location is already closed for this period", code="location_already_closed")

        period_location.status = PeriodLocationStatus.READY.value
        period_location.ready_at = datetime.now(timezone.utc)
        period_location.ready_by = actor.user_id
        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="period_location.ready",
            target_type="period_location",
            target_id=location_id,
            metadata_json={"period_id": period_id},
        )
    return period_location


def revert_location_to_open(period_location: PeriodLocation) -> bool:
    if period_location.status != PeriodLocationStatus.READY.value:
        return False
    period_location.status = PeriodLocationStatus.OPEN.value
    period_location.ready_at = None
    period_location.ready_by = None
    return True


def mark_location_unready(db: Session, *, actor: Actor, period_id: str, location_id: str) -> PeriodLocation:
    with unit_of_work(db):
        period = get_period(db, period_id)
        if period.status != PeriodStatus.OPEN.value:
            raise InvalidPeriodStatusError(
                current=period.status,
                expected=PeriodStatus.OPEN.value,
                action="mark location unready",
            )
        period_location = get_period_location(db, period_id=period_id, location_id=location_id)
        if not revert_location_to_open(period_location):
            raise InvalidStatusError(
                f"Location is {period_location.status}, expected READY",
                code="location_not_ready",
            )
        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="period_location.unready",
            target_type="period_location",
            target_id=location_id,
            metadata_json={"period_id": period_id},
        )
    return period_location


def not_ready_locations(db: Session, period_locations: list[PeriodLocation]) -> list[dict]:
    pending = []
    for period_location in period_locations:
        if period_location.status == PeriodLocationStatus.READY.value:
            continue
        location = db.get(Location, period_location.location_id)
        pending.append(
            {
                "location_id": period_location.location_id,
                "location_code": location.code if location else None,
                "location_name": location.name if location else None,
                "status": period_location.status,
            }
        )
    return pending


def request_period_close(db: Session, *, actor: Actor, period_id: str) -> Period:
    """OPEN -> PENDING_CLOSE, raising the PERIOD_CLOSE approval in the same transaction."""
    with unit_of_work(db):
        period = get_period(db, period_id, for_update=True)
        if period.status != PeriodStatus.OPEN.value:
            raise InvalidPeriodStatusError(
                current=period.status,
                expected=PeriodStatus.OPEN.value,
                action="request period close",
            )

        period_locations = list_period_locations(db, period.id, for_update=True)
        if not period_locations:
            raise ValidationError("Period has no locations", code="period_has_no_locations")
        pending = not_ready_locations(db, period_locations)
        if pending:
            raise LocationsNotReadyError(pending)

        approval = request_approval(
            db,
            entity_type=ApprovalEntityType.PERIOD_CLOSE,
            entity_id=period.id,
            requested_by=actor.user_id,
        )
        period.status = PeriodStatus.PENDING_CLOSE.value
        period.approval_id = approval.id
        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="period.close.request",
            target_type="period",
            target_id=period.id,
            metadata_json={"approval_id": approval.id, "locations": len(period_locations)},
        )
    log_event(logger, "period.close_requested", period_id=period.id, approval_id=approval.id)
    return period


def revert_close_request(db: Session, period: Period) -> Period:
    """PENDING_CLOSE -> OPEN after a rejected close. Locations stay READY."""
    if period.status != PeriodStatus.PENDING_CLOSE.value:
        raise InvalidPeriodStatusError(
            current=period.status,
            expected=PeriodStatus.PENDING_CLOSE.value,
            action="reject period close",
        )
    period.status = PeriodStatus.OPEN.value
    period.approval_id = None
    return period
