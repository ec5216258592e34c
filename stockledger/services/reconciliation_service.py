"""Per-location, per-period reconciliation figures.

Derived figures (opening stock, receipts, transfers, issues and closing stock)
come from postings and the live ledger. Adjustments, back-charges, credits and
condemnations are entered by a supervisor. NCR credits and losses are shown
alongside but do not enter the variance formula.
"""

import logging
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockledger.core.errors import InvalidPeriodStatusError, NotFoundError, ValidationError
from stockledger.core.id_utils import generate_shortuuid
from stockledger.core.money import ZERO_MONEY, to_decimal, to_money
from stockledger.core.observability import log_event
from stockledger.core.security_current import Actor
from stockledger.db.session import unit_of_work
from stockledger.models.delivery import Delivery, DeliveryLine
from stockledger.models.enums import DeliveryStatus, PeriodStatus, TransferStatus
from stockledger.models.issue import Issue, IssueLine
from stockledger.models.period import Period, PeriodLocation
from stockledger.models.reconciliation import Reconciliation
from stockledger.models.transfer import Transfer, TransferLine
from stockledger.services.audit_service import log_audit_event
from stockledger.services.catalog_service import get_location
from stockledger.services.ncr_service import ncr_period_summary
from stockledger.services.period_service import get_period, revert_location_to_open
from stockledger.services.stock_ledger_service import location_stock_value

logger = logging.getLogger("stockledger.reconciliation")

MANUAL_FIELDS = ("adjustments", "back_charges", "credits", "condemnations")


@dataclass(frozen=True)
class ReconciliationFigures:
    opening_stock: Decimal = ZERO_MONEY
    receipts: Decimal = ZERO_MONEY
    transfers_in: Decimal = ZERO_MONEY
    transfers_out: Decimal = ZERO_MONEY
    issues: Decimal = ZERO_MONEY
    closing_stock: Decimal = ZERO_MONEY
    adjustments: Decimal = ZERO_MONEY
    back_charges: Decimal = ZERO_MONEY
    credits: Decimal = ZERO_MONEY
    condemnations: Decimal = ZERO_MONEY
    ncr_credits: Decimal = ZERO_MONEY
    ncr_losses: Decimal = ZERO_MONEY


@dataclass(frozen=True)
class VarianceResult:
    calculated_closing: Decimal
    variance: Decimal


@dataclass(frozen=True)
class ReconciliationView:
    period_id: str
    location_id: str
    figures: ReconciliationFigures
    calculated_closing: Decimal
    variance: Decimal
    consumption: Decimal
    total_adjustments: Decimal
    is_auto_calculated: bool
    reconciliation_id: str | None = None
    last_updated: datetime | None = None


def calculate_variance(figures: ReconciliationFigures) -> VarianceResult:
    calculated_closing = (
        to_decimal(figures.opening_stock)
        + to_decimal(figures.receipts)
        + to_decimal(figures.transfers_in)
        - to_decimal(figures.transfers_out)
        - to_decimal(figures.issues)
        + to_decimal(figures.adjustments)
        - to_decimal(figures.back_charges)
        + to_decimal(figures.credits)
        - to_decimal(figures.condemnations)
    )
    return VarianceResult(
        calculated_closing=to_money(calculated_closing),
        variance=to_money(to_decimal(figures.closing_stock) - calculated_closing),
    )


def total_adjustments(figures: ReconciliationFigures) -> Decimal:
    return to_money(
        to_decimal(figures.back_charges)
        - to_decimal(figures.credits)
        - to_decimal(figures.condemnations)
        + to_decimal(figures.adjustments)
    )


def calculate_consumption(figures: ReconciliationFigures) -> Decimal:
    """Value consumed in the period: stock available less stock left, net of adjustments."""
    return to_money(
        to_decimal(figures.opening_stock)
        + to_decimal(figures.receipts)
        + to_decimal(figures.transfers_in)
        - to_decimal(figures.transfers_out)
        - to_decimal(figures.closing_stock)
        + total_adjustments(figures)
    )


def calculate_manday_cost(consumption: Decimal, total_mandays: int | Decimal) -> Decimal:
    mandays = to_decimal(total_mandays)
    if mandays <= 0:
        raise ValidationError("Total mandays must be greater than zero")
    return to_money(to_decimal(consumption) / mandays)


def _sum(db: Session, stmt) -> Decimal:
    return to_money(db.execute(stmt).scalar_one() or 0)


def _opening_stock(db: Session, *, period: Period, location_id: str) -> Decimal:
    period_location = db.get(PeriodLocation, (period.id, location_id))
    if period_location is not None:
        return to_money(period_location.opening_value)
    previous = db.execute(
        select(Reconciliation.closing_stock)
        .join(Period, Period.id == Reconciliation.period_id)
        .where(Reconciliation.location_id == location_id, Period.end_date < period.start_date)
        .order_by(Period.end_date.desc())
        .limit(1)
    ).scalar_one_or_none()
    return to_money(previous or 0)


def calculate_location_movements(db: Session, *, period: Period, location_id: str) -> ReconciliationFigures:
    receipts = _sum(
        db,
        select(func.coalesce(func.sum(DeliveryLine.line_value), 0))
        .join(Delivery, Delivery.id == DeliveryLine.delivery_id)
        .where(
            Delivery.location_id == location_id,
            Delivery.period_id == period.id,
            Delivery.status == DeliveryStatus.POSTED.value,
        ),
    )
    issues = _sum(
        db,
        select(func.coalesce(func.sum(IssueLine.line_value), 0))
        .join(Issue, Issue.id == IssueLine.issue_id)
        .where(Issue.location_id == location_id, Issue.period_id == period.id),
    )

    def transfer_total(location_column) -> Decimal:
        return _sum(
            db,
            select(func.coalesce(func.sum(TransferLine.line_value), 0))
            .join(Transfer, Transfer.id == TransferLine.transfer_id)
            .where(
                location_column == location_id,
                Transfer.status == TransferStatus.COMPLETED.value,
                Transfer.transfer_date >= period.start_date,
                Transfer.transfer_date <= period.end_date,
            ),
        )

    return ReconciliationFigures(
        opening_stock=_opening_stock(db, period=period, location_id=location_id),
        receipts=receipts,
        transfers_in=transfer_total(Transfer.to_location_id),
        transfers_out=transfer_total(Transfer.from_location_id),
        issues=issues,
        closing_stock=location_stock_value(db, location_id=location_id),
    )


def figures_from_row(row: Reconciliation) -> ReconciliationFigures:
    return ReconciliationFigures(
        **{field: to_money(getattr(row, field)) for field in ReconciliationFigures.__dataclass_fields__}
    )


def _with_manual_and_ncr(
    db: Session,
    *,
    period: Period,
    location_id: str,
    movements: ReconciliationFigures,
    manual: dict[str, Decimal],
) -> ReconciliationFigures:
    summary = ncr_period_summary(db, period=period, location_id=location_id)
    return replace(
        movements,
        **{field: to_money(manual.get(field, ZERO_MONEY)) for field in MANUAL_FIELDS},
        ncr_credits=summary.credited_total,
        ncr_losses=summary.losses_total,
    )


def _view(
    *,
    period_id: str,
    location_id: str,
    figures: ReconciliationFigures,
    row: Reconciliation | None,
) -> ReconciliationView:
    result = calculate_variance(figures)
    return ReconciliationView(
        period_id=period_id,
        location_id=location_id,
        figures=figures,
        calculated_closing=result.calculated_closing,
        variance=result.variance,
        consumption=calculate_consumption(figures),
        total_adjustments=total_adjustments(figures),
        is_auto_calculated=row is None,
        reconciliation_id=row.id if row else None,
        last_updated=row.last_updated if row else None,
    )


def get_reconciliation_row(db: Session, *, period_id: str, location_id: str) -> Reconciliation | None:
    return db.execute(
        select(Reconciliation).where(
            Reconciliation.period_id == period_id,
            Reconciliation.location_id == location_id,
        )
    ).scalar_one_or_none()


def get_reconciliation(db: Session, *, period_id: str, location_id: str) -> ReconciliationView:
    """Stored figures when the period is sealed, otherwise live figures with stored manual inputs."""
    period = get_period(db, period_id)
    get_location(db, location_id)
    row = get_reconciliation_row(db, period_id=period_id, location_id=location_id)

    if row is not None and period.status in {PeriodStatus.PENDING_CLOSE.value, PeriodStatus.CLOSED.value}:
        return _view(period_id=period_id, location_id=location_id, figures=figures_from_row(row), row=row)

    movements = calculate_location_movements(db, period=period, location_id=location_id)
    manual = {field: getattr(row, field) for field in MANUAL_FIELDS} if row else {}
    figures = _with_manual_and_ncr(db, period=period, location_id=location_id, movements=movements, manual=manual)
    return _view(period_id=period_id, location_id=location_id, figures=figures, row=row)


def save_reconciliation(
    db: Session,
    *,
    actor: Actor,
    period_id: str,
    location_id: str,
    adjustments: Decimal | None = None,
    back_charges: Decimal | None = None,
    credits: Decimal | None = None,
    condemnations: Decimal | None = None,
) -> ReconciliationView:
    """Store the location's figures. A READY location reverts to OPEN when a manual figure changes."""
    entered = {
        "adjustments": adjustments,
        "back_charges": back_charges,
        "credits": credits,
        "condemnations": condemnations,
    }
    for field, value in entered.items():
        if value is not None and field != "adjustments" and to_decimal(value) < 0:
            raise ValidationError(f"{field} cannot be negative", details=[{"field": field}])

    with unit_of_work(db):
        period = get_period(db, period_id)
        get_location(db, location_id)
        if period.status != PeriodStatus.OPEN.value:
            raise InvalidPeriodStatusError(
                current=period.status,
                expected=PeriodStatus.OPEN.value,
                action="update reconciliation",
            )
        period_location = db.get(PeriodLocation, (period_id, location_id))
        if period_location is None:
            raise NotFoundError("PeriodLocation", f"{period_id}/{location_id}")

        row = get_reconciliation_row(db, period_id=period_id, location_id=location_id)
        previous = {field: to_money(getattr(row, field)) for field in MANUAL_FIELDS} if row else {}
        manual = {
            field: to_money(value) if value is not None else previous.get(field, ZERO_MONEY)
            for field, value in entered.items()
        }

        movements = calculate_location_movements(db, period=period, location_id=location_id)
        figures = _with_manual_and_ncr(db, period=period, location_id=location_id, movements=movements, manual=manual)

        if row is None:
            row = Reconciliation(id=generate_shortuuid(), period_id=period_id, location_id=location_id)
            db.add(row)
        for field, value in asdict(figures).items():
            setattr(row, field, value)
        row.updated_by = actor.user_id

        unready = bool(previous) and previous != manual and revert_location_to_open(period_location)
        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="reconciliation.save",
            target_type="reconciliation",
            target_id=row.id,
            metadata_json={
                "period_id": period_id,
                "location_id": location_id,
                **{field: str(value) for field, value in manual.items()},
                "location_unready": unready,
            },
        )
        db.flush()

    view = _view(period_id=period_id, location_id=location_id, figures=figures, row=row)
    log_event(
        logger,
        "reconciliation.saved",
        period_id=period_id,
        location_id=location_id,
        variance=view.variance,
        location_unready=unready,
    )
    return view


def consolidated_reconciliation(db: Session, *, period_id: str) -> tuple[list[ReconciliationView], ReconciliationFigures]:
    period = get_period(db, period_id)
    location_ids = db.execute(
        select(PeriodLocation.location_id)
        .where(PeriodLocation.period_id == period.id)
        .order_by(PeriodLocation.location_id.asc())
    ).scalars().all()

    views = [get_reconciliation(db, period_id=period.id, location_id=location_id) for location_id in location_ids]
    totals = {field: ZERO_MONEY for field in ReconciliationFigures.__dataclass_fields__}
    for view in views:
        for field, value in asdict(view.figures).items():
            totals[field] = to_money(totals[field] + value)
    return views, ReconciliationFigures(**totals)
