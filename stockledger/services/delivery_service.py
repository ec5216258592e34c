"""Goods receipts.

A delivery starts as a DRAFT owned by its creator and has no side effects.
Posting moves it to POSTED exactly once: every line is priced against the
period's locked price list, received into the ledger with a WAC recompute, and
lines whose price differs from the locked price by more than the threshold
raise an automatic price-variance NCR.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.core.errors import ConflictError, InvalidStatusError, NotFoundError, ValidationError
from stockledger.core.id_utils import generate_shortuuid
from stockledger.core.money import ZERO_MONEY, line_value, to_decimal, to_money, to_qty
from stockledger.core.observability import log_event
from stockledger.core.security_current import Actor
from stockledger.db.session import unit_of_work
from stockledger.models.catalog import ItemPrice
from stockledger.models.delivery import Delivery, DeliveryLine
from stockledger.models.enums import DeliveryStatus
from stockledger.models.ncr import NCR
from stockledger.services.audit_service import log_audit_event
from stockledger.services.catalog_service import get_active_item, get_active_location, get_active_supplier
from stockledger.services.document_numbering import next_delivery_number
from stockledger.services.ncr_service import add_price_variance_ncr
from stockledger.services.notification_service import notify_ncr_created
from stockledger.services.period_service import get_open_period_for_location
from stockledger.services.price_variance_service import detect_price_variance
from stockledger.services.stock_ledger_service import increase_stock

logger = logging.getLogger("stockledger.delivery")


@dataclass(frozen=True)
class DeliveryLineInput:
    item_id: str
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class DeliveryHeaderInput:
    delivery_date: date
    supplier_id: str | None = None
    invoice_no: str | None = None
    delivery_note: str | None = None


def _validate_lines(db: Session, lines: list[DeliveryLineInput]) -> None:
    if not lines:
        raise ValidationError("At least one line is required")
    for index, line in enumerate(lines):
        if to_decimal(line.quantity) <= 0:
            raise ValidationError("Quantity must be positive", details=[{"line": index, "item_id": line.item_id}])
        if to_decimal(line.unit_price) < 0:
            raise ValidationError("Unit price cannot be negative", details=[{"line": index, "item_id": line.item_id}])
        get_active_item(db, line.item_id)


def _ensure_invoice_unique(db: Session, invoice_no: str | None, *, exclude_id: str | None = None) -> None:
    if not invoice_no:
        return
    stmt = select(Delivery.id).where(Delivery.invoice_no == invoice_no)
    if exclude_id:
        stmt = stmt.where(Delivery.id != exclude_id)
    existing = db.execute(stmt.limit(1)).scalar_one_or_none()
    if existing:
        raise ConflictError(
            f"Invoice number {invoice_no} is already recorded",
            code="duplicate_invoice",
            details=[{"invoice_no": invoice_no, "delivery_id": existing}],
        )


def _replace_lines(db: Session, delivery: Delivery, lines: list[DeliveryLineInput]) -> list[DeliveryLine]:
    for existing in delivery_lines(db, delivery.id):
        db.delete(existing)
    created = []
    total = ZERO_MONEY
    for index, line in enumerate(lines):
        row = DeliveryLine(
            id=generate_shortuuid(),
            delivery_id=delivery.id,
            item_id=line.item_id,
            quantity=to_qty(line.quantity),
            unit_price=to_decimal(line.unit_price),
            price_variance=Decimal("0"),
            line_value=line_value(line.quantity, line.unit_price),
            line_no=index,
        )
        db.add(row)
        created.append(row)
        total += row.line_value
    delivery.total_amount = to_money(total)
    return created


def delivery_lines(db: Session, delivery_id: str) -> list[DeliveryLine]:
    return db.execute(
        select(DeliveryLine).where(DeliveryLine.delivery_id == delivery_id).order_by(DeliveryLine.line_no.asc())
    ).scalars().all()


def get_delivery(db: Session, *, actor: Actor, delivery_id: str, for_update: bool = False) -> Delivery:
    stmt = select(Delivery).where(Delivery.id == delivery_id)
    if for_update:
        stmt = stmt.with_for_update()
    delivery = db.execute(stmt).scalar_one_or_none()
    # Drafts are private to their creator and elevated roles.
    if (
        not delivery
        or delivery.status == DeliveryStatus.DRAFT.value
        and delivery.created_by != actor.user_id
        and not actor.is_elevated
    ):
        raise NotFoundError("Delivery", delivery_id)
    return delivery


def _add_draft(
    db: Session,
    *,
    actor: Actor,
    location_id: str,
    header: DeliveryHeaderInput,
    lines: list[DeliveryLineInput],
) -> Delivery:
    get_active_location(db, location_id)
    if header.supplier_id:
        get_active_supplier(db, header.supplier_id)
    _validate_lines(db, lines)
    _ensure_invoice_unique(db, header.invoice_no)

    delivery = Delivery(
        id=generate_shortuuid(),
        delivery_no=next_delivery_number(db, header.delivery_date),
        location_id=location_id,
        supplier_id=header.supplier_id,
        invoice_no=header.invoice_no,
        delivery_note=header.delivery_note,
        delivery_date=header.delivery_date,
        status=DeliveryStatus.DRAFT.value,
        has_variance=False,
        created_by=actor.user_id,
    )
    db.add(delivery)
    _replace_lines(db, delivery, lines)
    db.flush()
    return delivery


def create_delivery(
    db: Session,
    *,
    actor: Actor,
    location_id: str,
    header: DeliveryHeaderInput,
    lines: list[DeliveryLineInput],
) -> Delivery:
    with unit_of_work(db):
        delivery = _add_draft(db, actor=actor, location_id=location_id, header=header, lines=lines)
        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="delivery.create",
            target_type="delivery",
            target_id=delivery.id,
            metadata_json={"delivery_no": delivery.delivery_no, "lines": len(lines)},
        )
    return delivery


def update_draft_delivery(
    db: Session,
    *,
    actor: Actor,
    delivery_id: str,
    header: DeliveryHeaderInput | None = None,
    lines: list[DeliveryLineInput] | None = None,
) -> Delivery:
    with unit_of_work(db):
        delivery = get_delivery(db, actor=actor, delivery_id=delivery_id, for_update=True)
        if delivery.status != DeliveryStatus.DRAFT.value:
            raise InvalidStatusError("Only draft deliveries can be edited", code="delivery_already_posted")
        if header is not None:
            if header.supplier_id:
                get_active_supplier(db, header.supplier_id)
            _ensure_invoice_unique(db, header.invoice_no, exclude_id=delivery.id)
            delivery.supplier_id = header.supplier_id
            delivery.invoice_no = header.invoice_no
            delivery.delivery_note = header.delivery_note
            delivery.delivery_date = header.delivery_date
        if lines is not None:
            _validate_lines(db, lines)
            _replace_lines(db, delivery, lines)
        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="delivery.update",
            target_type="delivery",
            target_id=delivery.id,
        )
    return delivery


def _locked_prices(db: Session, period_id: str, item_ids: set[str]) -> dict[str, Decimal]:
    rows = db.execute(
        select(ItemPrice.item_id, ItemPrice.price).where(
            ItemPrice.period_id == period_id,
            ItemPrice.item_id.in_(item_ids),
        )
    ).all()
    return {item_id: to_decimal(price) for item_id, price in rows}


def _apply_posting(db: Session, *, actor: Actor, delivery: Delivery) -> list[NCR]:
    if delivery.status != DeliveryStatus.DRAFT.value:
        raise InvalidStatusError(
            "Delivery has already been posted",
            code="delivery_already_posted",
            details=[{"delivery_id": delivery.id, "status": delivery.status}],
        )
    get_active_location(db, delivery.location_id)
    period, _ = get_open_period_for_location(db, delivery.location_id)

    lines = delivery_lines(db, delivery.id)
    if not lines:
        raise ValidationError("Delivery has no lines")
    items = {line.item_id: get_active_item(db, line.item_id) for line in lines}
    prices = _locked_prices(db, period.id, set(items))
    missing = [{"item_id": item.id, "item_code": item.code} for item_id, item in items.items() if item_id not in prices]
    if missing:
        raise ValidationError(
            "No locked period price for one or more items",
            code="price_not_locked",
            details=missing,
        )

    ncrs: list[NCR] = []
    total = ZERO_MONEY
    for line in lines:
        variance = detect_price_variance(
            actual_price=line.unit_price,
            period_price=prices[line.item_id],
            quantity=line.quantity,
        )
        line.period_price = variance.period_price
        line.price_variance = variance.variance
        line.line_value = line_value(line.quantity, line.unit_price)
        total += line.line_value

        increase_stock(
            db,
            location_id=delivery.location_id,
            item_id=line.item_id,
            quantity=to_decimal(line.quantity),
            unit_price=to_decimal(line.unit_price),
        )

        if variance.exceeds_threshold:
            ncrs.append(
                add_price_variance_ncr(
                    db,
                    delivery=delivery,
                    line=line,
                    item=items[line.item_id],
                    variance=variance,
                    created_by=actor.user_id,
                )
            )

    delivery.period_id = period.id
    delivery.total_amount = to_money(total)
    delivery.has_variance = bool(ncrs)
    delivery.status = DeliveryStatus.POSTED.value
    delivery.posted_by = actor.user_id
    delivery.posted_at = datetime.now(timezone.utc)
    log_audit_event(
        db,
        actor_user_id=actor.user_id,
        action="delivery.post",
        target_type="delivery",
        target_id=delivery.id,
        metadata_json={
            "delivery_no": delivery.delivery_no,
            "period_id": period.id,
            "total_amount": str(delivery.total_amount),
            "ncrs": [ncr.ncr_no for ncr in ncrs],
        },
    )
    return ncrs


def _after_post(db: Session, delivery: Delivery, ncrs: list[NCR]) -> None:
    log_event(
        logger,
        "delivery.posted",
        delivery_id=delivery.id,
        delivery_no=delivery.delivery_no,
        total_amount=delivery.total_amount,
        ncr_count=len(ncrs),
    )
    if not ncrs:
        return
    location = get_active_location(db, delivery.location_id)
    for ncr in ncrs:
        notify_ncr_created(
            ncr_no=ncr.ncr_no,
            location_name=location.name,
            reason=ncr.reason,
            value=ncr.value,
            auto_generated=True,
        )


def post_delivery(db: Session, *, actor: Actor, delivery_id: str) -> Delivery:
    with unit_of_work(db):
        delivery = get_delivery(db, actor=actor, delivery_id=delivery_id, for_update=True)
        ncrs = _apply_posting(db, actor=actor, delivery=delivery)
    _after_post(db, delivery, ncrs)
    return delivery


def create_and_post_delivery(
    db: Session,
    *,
    actor: Actor,
    location_id: str,
    header: DeliveryHeaderInput,
    lines: list[DeliveryLineInput],
) -> Delivery:
    with unit_of_work(db):
        delivery = _add_draft(db, actor=actor, location_id=location_id, header=header, lines=lines)
        ncrs = _apply_posting(db, actor=actor, delivery=delivery)
    _after_post(db, delivery, ncrs)
    return delivery


def list_delivery_ncrs(db: Session, delivery_id: str) -> list[NCR]:
    return db.execute(select(NCR).where(NCR.delivery_id == delivery_id).order_by(NCR.ncr_no.asc())).scalars().all()
