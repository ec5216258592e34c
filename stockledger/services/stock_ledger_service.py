"""Per-(location, item) on-hand quantity and weighted average cost.

This is the only module that writes ``location_stock`` rows. Callers own the
transaction: nothing here commits, so a failed multi-line operation rolls back
every row it touched.
"""

import logging
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.core.errors import InsufficientStockError, ValidationError
from stockledger.core.money import ZERO, line_value, to_decimal, to_money, to_qty, to_wac
from stockledger.core.observability import log_event
from stockledger.models.stock import LocationStock
from stockledger.services.catalog_service import get_item

logger = logging.getLogger("stockledger.ledger")


@dataclass(frozen=True)
class StockPosition:
    location_id: str
    item_id: str
    on_hand: Decimal
    wac: Decimal

    @property
    def value(self) -> Decimal:
        return line_value(self.on_hand, self.wac)


@dataclass(frozen=True)
class WacResult:
    new_quantity: Decimal
    new_wac: Decimal


def calculate_wac(
    current_quantity: Decimal,
    current_wac: Decimal,
    receipt_quantity: Decimal,
    receipt_price: Decimal,
) -> WacResult:
    current_quantity = to_decimal(current_quantity)
    current_wac = to_decimal(current_wac)
    receipt_quantity = to_decimal(receipt_quantity)
    receipt_price = to_decimal(receipt_price)

    if current_quantity < 0:
        raise ValidationError("Current quantity cannot be negative")
    if current_wac < 0:
        raise ValidationError("Current WAC cannot be negative")
    if receipt_quantity <= 0:
        raise ValidationError("Receipt quantity must be positive")
    if receipt_price < 0:
        raise ValidationError("Receipt price cannot be negative")

    new_quantity = current_quantity + receipt_quantity
    if current_quantity == 0:
        new_wac = receipt_price
    else:
        new_wac = (current_quantity * current_wac + receipt_quantity * receipt_price) / new_quantity
    return WacResult(new_quantity=to_qty(new_quantity), new_wac=to_wac(new_wac))


def _locked_row(db: Session, location_id: str, item_id: str) -> LocationStock | None:
    # FOR UPDATE serializes concurrent mutators on the row; re-read values are authoritative.
    return db.execute(
        select(LocationStock)
        .where(LocationStock.location_id == location_id, LocationStock.item_id == item_id)
        .with_for_update()
    ).scalar_one_or_none()


def get_stock(db: Session, *, location_id: str, item_id: str) -> StockPosition:
    row = db.get(LocationStock, (location_id, item_id))
    if not row:
        return StockPosition(location_id=location_id, item_id=item_id, on_hand=ZERO, wac=ZERO)
    return StockPosition(
        location_id=location_id,
        item_id=item_id,
        on_hand=to_decimal(row.on_hand),
        wac=to_decimal(row.wac),
    )


def increase_stock(
    db: Session,
    *,
    location_id: str,
    item_id: str,
    quantity: Decimal,
    unit_price: Decimal,
) -> LocationStock:
    row = _locked_row(db, location_id, item_id)
    current_quantity = to_decimal(row.on_hand) if row else ZERO
    current_wac = to_decimal(row.wac) if row else ZERO
    result = calculate_wac(current_quantity, current_wac, quantity, unit_price)

    if row is None:
        row = LocationStock(location_id=location_id, item_id=item_id)
        db.add(row)
    row.on_hand = result.new_quantity
    row.wac = result.new_wac
    db.flush()

    log_event(
        logger,
        "ledger.increase",
        location_id=location_id,
        item_id=item_id,
        quantity=quantity,
        unit_price=unit_price,
        on_hand=result.new_quantity,
        wac=result.new_wac,
    )
    return row


def _shortage(db: Session, item_id: str, requested: Decimal, available: Decimal) -> dict:
    item = get_item(db, item_id)
    return {
        "item_id": item_id,
        "item_code": item.code,
        "item_name": item.name,
        "requested": to_qty(requested),
        "available": to_qty(available),
        "shortfall": to_qty(requested - available),
    }


def decrease_stock(db: Session, *, location_id: str, item_id: str, quantity: Decimal) -> Decimal:
    """Remove ``quantity`` from the row and return the WAC it left at. WAC is unchanged."""
    quantity = to_decimal(quantity)
    if quantity <= 0:
        raise ValidationError("Quantity must be positive")

    row = _locked_row(db, location_id, item_id)
    available = to_decimal(row.on_hand) if row else ZERO
    if row is None or quantity > available:
        raise InsufficientStockError([_shortage(db, item_id, quantity, available)], location_id=location_id)

    row.on_hand = to_qty(available - quantity)
    db.flush()

    wac = to_decimal(row.wac)
    log_event(
        logger,
        "ledger.decrease",
        location_id=location_id,
        item_id=item_id,
        quantity=quantity,
        on_hand=row.on_hand,
        wac=wac,
    )
    return wac


def move_stock(
    db: Session,
    *,
    from_location_id: str,
    to_location_id: str,
    item_id: str,
    quantity: Decimal,
    unit_cost: Decimal | None = None,
) -> Decimal:
    """Decrement the source and increment the destination at ``unit_cost``
    (the source WAC when not given). Returns the cost used."""
    if from_location_id == to_location_id:
        raise ValidationError("Source and destination locations must be different")
    source_wac = decrease_stock(db, location_id=from_location_id, item_id=item_id, quantity=quantity)
    cost = source_wac if unit_cost is None else to_decimal(unit_cost)
    increase_stock(db, location_id=to_location_id, item_id=item_id, quantity=quantity, unit_price=cost)
    return cost


def aggregate_quantities(lines: Iterable[tuple[str, Decimal]]) -> "OrderedDict[str, Decimal]":
    totals: OrderedDict[str, Decimal] = OrderedDict()
    for item_id, quantity in lines:
        totals[item_id] = totals.get(item_id, ZERO) + to_decimal(quantity)
    return totals


def find_shortages(db: Session, *, location_id: str, lines: Iterable[tuple[str, Decimal]]) -> list[dict]:
    """Check every line against current stock; duplicate items are summed first."""
    shortages = []
    for item_id, requested in aggregate_quantities(lines).items():
        available = get_stock(db, location_id=location_id, item_id=item_id).on_hand
        if requested > available:
            shortages.append(_shortage(db, item_id, requested, available))
    return shortages


def ensure_available(db: Session, *, location_id: str, lines: Iterable[tuple[str, Decimal]]) -> None:
    shortages = find_shortages(db, location_id=location_id, lines=lines)
    if shortages:
        raise InsufficientStockError(shortages, location_id=location_id)


def list_location_stock(db: Session, *, location_id: str, positive_only: bool = False) -> list[LocationStock]:
    stmt = select(LocationStock).where(LocationStock.location_id == location_id)
    if positive_only:
        stmt = stmt.where(LocationStock.on_hand > 0)
    return db.execute(stmt.order_by(LocationStock.item_id.asc())).scalars().all()


def location_stock_value(db: Session, *, location_id: str) -> Decimal:
    total = ZERO
    for row in list_location_stock(db, location_id=location_id, positive_only=True):
        total += line_value(row.on_hand, row.wac)
    return to_money(total)
