from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.core.money import ZERO_MONEY, line_value, to_money
from stockledger.core.permissions import require_roles
from stockledger.core.security_current import Actor
from stockledger.models.stock import LocationStock
from stockledger.schemas.stock import LocationStockListOut, StockPositionOut
from stockledger.services.catalog_service import get_item, get_location
from stockledger.services.stock_ledger_service import list_location_stock

router = APIRouter(prefix="/locations", tags=["locations"])

_any_role = require_roles("admin", "supervisor", "operator")


def _position_out(db: Session, *, location_id: str, item_id: str, row: LocationStock | None) -> StockPositionOut:
    item = get_item(db, item_id)
    on_hand = row.on_hand if row else ZERO_MONEY
    wac = row.wac if row else ZERO_MONEY
    return StockPositionOut(
        location_id=location_id,
        item_id=item.id,
        item_code=item.code,
        item_name=item.name,
        unit=item.unit,
        on_hand=on_hand,
        wac=wac,
        value=line_value(on_hand, wac),
        updated_at=row.updated_at if row else None,
    )


@router.get(
    "/{location_id}/stock",
    response_model=LocationStockListOut,
    summary="On-hand stock and WAC for a location",
    responses=error_responses(401, 403, 404, 500),
)
def location_stock_endpoint(
    location_id: str,
    include_zero: bool = Query(default=False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    location = get_location(db, location_id)
    rows = list_location_stock(db, location_id=location.id, positive_only=not include_zero)
    items = [_position_out(db, location_id=location.id, item_id=row.item_id, row=row) for row in rows]
    return LocationStockListOut(
        location_id=location.id,
        items=items,
        total_value=to_money(sum((item.value for item in items), ZERO_MONEY)),
    )


@router.get(
    "/{location_id}/stock/{item_id}",
    response_model=StockPositionOut,
    summary="Stock position for one item at a location",
    responses=error_responses(401, 403, 404, 500),
)
def stock_position_endpoint(
    location_id: str,
    item_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(_any_role),
):
    location = get_location(db, location_id)
    row = db.get(LocationStock, (location.id, item_id))
    return _position_out(db, location_id=location.id, item_id=item_id, row=row)
