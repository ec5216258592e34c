"""Read-only lookups against the item and location catalogs.

Catalog rows are maintained elsewhere. Lookups go through a TTL cache keyed by
entity id; whoever changes a catalog row calls ``invalidate_item`` or
``invalidate_location``.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.core.cache import TTLCache
from stockledger.core.config import settings
from stockledger.core.errors import NotFoundError, ValidationError
from stockledger.models.catalog import Item, Location, Supplier


@dataclass(frozen=True)
class ItemRef:
    id: str
    code: str
    name: str
    unit: str
    is_active: bool


@dataclass(frozen=True)
class LocationRef:
    id: str
    code: str
    name: str
    type: str
    is_active: bool


item_cache: TTLCache[ItemRef] = TTLCache(ttl_seconds=settings.catalog_cache_ttl_seconds)
location_cache: TTLCache[LocationRef] = TTLCache(ttl_seconds=settings.catalog_cache_ttl_seconds)


def _load_item(db: Session, item_id: str) -> ItemRef | None:
    item = db.get(Item, item_id)
    if not item:
        return None
    return ItemRef(id=item.id, code=item.code, name=item.name, unit=item.unit, is_active=item.is_active)


def _load_location(db: Session, location_id: str) -> LocationRef | None:
    location = db.get(Location, location_id)
    if not location:
        return None
    return LocationRef(
        id=location.id,
        code=location.code,
        name=location.name,
        type=location.type,
        is_active=location.is_active,
    )


def get_item(db: Session, item_id: str) -> ItemRef:
    ref = item_cache.get_or_load(item_id, lambda: _load_item(db, item_id))
    if ref is None:
        raise NotFoundError("Item", item_id)
    return ref


def get_active_item(db: Session, item_id: str) -> ItemRef:
    ref = get_item(db, item_id)
    if not ref.is_active:
        raise ValidationError(
            f"Item {ref.code} is not active",
            code="item_inactive",
            details=[{"item_id": ref.id, "item_code": ref.code}],
        )
    return ref


def get_location(db: Session, location_id: str) -> LocationRef:
    ref = location_cache.get_or_load(location_id, lambda: _load_location(db, location_id))
    if ref is None:
        raise NotFoundError("Location", location_id)
    return ref


def get_active_location(db: Session, location_id: str) -> LocationRef:
    ref = get_location(db, location_id)
    if not ref.is_active:
        raise ValidationError(
            f"Location {ref.code} is not active",
            code="location_inactive",
            details=[{"location_id": ref.id, "location_code": ref.code}],
        )
    return ref


def list_active_locations(db: Session) -> list[Location]:
    return db.execute(
        select(Location).where(Location.is_active.is_(True)).order_by(Location.code.asc())
    ).scalars().all()


def list_active_item_ids(db: Session) -> set[str]:
    return set(db.execute(select(Item.id).where(Item.is_active.is_(True))).scalars().all())


def get_active_supplier(db: Session, supplier_id: str) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError("Supplier", supplier_id)
    if not supplier.is_active:
        raise ValidationError(f"Supplier {supplier.code} is not active", code="supplier_inactive")
    return supplier


def invalidate_item(item_id: str) -> None:
    item_cache.invalidate(item_id)


def invalidate_location(location_id: str) -> None:
    location_cache.invalidate(location_id)


def clear_catalog_cache() -> None:
    item_cache.clear()
    location_cache.clear()
