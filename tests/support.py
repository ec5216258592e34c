from datetime import date
from decimal import Decimal

from stockledger.core.id_utils import generate_shortuuid
from stockledger.core.security import create_access_token
from stockledger.core.security_current import Actor
from stockledger.models.catalog import Item, Location, Supplier
from stockledger.services.period_service import create_period, open_period, set_period_prices

ADMIN = Actor(user_id="admin-1", role="admin")
SUPERVISOR = Actor(user_id="supervisor-1", role="supervisor")
OPERATOR = Actor(user_id="operator-1", role="operator")


class LedgerSeed:
    """Catalog and period setup shared by service and API tests."""

    def __init__(self, db):
        self.db = db

    def location(self, code: str, name: str | None = None, *, is_active: bool = True) -> Location:
        location = Location(id=generate_shortuuid(), code=code, name=name or code.title(), is_active=is_active)
        self.db.add(location)
        self.db.commit()
        return location

    def item(self, code: str, name: str | None = None, *, unit: str = "KG", is_active: bool = True) -> Item:
        item = Item(id=generate_shortuuid(), code=code, name=name or code.title(), unit=unit, is_active=is_active)
        self.db.add(item)
        self.db.commit()
        return item

    def supplier(self, code: str = "SUP-01") -> Supplier:
        supplier = Supplier(id=generate_shortuuid(), code=code, name=f"{code} Trading")
        self.db.add(supplier)
        self.db.commit()
        return supplier

    def period(
        self,
        prices: dict[str, Decimal | str],
        *,
        name: str = "January 2026",
        start_date: date = date(2026, 1, 1),
        end_date: date = date(2026, 1, 31),
        open_it: bool = True,
    ):
        period = create_period(self.db, actor=ADMIN, name=name, start_date=start_date, end_date=end_date)
        set_period_prices(
            self.db,
            actor=ADMIN,
            period_id=period.id,
            prices=[(item_id, Decimal(str(price))) for item_id, price in prices.items()],
        )
        if open_it:
            open_period(self.db, actor=ADMIN, period_id=period.id)
        return period


def auth_headers(actor: Actor) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(actor.user_id, actor.role)}"}
