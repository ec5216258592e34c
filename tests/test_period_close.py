import json
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from stockledger.core.errors import (
    ConflictError,
    InvalidPeriodStatusError,
    LocationsNotReadyError,
    OverlappingPeriodError,
    PeriodAlreadyOpenError,
    PermissionDeniedError,
    ValidationError,
)
from stockledger.models.approval import Approval
from stockledger.models.catalog import ItemPrice
from stockledger.models.enums import ApprovalStatus, PeriodLocationStatus, PeriodStatus
from stockledger.models.period import Period, PeriodLocation
from stockledger.services import period_close_service
from stockledger.services.approval_handlers import approve, reject
from stockledger.services.delivery_service import DeliveryHeaderInput, DeliveryLineInput, create_and_post_delivery
from stockledger.services.period_close_service import get_period_snapshot
from stockledger.services.period_service import (
    create_period,
    get_period,
    list_period_locations,
    mark_location_ready,
    mark_location_unready,
    open_period,
    request_period_close,
    roll_forward_period,
)
from stockledger.services.reconciliation_service import save_reconciliation

from support import ADMIN, SUPERVISOR


def _receive(db, location_id: str, item_id: str, qty: str, price: str):
    create_and_post_delivery(
        db,
        actor=ADMIN,
        location_id=location_id,
        header=DeliveryHeaderInput(delivery_date=date(2026, 1, 5)),
        lines=[DeliveryLineInput(item_id=item_id, quantity=Decimal(qty), unit_price=Decimal(price))],
    )


def _ready_all(db, period_id: str, location_ids: list[str]) -> None:
    for location_id in location_ids:
        save_reconciliation(db, actor=SUPERVISOR, period_id=period_id, location_id=location_id)
        mark_location_ready(db, actor=SUPERVISOR, period_id=period_id, location_id=location_id)


@pytest.fixture()
def two_locations(db, seed):
    store = seed.location("STORE")
    kitchen = seed.location("KITCHEN")
    rice = seed.item("RICE")
    period = seed.period({rice.id: "2.00"})
    _receive(db, store.id, rice.id, "100", "2.00")
    _receive(db, kitchen.id, rice.id, "10", "2.50")
    return period, store, kitchen, rice


def test_overlapping_period_is_rejected(db, seed):
    seed.location("STORE")
    create_period(db, actor=ADMIN, name="January 2026", start_date=date(2026, 1, 1), end_date=date(2026, 1, 31))

    with pytest.raises(OverlappingPeriodError) as exc_info:
        create_period(db, actor=ADMIN, name="Mid January", start_date=date(2026, 1, 15), end_date=date(2026, 2, 14))

    assert exc_info.value.code == "overlapping_period"


def test_period_opens_only_with_complete_prices_and_one_at_a_time(db, seed):
    seed.location("STORE")
    rice = seed.item("RICE")
    seed.item("BEANS")
    draft = seed.period({rice.id: "2.00"}, open_it=False)

    assert get_period(db, draft.id).prices_complete is False
    with pytest.raises(ValidationError) as exc_info:
        open_period(db, actor=ADMIN, period_id=draft.id)
    assert exc_info.value.code == "prices_incomplete"


def test_second_open_period_is_refused(db, seed):
    seed.location("STORE")
    rice = seed.item("RICE")
    seed.period({rice.id: "2.00"})
    february = seed.period(
        {rice.id: "2.10"},
        name="February 2026",
        start_date=date(2026, 2, 1),
        end_date=date(2026, 2, 28),
        open_it=False,
    )

    with pytest.raises(PeriodAlreadyOpenError):
        open_period(db, actor=ADMIN, period_id=february.id)


def test_period_cannot_open_while_another_is_pending_close(db, seed, two_locations):
    period, store, kitchen, rice = two_locations
    _ready_all(db, period.id, [store.id, kitchen.id])
    approval_id = request_period_close(db, actor=ADMIN, period_id=period.id).approval_id
    february = seed.period(
        {rice.id: "2.10"},
        name="February 2026",
        start_date=date(2026, 2, 1),
        end_date=date(2026, 2, 28),
        open_it=False,
    )

    with pytest.raises(PeriodAlreadyOpenError) as exc_info:
        open_period(db, actor=ADMIN, period_id=february.id)
    assert exc_info.value.details == [{"period_id": period.id, "period_name": period.name}]

    reject(db, actor=ADMIN, approval_id=approval_id)

    open_periods = db.execute(select(Period).where(Period.status == PeriodStatus.OPEN.value)).scalars().all()
    assert [row.id for row in open_periods] == [period.id]
    assert get_period(db, february.id).status == PeriodStatus.DRAFT.value


def test_ready_requires_saved_reconciliation(db, two_locations):
    period, store, _, _ = two_locations

    with pytest.raises(ValidationError) as exc_info:
        mark_location_ready(db, actor=SUPERVISOR, period_id=period.id, location_id=store.id)

    assert exc_info.value.code == "reconciliation_not_completed"


def test_ready_location_stops_taking_postings_until_unready(db, two_locations):
    period, store, _, rice = two_locations
    _ready_all(db, period.id, [store.id])

    with pytest.raises(ConflictError) as exc_info:
        _receive(db, store.id, rice.id, "1", "2.00")
    assert exc_info.value.code == "period_location_not_open"

    mark_location_unready(db, actor=SUPERVISOR, period_id=period.id, location_id=store.id)
    _receive(db, store.id, rice.id, "1", "2.00")


def test_close_request_lists_locations_not_ready(db, two_locations):
    period, store, kitchen, _ = two_locations
    _ready_all(db, period.id, [store.id])

    with pytest.raises(LocationsNotReadyError) as exc_info:
        request_period_close(db, actor=ADMIN, period_id=period.id)

    assert [row["location_id"] for row in exc_info.value.locations] == [kitchen.id]
    assert get_period(db, period.id).status == PeriodStatus.OPEN.value


def test_full_close_seals_every_location(db, two_locations):
    period, store, kitchen, rice = two_locations
    _ready_all(db, period.id, [store.id, kitchen.id])

    requested = request_period_close(db, actor=ADMIN, period_id=period.id)
    assert requested.status == PeriodStatus.PENDING_CLOSE.value
    approval_id = requested.approval_id

    approval = approve(db, actor=ADMIN, approval_id=approval_id)

    assert approval.status == ApprovalStatus.APPROVED.value
    closed = get_period(db, period.id)
    assert closed.status == PeriodStatus.CLOSED.value
    assert closed.closed_at is not None
    closing = {row.location_id: row for row in list_period_locations(db, period.id)}
    assert closing[store.id].status == PeriodLocationStatus.CLOSED.value
    assert closing[store.id].closing_value == Decimal("200.00")
    assert closing[kitchen.id].closing_value == Decimal("25.00")

    snapshot = json.loads(get_period_snapshot(db, period_id=period.id, location_id=kitchen.id))
    assert snapshot["location_code"] == "KITCHEN"
    assert snapshot["total_value"] == "25.00"
    assert snapshot["items"][0]["item_id"] == rice.id
    assert snapshot["items"][0]["quantity"] == "10.0000"
    assert snapshot["items"][0]["wac"] == "2.5000"
    assert snapshot["reconciliation"]["receipts"] == "25.00"


def test_period_close_needs_admin(db, two_locations):
    period, store, kitchen, _ = two_locations
    _ready_all(db, period.id, [store.id, kitchen.id])
    requested = request_period_close(db, actor=ADMIN, period_id=period.id)

    with pytest.raises(PermissionDeniedError):
        approve(db, actor=SUPERVISOR, approval_id=requested.approval_id)
    assert get_period(db, period.id).status == PeriodStatus.PENDING_CLOSE.value


def test_close_failure_on_one_location_changes_nothing(db, two_locations, monkeypatch):
    period, store, kitchen, _ = two_locations
    _ready_all(db, period.id, [store.id, kitchen.id])
    approval_id = request_period_close(db, actor=ADMIN, period_id=period.id).approval_id

    original = period_close_service.apply_location_close
    calls = []

    def failing_apply(close, *, closed_at):
        calls.append(close.period_location.location_id)
        if len(calls) == 2:
            raise RuntimeError("disk full")
        original(close, closed_at=closed_at)

    monkeypatch.setattr(period_close_service, "apply_location_close", failing_apply)

    with pytest.raises(RuntimeError):
        approve(db, actor=ADMIN, approval_id=approval_id)

    assert len(calls) == 2
    assert get_period(db, period.id).status == PeriodStatus.PENDING_CLOSE.value
    rows = db.execute(select(PeriodLocation).where(PeriodLocation.period_id == period.id)).scalars().all()
    assert {row.status for row in rows} == {PeriodLocationStatus.READY.value}
    assert all(row.snapshot_data is None and row.closing_value is None for row in rows)
    assert db.get(Approval, approval_id).status == ApprovalStatus.PENDING.value

    monkeypatch.setattr(period_close_service, "apply_location_close", original)
    approve(db, actor=ADMIN, approval_id=approval_id)
    assert get_period(db, period.id).status == PeriodStatus.CLOSED.value


def test_rejected_close_reopens_period_and_can_be_retried(db, two_locations):
    period, store, kitchen, _ = two_locations
    _ready_all(db, period.id, [store.id, kitchen.id])
    first_approval = request_period_close(db, actor=ADMIN, period_id=period.id).approval_id

    rejected = reject(db, actor=ADMIN, approval_id=first_approval, comments="Recount the store")

    assert rejected.status == ApprovalStatus.REJECTED.value
    reopened = get_period(db, period.id)
    assert reopened.status == PeriodStatus.OPEN.value
    assert reopened.approval_id is None
    statuses = {row.status for row in list_period_locations(db, period.id)}
    assert statuses == {PeriodLocationStatus.READY.value}

    second_approval = request_period_close(db, actor=ADMIN, period_id=period.id).approval_id
    assert second_approval != first_approval
    approve(db, actor=ADMIN, approval_id=second_approval)
    assert get_period(db, period.id).status == PeriodStatus.CLOSED.value


def test_closed_period_rejects_a_second_close_request(db, two_locations):
    period, store, kitchen, _ = two_locations
    _ready_all(db, period.id, [store.id, kitchen.id])
    approve(db, actor=ADMIN, approval_id=request_period_close(db, actor=ADMIN, period_id=period.id).approval_id)

    with pytest.raises(InvalidPeriodStatusError):
        request_period_close(db, actor=ADMIN, period_id=period.id)


def test_roll_forward_carries_closing_values_and_prices(db, two_locations):
    period, store, kitchen, rice = two_locations
    _ready_all(db, period.id, [store.id, kitchen.id])
    approve(db, actor=ADMIN, approval_id=request_period_close(db, actor=ADMIN, period_id=period.id).approval_id)

    february = roll_forward_period(db, actor=ADMIN, period_id=period.id)

    assert february.name == "February 2026"
    assert february.start_date == date(2026, 2, 1)
    assert february.end_date == date(2026, 2, 28)
    assert february.status == PeriodStatus.DRAFT.value
    assert february.prices_complete is True
    price = db.execute(select(ItemPrice).where(ItemPrice.period_id == february.id)).scalar_one()
    assert price.item_id == rice.id
    assert price.price == Decimal("2.0000")
    opening = {row.location_id: row.opening_value for row in list_period_locations(db, february.id)}
    assert opening == {store.id: Decimal("200.00"), kitchen.id: Decimal("25.00")}

    open_period(db, actor=ADMIN, period_id=february.id)
    assert get_period(db, february.id).status == PeriodStatus.OPEN.value


def test_roll_forward_requires_closed_source(db, two_locations):
    period, _, _, _ = two_locations

    with pytest.raises(InvalidPeriodStatusError):
        roll_forward_period(db, actor=ADMIN, period_id=period.id)
