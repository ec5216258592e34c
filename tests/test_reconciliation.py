from datetime import date
from decimal import Decimal

import pytest

from stockledger.core.errors import InvalidPeriodStatusError, ValidationError
from stockledger.models.enums import PeriodLocationStatus
from stockledger.services.delivery_service import DeliveryHeaderInput, DeliveryLineInput, create_and_post_delivery
from stockledger.services.issue_service import IssueLineInput, post_issue
from stockledger.services.period_service import get_period_location, mark_location_ready, request_period_close
from stockledger.services.reconciliation_service import (
    ReconciliationFigures,
    calculate_consumption,
    calculate_manday_cost,
    calculate_variance,
    consolidated_reconciliation,
    get_reconciliation,
    save_reconciliation,
)

from support import ADMIN, OPERATOR, SUPERVISOR, LedgerSeed, auth_headers


def _figures(**values) -> ReconciliationFigures:
    return ReconciliationFigures(**{field: Decimal(value) for field, value in values.items()})


def _stock_store(db, seed):
    store = seed.location("STORE")
    rice = seed.item("RICE")
    period = seed.period({rice.id: "2.00"})
    create_and_post_delivery(
        db,
        actor=ADMIN,
        location_id=store.id,
        header=DeliveryHeaderInput(delivery_date=date(2026, 1, 5)),
        lines=[DeliveryLineInput(item_id=rice.id, quantity=Decimal("100"), unit_price=Decimal("2.00"))],
    )
    post_issue(
        db,
        actor=OPERATOR,
        location_id=store.id,
        issue_date=date(2026, 1, 12),
        lines=[IssueLineInput(item_id=rice.id, quantity=Decimal("30"))],
    )
    return period, store, rice


def test_variance_is_closing_less_calculated_closing():
    figures = _figures(opening_stock="1000", receipts="200", issues="100", closing_stock="1090")

    result = calculate_variance(figures)

    assert result.calculated_closing == Decimal("1100.00")
    assert result.variance == Decimal("-10.00")


def test_variance_applies_every_adjustment_in_its_direction():
    figures = _figures(
        opening_stock="500",
        receipts="100",
        transfers_in="40",
        transfers_out="20",
        issues="80",
        adjustments="-5",
        back_charges="10",
        credits="15",
        condemnations="20",
        closing_stock="510",
    )

    result = calculate_variance(figures)

    # 500 + 100 + 40 - 20 - 80 - 5 - 10 + 15 - 20
    assert result.calculated_closing == Decimal("520.00")
    assert result.variance == Decimal("-10.00")


def test_ncr_figures_do_not_move_variance():
    base = _figures(opening_stock="100", closing_stock="100")
    with_ncrs = _figures(opening_stock="100", closing_stock="100", ncr_credits="30", ncr_losses="12")

    assert calculate_variance(base) == calculate_variance(with_ncrs)


def test_consumption_and_manday_cost():
    figures = _figures(opening_stock="1000", receipts="200", issues="100", closing_stock="1090", condemnations="10")

    consumption = calculate_consumption(figures)

    assert consumption == Decimal("100.00")
    assert calculate_manday_cost(consumption, 40) == Decimal("2.50")
    with pytest.raises(ValidationError):
        calculate_manday_cost(consumption, 0)


def test_live_figures_come_from_postings_and_ledger(db, seed):
    period, store, _ = _stock_store(db, seed)

    view = get_reconciliation(db, period_id=period.id, location_id=store.id)

    assert view.is_auto_calculated is True
    assert view.reconciliation_id is None
    assert view.figures.opening_stock == Decimal("0.00")
    assert view.figures.receipts == Decimal("200.00")
    assert view.figures.issues == Decimal("60.00")
    assert view.figures.closing_stock == Decimal("140.00")
    assert view.variance == Decimal("0.00")
    assert view.consumption == Decimal("60.00")


def test_saving_manual_figures_stores_the_reconciliation(db, seed):
    period, store, _ = _stock_store(db, seed)

    view = save_reconciliation(
        db,
        actor=SUPERVISOR,
        period_id=period.id,
        location_id=store.id,
        condemnations=Decimal("5"),
    )

    assert view.is_auto_calculated is False
    assert view.reconciliation_id is not None
    assert view.figures.condemnations == Decimal("5.00")
    assert view.calculated_closing == Decimal("135.00")
    assert view.variance == Decimal("5.00")
    assert view.consumption == Decimal("55.00")

    # Omitted figures keep their stored values.
    again = save_reconciliation(db, actor=SUPERVISOR, period_id=period.id, location_id=store.id, credits=Decimal("1"))
    assert again.figures.condemnations == Decimal("5.00")
    assert again.figures.credits == Decimal("1.00")


def test_negative_manual_figures_are_rejected(db, seed):
    period, store, _ = _stock_store(db, seed)

    with pytest.raises(ValidationError):
        save_reconciliation(
            db,
            actor=SUPERVISOR,
            period_id=period.id,
            location_id=store.id,
            back_charges=Decimal("-1"),
        )


def test_changing_figures_of_a_ready_location_reverts_it_to_open(db, seed):
    period, store, _ = _stock_store(db, seed)
    save_reconciliation(db, actor=SUPERVISOR, period_id=period.id, location_id=store.id, condemnations=Decimal("5"))
    mark_location_ready(db, actor=SUPERVISOR, period_id=period.id, location_id=store.id)

    save_reconciliation(db, actor=SUPERVISOR, period_id=period.id, location_id=store.id, condemnations=Decimal("5"))
    assert get_period_location(db, period_id=period.id, location_id=store.id).status == PeriodLocationStatus.READY.value

    save_reconciliation(db, actor=SUPERVISOR, period_id=period.id, location_id=store.id, condemnations=Decimal("7"))
    period_location = get_period_location(db, period_id=period.id, location_id=store.id)
    assert period_location.status == PeriodLocationStatus.OPEN.value
    assert period_location.ready_at is None


def test_pending_close_serves_stored_figures_and_refuses_edits(db, seed):
    period, store, _ = _stock_store(db, seed)
    saved = save_reconciliation(db, actor=SUPERVISOR, period_id=period.id, location_id=store.id, adjustments=Decimal("-2"))
    mark_location_ready(db, actor=SUPERVISOR, period_id=period.id, location_id=store.id)
    request_period_close(db, actor=ADMIN, period_id=period.id)

    view = get_reconciliation(db, period_id=period.id, location_id=store.id)

    assert view.is_auto_calculated is False
    assert view.reconciliation_id == saved.reconciliation_id
    assert view.figures == saved.figures
    with pytest.raises(InvalidPeriodStatusError):
        save_reconciliation(db, actor=SUPERVISOR, period_id=period.id, location_id=store.id, adjustments=Decimal("0"))


def test_consolidated_reconciliation_totals_locations(db, seed):
    period, store, _ = _stock_store(db, seed)
    # Locations added after the period was created are not part of it.
    seed.location("KITCHEN")

    views, totals = consolidated_reconciliation(db, period_id=period.id)

    assert [view.location_id for view in views] == [store.id]
    assert totals.receipts == Decimal("200.00")
    assert totals.issues == Decimal("60.00")
    assert totals.closing_stock == Decimal("140.00")


def test_reconciliation_api_roles_and_manday_cost(test_context):
    client, session_local = test_context
    db = session_local()
    try:
        period, store, _ = _stock_store(db, LedgerSeed(db))
        period_id, store_id = period.id, store.id
    finally:
        db.close()

    res = client.get(f"/reconciliations/{period_id}/{store_id}?total_mandays=12", headers=auth_headers(OPERATOR))
    assert res.status_code == 200, res.text
    body = res.json()
    assert Decimal(body["consumption"]) == Decimal("60.00")
    assert body["total_mandays"] == 12
    assert Decimal(body["manday_cost"]) == Decimal("5.00")

    forbidden = client.put(
        f"/reconciliations/{period_id}/{store_id}",
        json={"condemnations": "5"},
        headers=auth_headers(OPERATOR),
    )
    assert forbidden.status_code == 403, forbidden.text

    invalid = client.put(
        f"/reconciliations/{period_id}/{store_id}",
        json={"back_charges": "-3"},
        headers=auth_headers(SUPERVISOR),
    )
    assert invalid.status_code == 422, invalid.text
    assert invalid.json()["error"]["code"] == "validation_error"

    saved = client.put(
        f"/reconciliations/{period_id}/{store_id}",
        json={"condemnations": "5"},
        headers=auth_headers(SUPERVISOR),
    )
    assert saved.status_code == 200, saved.text
    assert Decimal(saved.json()["variance"]) == Decimal("5.00")
    assert saved.json()["is_auto_calculated"] is False

    consolidated = client.get(f"/reconciliations/{period_id}", headers=auth_headers(SUPERVISOR))
    assert consolidated.status_code == 200, consolidated.text
    assert Decimal(consolidated.json()["total_variance"]) == Decimal("5.00")
