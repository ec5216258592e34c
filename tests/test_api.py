import json
from datetime import timedelta
from decimal import Decimal

from stockledger.core.security import create_token

from support import ADMIN, OPERATOR, SUPERVISOR, LedgerSeed, auth_headers


def _catalog(session_local) -> tuple[str, str, str]:
    db = session_local()
    try:
        seed = LedgerSeed(db)
        store = seed.location("STORE")
        kitchen = seed.location("KITCHEN")
        rice = seed.item("RICE", "Basmati Rice")
        return store.id, kitchen.id, rice.id
    finally:
        db.close()


def test_health_endpoints(test_context):
    client, _ = test_context

    assert client.get("/").json()["health"] == "/health"
    assert client.get("/health").json() == {"ok": True}
    ready = client.get("/ready")
    assert ready.status_code == 200
    assert ready.json() == {"ok": True}


def test_missing_and_invalid_tokens_get_error_envelope(test_context):
    client, _ = test_context

    missing = client.get("/periods/current", headers={"X-Request-ID": "req-123"})
    assert missing.status_code == 401
    error = missing.json()["error"]
    assert error["code"] == "unauthorized"
    assert error["request_id"] == "req-123"
    assert error["path"] == "/periods/current"
    assert missing.headers["X-Request-ID"] == "req-123"

    garbage = client.get("/periods/current", headers={"Authorization": "Bearer nope"})
    assert garbage.status_code == 401

    stranger = create_token("user-9", "auditor", timedelta(minutes=5))
    unknown_role = client.get("/periods/current", headers={"Authorization": f"Bearer {stranger}"})
    assert unknown_role.status_code == 401
    assert unknown_role.json()["error"]["message"] == "Unknown role"


def test_validation_and_not_found_envelopes(test_context):
    client, _ = test_context

    invalid = client.post(
        "/periods",
        json={"name": "Backwards", "start_date": "2026-02-01", "end_date": "2026-01-01"},
        headers=auth_headers(ADMIN),
    )
    assert invalid.status_code == 422, invalid.text
    assert invalid.json()["error"]["code"] == "validation_error"
    assert invalid.json()["error"]["details"]

    missing = client.get("/periods/does-not-exist", headers=auth_headers(OPERATOR))
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"

    no_current = client.get("/periods/current", headers=auth_headers(OPERATOR))
    assert no_current.status_code == 404


def test_period_lifecycle_through_the_api(test_context):
    client, session_local = test_context
    store_id, kitchen_id, rice_id = _catalog(session_local)

    created = client.post(
        "/periods",
        json={"name": "January 2026", "start_date": "2026-01-01", "end_date": "2026-01-31"},
        headers=auth_headers(ADMIN),
    )
    assert created.status_code == 200, created.text
    period = created.json()
    assert period["status"] == "DRAFT"
    assert {row["location_id"] for row in period["locations"]} == {store_id, kitchen_id}
    period_id = period["id"]

    assert client.post(
        "/periods",
        json={"name": "Overlap", "start_date": "2026-01-20", "end_date": "2026-02-20"},
        headers=auth_headers(ADMIN),
    ).json()["error"]["code"] == "overlapping_period"

    not_priced = client.post(f"/periods/{period_id}/open", headers=auth_headers(ADMIN))
    assert not_priced.status_code == 422
    assert not_priced.json()["error"]["code"] == "prices_incomplete"

    priced = client.put(
        f"/periods/{period_id}/prices",
        json={"prices": [{"item_id": rice_id, "price": "2.00"}]},
        headers=auth_headers(ADMIN),
    )
    assert priced.status_code == 200, priced.text
    assert priced.json()["prices_complete"] is True

    operator_open = client.post(f"/periods/{period_id}/open", headers=auth_headers(OPERATOR))
    assert operator_open.status_code == 403
    opened = client.post(f"/periods/{period_id}/open", headers=auth_headers(ADMIN))
    assert opened.status_code == 200, opened.text
    assert client.get("/periods/current", headers=auth_headers(OPERATOR)).json()["id"] == period_id

    delivery = client.post(
        "/deliveries",
        json={
            "location_id": store_id,
            "delivery_date": "2026-01-04",
            "lines": [{"item_id": rice_id, "quantity": "40", "unit_price": "2.00"}],
            "post": True,
        },
        headers=auth_headers(OPERATOR),
    )
    assert delivery.status_code == 200, delivery.text

    issued = client.post(
        "/issues",
        json={
            "location_id": store_id,
            "issue_date": "2026-01-10",
            "lines": [{"item_id": rice_id, "quantity": "15"}],
        },
        headers=auth_headers(OPERATOR),
    )
    assert issued.status_code == 200, issued.text
    assert Decimal(issued.json()["total_value"]) == Decimal("30.00")

    stock = client.get(f"/locations/{store_id}/stock", headers=auth_headers(OPERATOR))
    assert stock.status_code == 200, stock.text
    assert Decimal(stock.json()["total_value"]) == Decimal("50.00")

    not_reconciled = client.patch(
        f"/periods/{period_id}/locations/{store_id}/ready",
        headers=auth_headers(SUPERVISOR),
    )
    assert not_reconciled.status_code == 422
    assert not_reconciled.json()["error"]["code"] == "reconciliation_not_completed"

    for location_id in (store_id, kitchen_id):
        saved = client.put(
            f"/reconciliations/{period_id}/{location_id}",
            json={},
            headers=auth_headers(SUPERVISOR),
        )
        assert saved.status_code == 200, saved.text

    ready_store = client.patch(f"/periods/{period_id}/locations/{store_id}/ready", headers=auth_headers(SUPERVISOR))
    assert ready_store.status_code == 200, ready_store.text
    assert ready_store.json()["status"] == "READY"

    too_early = client.post(f"/periods/{period_id}/close", headers=auth_headers(ADMIN))
    assert too_early.status_code == 409
    assert too_early.json()["error"]["code"] == "locations_not_ready"
    assert [row["location_id"] for row in too_early.json()["error"]["details"]] == [kitchen_id]

    client.patch(f"/periods/{period_id}/locations/{kitchen_id}/ready", headers=auth_headers(SUPERVISOR))
    close = client.post(f"/periods/{period_id}/close", headers=auth_headers(ADMIN))
    assert close.status_code == 200, close.text
    assert close.json()["period"]["status"] == "PENDING_CLOSE"
    approval_id = close.json()["approval_id"]

    supervisor_approve = client.patch(f"/approvals/{approval_id}/approve", headers=auth_headers(SUPERVISOR))
    assert supervisor_approve.status_code == 403, supervisor_approve.text
    assert supervisor_approve.json()["error"]["code"] == "forbidden"

    approved = client.patch(f"/approvals/{approval_id}/approve", headers=auth_headers(ADMIN))
    assert approved.status_code == 200, approved.text
    assert approved.json()["status"] == "APPROVED"
    assert approved.json()["reviewed_by"] == ADMIN.user_id

    closed = client.get(f"/periods/{period_id}", headers=auth_headers(OPERATOR)).json()
    assert closed["status"] == "CLOSED"
    store_row = next(row for row in closed["locations"] if row["location_id"] == store_id)
    assert Decimal(store_row["closing_value"]) == Decimal("50.00")
    assert store_row["has_snapshot"] is True

    snapshot = client.get(
        f"/periods/{period_id}/locations/{store_id}/snapshot",
        headers=auth_headers(OPERATOR),
    )
    assert snapshot.status_code == 200, snapshot.text
    assert snapshot.headers["content-type"].startswith("application/json")
    document = json.loads(snapshot.text)
    assert document["total_value"] == "50.00"
    assert document["items"][0]["item_name"] == "Basmati Rice"

    rolled = client.post(f"/periods/{period_id}/roll-forward", headers=auth_headers(ADMIN))
    assert rolled.status_code == 200, rolled.text
    assert rolled.json()["name"] == "February 2026"
    opening = {row["location_id"]: Decimal(row["opening_value"]) for row in rolled.json()["locations"]}
    assert opening[store_id] == Decimal("50.00")


def test_missing_snapshot_is_not_found(test_context):
    client, session_local = test_context
    store_id, _, rice_id = _catalog(session_local)
    db = session_local()
    try:
        period_id = LedgerSeed(db).period({rice_id: "2.00"}).id
    finally:
        db.close()

    res = client.get(f"/periods/{period_id}/locations/{store_id}/snapshot", headers=auth_headers(OPERATOR))

    assert res.status_code == 404
    assert res.json()["error"]["code"] == "not_found"
