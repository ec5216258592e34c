from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from stockledger.core.errors import (
    AlreadyProcessedError,
    ApprovalAlreadyExistsError,
    InsufficientStockError,
    PermissionDeniedError,
    UnsupportedApprovalError,
    ValidationError,
)
from stockledger.models.approval import Approval
from stockledger.models.enums import ApprovalEntityType, ApprovalStatus, TransferStatus
from stockledger.models.transfer import TransferLine
from stockledger.services.approval_handlers import approve, handler_for, reject
from stockledger.services.approval_service import find_pending_approval, request_approval
from stockledger.services.delivery_service import DeliveryHeaderInput, DeliveryLineInput, create_and_post_delivery
from stockledger.services.issue_service import IssueLineInput, post_issue
from stockledger.services.stock_ledger_service import get_stock
from stockledger.services.transfer_service import (
    TransferLineInput,
    approve_transfer,
    get_transfer,
    reject_transfer,
    request_transfer,
)

from support import ADMIN, OPERATOR, SUPERVISOR, LedgerSeed, auth_headers


def _receive(db, location_id: str, item_id: str, qty: str, price: str):
    return create_and_post_delivery(
        db,
        actor=ADMIN,
        location_id=location_id,
        header=DeliveryHeaderInput(delivery_date=date(2026, 1, 5)),
        lines=[DeliveryLineInput(item_id=item_id, quantity=Decimal(qty), unit_price=Decimal(price))],
    )


@pytest.fixture()
def stocked(db, seed):
    store = seed.location("STORE")
    kitchen = seed.location("KITCHEN")
    rice = seed.item("RICE")
    seed.period({rice.id: "2.00"})
    _receive(db, store.id, rice.id, "100", "2.00")
    return store, kitchen, rice


def _request(db, store, kitchen, rice, qty: str = "10"):
    return request_transfer(
        db,
        actor=OPERATOR,
        from_location_id=store.id,
        to_location_id=kitchen.id,
        request_date=date(2026, 1, 8),
        lines=[TransferLineInput(item_id=rice.id, quantity=Decimal(qty))],
    )


def _pending_approval(db, transfer_id: str) -> Approval | None:
    return find_pending_approval(db, entity_type=ApprovalEntityType.TRANSFER, entity_id=transfer_id)


def test_request_freezes_cost_and_raises_approval_without_moving_stock(db, stocked):
    store, kitchen, rice = stocked

    transfer = _request(db, store, kitchen, rice)

    assert transfer.status == TransferStatus.PENDING_APPROVAL.value
    assert transfer.transfer_no == "TRF-2026-001"
    assert transfer.total_value == Decimal("20.00")
    line = db.execute(select(TransferLine).where(TransferLine.transfer_id == transfer.id)).scalar_one()
    assert line.wac_at_transfer == Decimal("2.0000")
    assert _pending_approval(db, transfer.id) is not None
    assert get_stock(db, location_id=store.id, item_id=rice.id).on_hand == Decimal("100.0000")
    assert get_stock(db, location_id=kitchen.id, item_id=rice.id).on_hand == Decimal("0")


def test_approval_moves_stock_at_frozen_cost(db, stocked):
    store, kitchen, rice = stocked
    transfer = _request(db, store, kitchen, rice)
    # Source WAC moves to 3.00 after the request.
    _receive(db, store.id, rice.id, "100", "4.00")

    approved = approve_transfer(db, actor=SUPERVISOR, transfer_id=transfer.id)

    assert approved.status == TransferStatus.COMPLETED.value
    assert approved.approved_by == SUPERVISOR.user_id
    assert approved.transfer_date is not None
    assert get_stock(db, location_id=store.id, item_id=rice.id).on_hand == Decimal("190.0000")
    assert get_stock(db, location_id=store.id, item_id=rice.id).wac == Decimal("3.0000")
    destination = get_stock(db, location_id=kitchen.id, item_id=rice.id)
    assert destination.on_hand == Decimal("10.0000")
    assert destination.wac == Decimal("2.0000")
    assert _pending_approval(db, transfer.id) is None


def test_approval_with_insufficient_source_stock_stays_pending(db, stocked):
    store, kitchen, rice = stocked
    transfer = _request(db, store, kitchen, rice, qty="80")
    post_issue(
        db,
        actor=OPERATOR,
        location_id=store.id,
        issue_date=date(2026, 1, 9),
        lines=[IssueLineInput(item_id=rice.id, quantity=Decimal("50"))],
    )

    with pytest.raises(InsufficientStockError):
        approve_transfer(db, actor=SUPERVISOR, transfer_id=transfer.id)

    assert get_transfer(db, transfer.id).status == TransferStatus.PENDING_APPROVAL.value
    assert _pending_approval(db, transfer.id) is not None
    assert get_stock(db, location_id=store.id, item_id=rice.id).on_hand == Decimal("50.0000")
    assert get_stock(db, location_id=kitchen.id, item_id=rice.id).on_hand == Decimal("0")


def test_rejected_transfer_is_terminal(db, stocked):
    store, kitchen, rice = stocked
    transfer = _request(db, store, kitchen, rice)

    rejected = reject_transfer(db, actor=SUPERVISOR, transfer_id=transfer.id, comments="Not needed")
    assert rejected.status == TransferStatus.REJECTED.value

    with pytest.raises(AlreadyProcessedError):
        approve_transfer(db, actor=SUPERVISOR, transfer_id=transfer.id)
    assert get_stock(db, location_id=kitchen.id, item_id=rice.id).on_hand == Decimal("0")

    approval = db.execute(select(Approval).where(Approval.entity_id == transfer.id)).scalar_one()
    assert approval.status == ApprovalStatus.REJECTED.value
    assert approval.comments == "Not needed"


def test_transfer_request_checks_source_stock_and_locations(db, stocked):
    store, kitchen, rice = stocked

    with pytest.raises(InsufficientStockError):
        _request(db, store, kitchen, rice, qty="500")
    with pytest.raises(ValidationError):
        request_transfer(
            db,
            actor=OPERATOR,
            from_location_id=store.id,
            to_location_id=store.id,
            lines=[TransferLineInput(item_id=rice.id, quantity=Decimal("1"))],
        )


def test_approval_dispatch_completes_transfer_once(db, stocked):
    store, kitchen, rice = stocked
    transfer = _request(db, store, kitchen, rice)
    approval = _pending_approval(db, transfer.id)

    decided = approve(db, actor=ADMIN, approval_id=approval.id)
    assert decided.status == ApprovalStatus.APPROVED.value
    assert get_transfer(db, transfer.id).status == TransferStatus.COMPLETED.value

    with pytest.raises(AlreadyProcessedError):
        approve(db, actor=ADMIN, approval_id=approval.id)
    assert get_stock(db, location_id=kitchen.id, item_id=rice.id).on_hand == Decimal("10.0000")


def test_operator_cannot_decide_transfer_approval(db, stocked):
    store, kitchen, rice = stocked
    transfer = _request(db, store, kitchen, rice)
    approval = _pending_approval(db, transfer.id)

    with pytest.raises(PermissionDeniedError):
        reject(db, actor=OPERATOR, approval_id=approval.id)
    assert db.get(Approval, approval.id).status == ApprovalStatus.PENDING.value


def test_only_one_pending_approval_per_entity(db):
    request_approval(db, entity_type=ApprovalEntityType.PRF, entity_id="prf-1", requested_by="u-1")
    db.commit()

    with pytest.raises(ApprovalAlreadyExistsError):
        request_approval(db, entity_type=ApprovalEntityType.PRF, entity_id="prf-1", requested_by="u-2")


def test_purchasing_approvals_are_not_handled_here(db):
    approval = request_approval(db, entity_type=ApprovalEntityType.PO, entity_id="po-1", requested_by="u-1")
    db.commit()

    assert handler_for("PO").entity_type == ApprovalEntityType.PO
    with pytest.raises(UnsupportedApprovalError):
        approve(db, actor=ADMIN, approval_id=approval.id)
    assert db.get(Approval, approval.id).status == ApprovalStatus.PENDING.value


def test_transfer_api_approve_requires_supervisor(test_context):
    client, session_local = test_context
    db = session_local()
    try:
        seed = LedgerSeed(db)
        store = seed.location("STORE")
        kitchen = seed.location("KITCHEN")
        rice = seed.item("RICE")
        seed.period({rice.id: "2.00"})
        _receive(db, store.id, rice.id, "20", "2.00")
        store_id, kitchen_id, rice_id = store.id, kitchen.id, rice.id
    finally:
        db.close()

    res = client.post(
        "/transfers",
        json={
            "from_location_id": store_id,
            "to_location_id": kitchen_id,
            "lines": [{"item_id": rice_id, "quantity": "5"}],
        },
        headers=auth_headers(OPERATOR),
    )
    assert res.status_code == 200, res.text
    transfer = res.json()
    assert transfer["status"] == "PENDING_APPROVAL"
    assert transfer["approval_id"]

    forbidden = client.patch(f"/transfers/{transfer['id']}/approve", headers=auth_headers(OPERATOR))
    assert forbidden.status_code == 403, forbidden.text
    assert forbidden.json()["error"]["code"] == "forbidden"

    approved = client.patch(f"/transfers/{transfer['id']}/approve", headers=auth_headers(SUPERVISOR))
    assert approved.status_code == 200, approved.text
    assert approved.json()["status"] == "COMPLETED"
    assert approved.json()["approval_id"] is None

    stock = client.get(f"/locations/{kitchen_id}/stock/{rice_id}", headers=auth_headers(OPERATOR))
    assert stock.status_code == 200, stock.text
    assert Decimal(stock.json()["on_hand"]) == Decimal("5")
    assert Decimal(stock.json()["value"]) == Decimal("10.00")
