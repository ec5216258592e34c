"""Inter-location stock movements.

Requesting a transfer freezes each line's cost and raises a TRANSFER approval
without touching the ledger. Approval re-checks the source and moves the stock
at the frozen cost; a shortfall at that point leaves the transfer pending.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.core.errors import AlreadyProcessedError, InvalidStatusError, NotFoundError, ValidationError
from stockledger.core.id_utils import generate_shortuuid
from stockledger.core.money import ZERO_MONEY, line_value, to_decimal, to_money, to_qty
from stockledger.core.observability import log_event
from stockledger.core.security_current import Actor
from stockledger.db.session import unit_of_work
from stockledger.models.approval import Approval
from stockledger.models.enums import ApprovalEntityType, ApprovalStatus, TransferStatus
from stockledger.models.transfer import Transfer, TransferLine
from stockledger.services.approval_service import find_pending_approval, record_decision, request_approval
from stockledger.services.audit_service import log_audit_event
from stockledger.services.catalog_service import get_active_item, get_active_location
from stockledger.services.document_numbering import next_transfer_number
from stockledger.services.notification_service import notify_approval_decision
from stockledger.services.stock_ledger_service import ensure_available, get_stock, move_stock

logger = logging.getLogger("stockledger.transfer")


@dataclass(frozen=True)
class TransferLineInput:
    item_id: str
    quantity: Decimal


def get_transfer(db: Session, transfer_id: str, *, for_update: bool = False) -> Transfer:
    stmt = select(Transfer).where(Transfer.id == transfer_id)
    if for_update:
        stmt = stmt.with_for_update()
    transfer = db.execute(stmt).scalar_one_or_none()
    if not transfer:
        raise NotFoundError("Transfer", transfer_id)
    return transfer


def transfer_lines(db: Session, transfer_id: str) -> list[TransferLine]:
    return db.execute(select(TransferLine).where(TransferLine.transfer_id == transfer_id)).scalars().all()


def _ensure_pending(transfer: Transfer) -> None:
    if transfer.status in {TransferStatus.COMPLETED.value, TransferStatus.REJECTED.value}:
        raise AlreadyProcessedError("Transfer", transfer.status)
    if transfer.status != TransferStatus.PENDING_APPROVAL.value:
        raise InvalidStatusError(
            f"Transfer is {transfer.status}, expected PENDING_APPROVAL",
            code="transfer_not_pending",
            details=[{"transfer_id": transfer.id, "status": transfer.status}],
        )


def request_transfer(
    db: Session,
    *,
    actor: Actor,
    from_location_id: str,
    to_location_id: str,
    lines: list[TransferLineInput],
    request_date: date | None = None,
    notes: str | None = None,
) -> Transfer:
    if from_location_id == to_location_id:
        raise ValidationError("Source and destination locations must be different", code="same_location_transfer")
    if not lines:
        raise ValidationError("At least one line is required")
    for index, line in enumerate(lines):
        if to_decimal(line.quantity) <= 0:
            raise ValidationError("Quantity must be positive", details=[{"line": index, "item_id": line.item_id}])

    with unit_of_work(db):
        get_active_location(db, from_location_id)
        get_active_location(db, to_location_id)
        for line in lines:
            get_active_item(db, line.item_id)
        ensure_available(db, location_id=from_location_id, lines=[(line.item_id, line.quantity) for line in lines])

        requested_on = request_date or date.today()
        transfer = Transfer(
            id=generate_shortuuid(),
            transfer_no=next_transfer_number(db, requested_on),
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            status=TransferStatus.PENDING_APPROVAL.value,
            requested_by=actor.user_id,
            request_date=requested_on,
            notes=notes,
        )
        db.add(transfer)

        total = ZERO_MONEY
        for line in lines:
            quantity = to_qty(line.quantity)
            wac = get_stock(db, location_id=from_location_id, item_id=line.item_id).wac
            value = line_value(quantity, wac)
            db.add(
                TransferLine(
                    id=generate_shortuuid(),
                    transfer_id=transfer.id,
                    item_id=line.item_id,
                    quantity=quantity,
                    wac_at_transfer=wac,
                    line_value=value,
                )
            )
            total += value
        transfer.total_value = to_money(total)
        db.flush()

        approval = request_approval(
            db,
            entity_type=ApprovalEntityType.TRANSFER,
            entity_id=transfer.id,
            requested_by=actor.user_id,
        )
        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="transfer.request",
            target_type="transfer",
            target_id=transfer.id,
            metadata_json={
                "transfer_no": transfer.transfer_no,
                "approval_id": approval.id,
                "total_value": str(transfer.total_value),
            },
        )

    log_event(logger, "transfer.requested", transfer_id=transfer.id, transfer_no=transfer.transfer_no)
    return transfer


def complete_transfer(db: Session, *, transfer: Transfer, reviewer_id: str) -> Transfer:
    """Move the stock at the frozen costs. The caller owns the transaction."""
    _ensure_pending(transfer)
    lines = transfer_lines(db, transfer.id)
    ensure_available(
        db,
        location_id=transfer.from_location_id,
        lines=[(line.item_id, line.quantity) for line in lines],
    )
    for line in lines:
        move_stock(
            db,
            from_location_id=transfer.from_location_id,
            to_location_id=transfer.to_location_id,
            item_id=line.item_id,
            quantity=to_decimal(line.quantity),
            unit_cost=to_decimal(line.wac_at_transfer),
        )

    now = datetime.now(timezone.utc)
    transfer.status = TransferStatus.COMPLETED.value
    transfer.approved_by = reviewer_id
    transfer.approval_date = now
    transfer.transfer_date = now.date()
    log_audit_event(
        db,
        actor_user_id=reviewer_id,
        action="transfer.complete",
        target_type="transfer",
        target_id=transfer.id,
        metadata_json={"transfer_no": transfer.transfer_no, "total_value": str(transfer.total_value)},
    )
    return transfer


def cancel_transfer(db: Session, *, transfer: Transfer, reviewer_id: str, comments: str | None) -> Transfer:
    _ensure_pending(transfer)
    transfer.status = TransferStatus.REJECTED.value
    transfer.approved_by = reviewer_id
    transfer.approval_date = datetime.now(timezone.utc)
    log_audit_event(
        db,
        actor_user_id=reviewer_id,
        action="transfer.reject",
        target_type="transfer",
        target_id=transfer.id,
        metadata_json={"transfer_no": transfer.transfer_no, "comments": comments},
    )
    return transfer


def _pending_approval(db: Session, transfer: Transfer) -> Approval | None:
    return find_pending_approval(
        db,
        entity_type=ApprovalEntityType.TRANSFER,
        entity_id=transfer.id,
        for_update=True,
    )


def approve_transfer(db: Session, *, actor: Actor, transfer_id: str) -> Transfer:
    with unit_of_work(db):
        transfer = get_transfer(db, transfer_id, for_update=True)
        _ensure_pending(transfer)
        approval = _pending_approval(db, transfer)
        complete_transfer(db, transfer=transfer, reviewer_id=actor.user_id)
        if approval:
            record_decision(approval, status=ApprovalStatus.APPROVED, reviewer_id=actor.user_id)

    log_event(logger, "transfer.completed", transfer_id=transfer.id, transfer_no=transfer.transfer_no)
    notify_approval_decision(
        entity_type=ApprovalEntityType.TRANSFER.value,
        entity_label=transfer.transfer_no,
        decision=ApprovalStatus.APPROVED.value,
        reviewer_id=actor.user_id,
    )
    return transfer


def reject_transfer(db: Session, *, actor: Actor, transfer_id: str, comments: str | None = None) -> Transfer:
    with unit_of_work(db):
        transfer = get_transfer(db, transfer_id, for_update=True)
        _ensure_pending(transfer)
        approval = _pending_approval(db, transfer)
        cancel_transfer(db, transfer=transfer, reviewer_id=actor.user_id, comments=comments)
        if approval:
            record_decision(
                approval,
                status=ApprovalStatus.REJECTED,
                reviewer_id=actor.user_id,
                comments=comments,
            )

    log_event(logger, "transfer.rejected", transfer_id=transfer.id, transfer_no=transfer.transfer_no)
    notify_approval_decision(
        entity_type=ApprovalEntityType.TRANSFER.value,
        entity_label=transfer.transfer_no,
        decision=ApprovalStatus.REJECTED.value,
        reviewer_id=actor.user_id,
        comments=comments,
    )
    return transfer
