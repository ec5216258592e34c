from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.core.permissions import require_roles
from stockledger.core.security_current import Actor
from stockledger.models.enums import ApprovalEntityType
from stockledger.models.transfer import Transfer
from stockledger.schemas.transfer import TransferCreateIn, TransferLineOut, TransferOut, TransferRejectIn
from stockledger.services.approval_service import find_pending_approval
from stockledger.services.transfer_service import (
    TransferLineInput,
    approve_transfer,
    get_transfer,
    reject_transfer,
    request_transfer,
    transfer_lines,
)

router = APIRouter(prefix="/transfers", tags=["transfers"])


def _transfer_out(db: Session, transfer: Transfer) -> TransferOut:
    pending = find_pending_approval(db, entity_type=ApprovalEntityType.TRANSFER, entity_id=transfer.id)
    return TransferOut(
        id=transfer.id,
        transfer_no=transfer.transfer_no,
        from_location_id=transfer.from_location_id,
        to_location_id=transfer.to_location_id,
        status=transfer.status,
        requested_by=transfer.requested_by,
        approved_by=transfer.approved_by,
        request_date=transfer.request_date,
        approval_date=transfer.approval_date,
        transfer_date=transfer.transfer_date,
        total_value=transfer.total_value,
        notes=transfer.notes,
        approval_id=pending.id if pending else None,
        lines=[
            TransferLineOut(
                id=line.id,
                item_id=line.item_id,
                quantity=line.quantity,
                wac_at_transfer=line.wac_at_transfer,
                line_value=line.line_value,
            )
            for line in transfer_lines(db, transfer.id)
        ],
    )


@router.post(
    "",
    response_model=TransferOut,
    summary="Request a transfer",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def request_transfer_endpoint(
    payload: TransferCreateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor", "operator")),
):
    transfer = request_transfer(
        db,
        actor=actor,
        from_location_id=payload.from_location_id,
        to_location_id=payload.to_location_id,
        request_date=payload.request_date,
        notes=payload.notes,
        lines=[TransferLineInput(item_id=line.item_id, quantity=line.quantity) for line in payload.lines],
    )
    return _transfer_out(db, transfer)


@router.get(
    "/{transfer_id}",
    response_model=TransferOut,
    summary="Get transfer",
    responses=error_responses(401, 403, 404, 500),
)
def get_transfer_endpoint(
    transfer_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor", "operator")),
):
    return _transfer_out(db, get_transfer(db, transfer_id))


@router.patch(
    "/{transfer_id}/approve",
    response_model=TransferOut,
    summary="Approve a pending transfer and move the stock",
    responses=error_responses(401, 403, 404, 409, 500),
)
def approve_transfer_endpoint(
    transfer_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor")),
):
    transfer = approve_transfer(db, actor=actor, transfer_id=transfer_id)
    return _transfer_out(db, transfer)


@router.patch(
    "/{transfer_id}/reject",
    response_model=TransferOut,
    summary="Reject a pending transfer",
    responses=error_responses(401, 403, 404, 409, 422, 500),
)
def reject_transfer_endpoint(
    transfer_id: str,
    payload: TransferRejectIn | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor")),
):
    transfer = reject_transfer(
        db,
        actor=actor,
        transfer_id=transfer_id,
        comments=payload.comments if payload else None,
    )
    return _transfer_out(db, transfer)
