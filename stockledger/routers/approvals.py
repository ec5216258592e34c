from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.core.permissions import require_roles
from stockledger.core.security_current import Actor
from stockledger.models.approval import Approval
from stockledger.schemas.approval import ApprovalOut, ApprovalRejectIn
from stockledger.services.approval_handlers import approve, reject
from stockledger.services.approval_service import get_approval

router = APIRouter(prefix="/approvals", tags=["approvals"])


def _approval_out(approval: Approval) -> ApprovalOut:
    return ApprovalOut(
        id=approval.id,
        entity_type=approval.entity_type,
        entity_id=approval.entity_id,
        status=approval.status,
        requested_by=approval.requested_by,
        reviewed_by=approval.reviewed_by,
        requested_at=approval.requested_at,
        reviewed_at=approval.reviewed_at,
        comments=approval.comments,
    )


@router.get(
    "/{approval_id}",
    response_model=ApprovalOut,
    summary="Get approval",
    responses=error_responses(401, 403, 404, 500),
)
def get_approval_endpoint(
    approval_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor")),
):
    return _approval_out(get_approval(db, approval_id))


@router.patch(
    "/{approval_id}/approve",
    response_model=ApprovalOut,
    summary="Approve a pending request",
    responses=error_responses(401, 403, 404, 409, 500, 501),
)
def approve_endpoint(
    approval_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor")),
):
    return _approval_out(approve(db, actor=actor, approval_id=approval_id))


@router.patch(
    "/{approval_id}/reject",
    response_model=ApprovalOut,
    summary="Reject a pending request",
    responses=error_responses(401, 403, 404, 409, 422, 500, 501),
)
def reject_endpoint(
    approval_id: str,
    payload: ApprovalRejectIn | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor")),
):
    approval = reject(
        db,
        actor=actor,
        approval_id=approval_id,
        comments=payload.comments if payload else None,
    )
    return _approval_out(approval)
