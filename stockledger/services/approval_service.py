from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.core.errors import AlreadyProcessedError, ApprovalAlreadyExistsError, NotFoundError
from stockledger.core.id_utils import generate_shortuuid
from stockledger.models.approval import Approval
from stockledger.models.enums import ApprovalEntityType, ApprovalStatus


def get_approval(db: Session, approval_id: str, *, for_update: bool = False) -> Approval:
    stmt = select(Approval).where(Approval.id == approval_id)
    if for_update:
        stmt = stmt.with_for_update()
    approval = db.execute(stmt).scalar_one_or_none()
    if not approval:
        raise NotFoundError("Approval", approval_id)
    return approval


def find_pending_approval(
    db: Session,
    *,
    entity_type: ApprovalEntityType,
    entity_id: str,
    for_update: bool = False,
) -> Approval | None:
    stmt = select(Approval).where(
        Approval.entity_type == entity_type.value,
        Approval.entity_id == entity_id,
        Approval.status == ApprovalStatus.PENDING.value,
    )
    if for_update:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def request_approval(
    db: Session,
    *,
    entity_type: ApprovalEntityType,
    entity_id: str,
    requested_by: str,
    comments: str | None = None,
) -> Approval:
    existing = find_pending_approval(db, entity_type=entity_type, entity_id=entity_id)
    if existing:
        raise ApprovalAlreadyExistsError(entity_type.value, entity_id, existing.id)

    approval = Approval(
        id=generate_shortuuid(),
        entity_type=entity_type.value,
        entity_id=entity_id,
        status=ApprovalStatus.PENDING.value,
        requested_by=requested_by,
        requested_at=datetime.now(timezone.utc),
        comments=comments,
    )
    db.add(approval)
    db.flush()
    return approval


def ensure_pending(approval: Approval) -> None:
    if approval.status != ApprovalStatus.PENDING.value:
        raise AlreadyProcessedError("Approval", approval.status)


def record_decision(
    approval: Approval,
    *,
    status: ApprovalStatus,
    reviewer_id: str,
    comments: str | None = None,
    decided_at: datetime | None = None,
) -> Approval:
    ensure_pending(approval)
    approval.status = status.value
    approval.reviewed_by = reviewer_id
    approval.reviewed_at = decided_at or datetime.now(timezone.utc)
    if comments is not None:
        approval.comments = comments
    return approval
