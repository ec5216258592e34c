"""Approve and reject, dispatched by entity type.

Each entity type has its own handler; ``handler_for`` picks one with a match
on ``ApprovalEntityType``. Purchase requisitions and purchase orders are
processed by another service, so their handlers refuse.
"""

import logging
from dataclasses import dataclass
from typing import ClassVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from stockledger.core.config import settings
from stockledger.core.errors import InvalidPeriodStatusError, UnsupportedApprovalError
from stockledger.core.observability import log_event
from stockledger.core.permissions import ensure_role
from stockledger.core.security_current import Actor
from stockledger.db.session import apply_transaction_timeouts, raise_if_timeout, unit_of_work
from stockledger.models.approval import Approval
from stockledger.models.enums import ApprovalEntityType, ApprovalStatus
from stockledger.services.approval_service import ensure_pending, get_approval, record_decision
from stockledger.services.audit_service import log_audit_event
from stockledger.services.notification_service import notify_approval_decision
from stockledger.services.period_close_service import execute_period_close
from stockledger.services.period_service import get_period, revert_close_request
from stockledger.services.transfer_service import cancel_transfer, complete_transfer, get_transfer

logger = logging.getLogger("stockledger.approval")


@dataclass(frozen=True)
class PeriodCloseHandler:
    entity_type: ClassVar[ApprovalEntityType] = ApprovalEntityType.PERIOD_CLOSE

    def label(self, db: Session, approval: Approval) -> str:
        return get_period(db, approval.entity_id).name

    def on_approve(self, db: Session, approval: Approval, reviewer: Actor) -> None:
        ensure_role(reviewer, "admin", action="approve a period close")
        execute_period_close(db, approval=approval, reviewer_id=reviewer.user_id)

    def on_reject(self, db: Session, approval: Approval, reviewer: Actor, comments: str | None) -> None:
        ensure_role(reviewer, "admin", action="reject a period close")
        period = get_period(db, approval.entity_id, for_update=True)
        if period.approval_id != approval.id:
            raise InvalidPeriodStatusError(
                current=period.status,
                expected="PENDING_CLOSE",
                action="reject a superseded close request",
            )
        revert_close_request(db, period)
        record_decision(approval, status=ApprovalStatus.REJECTED, reviewer_id=reviewer.user_id, comments=comments)


@dataclass(frozen=True)
class TransferHandler:
    entity_type: ClassVar[ApprovalEntityType] = ApprovalEntityType.TRANSFER

    def label(self, db: Session, approval: Approval) -> str:
        return get_transfer(db, approval.entity_id).transfer_no

    def on_approve(self, db: Session, approval: Approval, reviewer: Actor) -> None:
        ensure_role(reviewer, "admin", "supervisor", action="approve a transfer")
        transfer = get_transfer(db, approval.entity_id, for_update=True)
        complete_transfer(db, transfer=transfer, reviewer_id=reviewer.user_id)
        record_decision(approval, status=ApprovalStatus.APPROVED, reviewer_id=reviewer.user_id)

    def on_reject(self, db: Session, approval: Approval, reviewer: Actor, comments: str | None) -> None:
        ensure_role(reviewer, "admin", "supervisor", action="reject a transfer")
        transfer = get_transfer(db, approval.entity_id, for_update=True)
        cancel_transfer(db, transfer=transfer, reviewer_id=reviewer.user_id, comments=comments)
        record_decision(approval, status=ApprovalStatus.REJECTED, reviewer_id=reviewer.user_id, comments=comments)


@dataclass(frozen=True)
class _ExternalHandler:
    entity_type: ClassVar[ApprovalEntityType]

    def label(self, db: Session, approval: Approval) -> str:
        return approval.entity_id

    def _refuse(self) -> None:
        raise UnsupportedApprovalError(
            f"{self.entity_type.value} approvals are processed by the purchasing service",
            details=[{"entity_type": self.entity_type.value}],
        )

    def on_approve(self, db: Session, approval: Approval, reviewer: Actor) -> None:
        self._refuse()

    def on_reject(self, db: Session, approval: Approval, reviewer: Actor, comments: str | None) -> None:
        self._refuse()


@dataclass(frozen=True)
class PurchaseRequisitionHandler(_ExternalHandler):
    entity_type: ClassVar[ApprovalEntityType] = ApprovalEntityType.PRF


@dataclass(frozen=True)
class PurchaseOrderHandler(_ExternalHandler):
    entity_type: ClassVar[ApprovalEntityType] = ApprovalEntityType.PO


ApprovalHandler = PeriodCloseHandler | TransferHandler | PurchaseRequisitionHandler | PurchaseOrderHandler


def handler_for(entity_type: str | ApprovalEntityType) -> ApprovalHandler:
    match ApprovalEntityType(entity_type):
        case ApprovalEntityType.PERIOD_CLOSE:
            return PeriodCloseHandler()
        case ApprovalEntityType.TRANSFER:
            return TransferHandler()
        case ApprovalEntityType.PRF:
            return PurchaseRequisitionHandler()
        case ApprovalEntityType.PO:
            return PurchaseOrderHandler()


def _notify(approval: Approval, label: str, reviewer: Actor, comments: str | None = None) -> None:
    notify_approval_decision(
        entity_type=approval.entity_type,
        entity_label=label,
        decision=approval.status,
        reviewer_id=reviewer.user_id,
        comments=comments,
    )


def approve(db: Session, *, actor: Actor, approval_id: str) -> Approval:
    try:
        with unit_of_work(db):
            # Lock-wait and run-time limits cover the whole approval transaction.
            apply_transaction_timeouts(
                db,
                lock_timeout_seconds=settings.close_lock_timeout_seconds,
                statement_timeout_seconds=settings.close_statement_timeout_seconds,
            )
            approval = get_approval(db, approval_id, for_update=True)
            ensure_pending(approval)
            handler = handler_for(approval.entity_type)
            label = handler.label(db, approval)
            handler.on_approve(db, approval, actor)
            log_audit_event(
                db,
                actor_user_id=actor.user_id,
                action="approval.approve",
                target_type="approval",
                target_id=approval.id,
                metadata_json={"entity_type": approval.entity_type, "entity_id": approval.entity_id},
            )
    except OperationalError as exc:
        raise_if_timeout(exc, operation="Approval")
        raise

    log_event(logger, "approval.approved", approval_id=approval.id, entity_type=approval.entity_type)
    _notify(approval, label, actor)
    return approval


def reject(db: Session, *, actor: Actor, approval_id: str, comments: str | None = None) -> Approval:
    with unit_of_work(db):
        approval = get_approval(db, approval_id, for_update=True)
        ensure_pending(approval)
        handler = handler_for(approval.entity_type)
        label = handler.label(db, approval)
        handler.on_reject(db, approval, actor, comments)
        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="approval.reject",
            target_type="approval",
            target_id=approval.id,
            metadata_json={
                "entity_type": approval.entity_type,
                "entity_id": approval.entity_id,
                "comments": comments,
            },
        )

    log_event(logger, "approval.rejected", approval_id=approval.id, entity_type=approval.entity_type)
    _notify(approval, label, actor, comments)
    return approval
