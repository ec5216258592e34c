import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.core.errors import NotFoundError, ValidationError
from stockledger.core.id_utils import generate_shortuuid
from stockledger.core.money import ZERO_MONEY, line_value, to_decimal, to_money, to_qty
from stockledger.core.observability import log_event
from stockledger.core.security_current import Actor
from stockledger.db.session import unit_of_work
from stockledger.models.enums import CostCentre
from stockledger.models.issue import Issue, IssueLine
from stockledger.services.audit_service import log_audit_event
from stockledger.services.catalog_service import get_active_item, get_active_location
from stockledger.services.document_numbering import next_issue_number
from stockledger.services.period_service import get_open_period_for_location
from stockledger.services.stock_ledger_service import decrease_stock, ensure_available

logger = logging.getLogger("stockledger.issue")


@dataclass(frozen=True)
class IssueLineInput:
    item_id: str
    quantity: Decimal


def get_issue(db: Session, issue_id: str) -> Issue:
    issue = db.get(Issue, issue_id)
    if not issue:
        raise NotFoundError("Issue", issue_id)
    return issue


def issue_lines(db: Session, issue_id: str) -> list[IssueLine]:
    return db.execute(select(IssueLine).where(IssueLine.issue_id == issue_id)).scalars().all()


def post_issue(
    db: Session,
    *,
    actor: Actor,
    location_id: str,
    issue_date: date,
    lines: list[IssueLineInput],
    cost_centre: CostCentre = CostCentre.FOOD,
    notes: str | None = None,
) -> Issue:
    """Post a consumption. All lines are checked before any is applied; WAC is left alone."""
    if not lines:
        raise ValidationError("At least one line is required")
    for index, line in enumerate(lines):
        if to_decimal(line.quantity) <= 0:
            raise ValidationError("Quantity must be positive", details=[{"line": index, "item_id": line.item_id}])

    with unit_of_work(db):
        get_active_location(db, location_id)
        period, _ = get_open_period_for_location(db, location_id)
        for line in lines:
            get_active_item(db, line.item_id)

        ensure_available(db, location_id=location_id, lines=[(line.item_id, line.quantity) for line in lines])

        issue = Issue(
            id=generate_shortuuid(),
            issue_no=next_issue_number(db, issue_date),
            period_id=period.id,
            location_id=location_id,
            issue_date=issue_date,
            cost_centre=cost_centre.value,
            notes=notes,
            posted_by=actor.user_id,
            posted_at=datetime.now(timezone.utc),
        )
        db.add(issue)

        total = ZERO_MONEY
        for line in lines:
            quantity = to_qty(line.quantity)
            # Re-validated under the row lock; a concurrent issue may have drained the row.
            wac_at_issue = decrease_stock(db, location_id=location_id, item_id=line.item_id, quantity=quantity)
            value = line_value(quantity, wac_at_issue)
            db.add(
                IssueLine(
                    id=generate_shortuuid(),
                    issue_id=issue.id,
                    item_id=line.item_id,
                    quantity=quantity,
                    wac_at_issue=wac_at_issue,
                    line_value=value,
                )
            )
            total += value
        issue.total_value = to_money(total)

        log_audit_event(
            db,
            actor_user_id=actor.user_id,
            action="issue.post",
            target_type="issue",
            target_id=issue.id,
            metadata_json={
                "issue_no": issue.issue_no,
                "period_id": period.id,
                "total_value": str(issue.total_value),
                "lines": len(lines),
            },
        )

    log_event(logger, "issue.posted", issue_id=issue.id, issue_no=issue.issue_no, total_value=issue.total_value)
    return issue
