from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.core.errors import InsufficientStockError
from stockledger.core.permissions import require_roles
from stockledger.core.security_current import Actor
from stockledger.models.issue import Issue
from stockledger.schemas.issue import IssueCreateIn, IssueLineOut, IssueOut
from stockledger.services.issue_service import IssueLineInput, get_issue, issue_lines, post_issue

router = APIRouter(prefix="/issues", tags=["issues"])


def _issue_out(db: Session, issue: Issue) -> IssueOut:
    return IssueOut(
        id=issue.id,
        issue_no=issue.issue_no,
        period_id=issue.period_id,
        location_id=issue.location_id,
        issue_date=issue.issue_date,
        cost_centre=issue.cost_centre,
        total_value=issue.total_value,
        notes=issue.notes,
        posted_by=issue.posted_by,
        posted_at=issue.posted_at,
        lines=[
            IssueLineOut(
                id=line.id,
                item_id=line.item_id,
                quantity=line.quantity,
                wac_at_issue=line.wac_at_issue,
                line_value=line.line_value,
            )
            for line in issue_lines(db, issue.id)
        ],
    )


_ISSUE_CONFLICTS = (
    InsufficientStockError(
        [
            {
                "item_id": "item-id",
                "item_code": "RICE",
                "item_name": "Basmati Rice",
                "requested": "15.0000",
                "available": "10.0000",
                "shortfall": "5.0000",
            }
        ]
    ),
)


@router.post(
    "",
    response_model=IssueOut,
    summary="Post a stock issue",
    responses=error_responses(401, 403, 404, 409, 422, 500, conflicts=_ISSUE_CONFLICTS),
)
def post_issue_endpoint(
    payload: IssueCreateIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor", "operator")),
):
    issue = post_issue(
        db,
        actor=actor,
        location_id=payload.location_id,
        issue_date=payload.issue_date,
        cost_centre=payload.cost_centre,
        notes=payload.notes,
        lines=[IssueLineInput(item_id=line.item_id, quantity=line.quantity) for line in payload.lines],
    )
    return _issue_out(db, issue)


@router.get(
    "/{issue_id}",
    response_model=IssueOut,
    summary="Get issue",
    responses=error_responses(401, 403, 404, 500),
)
def get_issue_endpoint(
    issue_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles("admin", "supervisor", "operator")),
):
    return _issue_out(db, get_issue(db, issue_id))
