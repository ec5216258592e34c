from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import InstrumentedAttribute, Session

from stockledger.models.delivery import Delivery
from stockledger.models.issue import Issue
from stockledger.models.ncr import NCR
from stockledger.models.transfer import Transfer

SEQUENCE_WIDTH = 3


def format_document_number(prefix: str, year: int, sequence: int) -> str:
    return f"{prefix}-{year}-{sequence:0{SEQUENCE_WIDTH}d}"


def parse_sequence(document_no: str) -> int:
    try:
        return int(document_no.rsplit("-", 1)[1])
    except (IndexError, ValueError):
        return 0


def _next_number(db: Session, column: InstrumentedAttribute, prefix: str, on: date | None) -> str:
    year = (on or date.today()).year
    pattern = f"{prefix}-{year}-%"
    # Pending documents from the same unit of work must be visible to the query.
    db.flush()
    numbers = db.execute(select(column).where(column.like(pattern))).scalars().all()
    # Numbers past 999 widen, so compare numerically rather than lexically.
    last = max((parse_sequence(value) for value in numbers if value), default=0)
    return format_document_number(prefix, year, last + 1)


def next_delivery_number(db: Session, on: date | None = None) -> str:
    return _next_number(db, Delivery.delivery_no, "DEL", on)


def next_issue_number(db: Session, on: date | None = None) -> str:
    return _next_number(db, Issue.issue_no, "ISS", on)


def next_transfer_number(db: Session, on: date | None = None) -> str:
    return _next_number(db, Transfer.transfer_no, "TRF", on)


def next_ncr_number(db: Session, on: date | None = None) -> str:
    return _next_number(db, NCR.ncr_no, "NCR", on)
