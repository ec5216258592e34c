from datetime import date, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from stockledger.core.cache import TTLCache
from stockledger.core.errors import TransactionTimeoutError, ValidationError
from stockledger.core.money import line_value, to_money, to_qty
from stockledger.core.security import TokenValidationError, create_token, get_token_metadata
from stockledger.models.issue import Issue
from stockledger.services import approval_handlers
from stockledger.services.catalog_service import get_active_location, get_item, invalidate_item, invalidate_location
from stockledger.services.document_numbering import (
    format_document_number,
    next_issue_number,
    next_transfer_number,
    parse_sequence,
)

from support import ADMIN


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_ttl_cache_expires_entries():
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=30, clock=clock)
    cache.set("rice", "Basmati")

    clock.now += 29
    assert cache.get("rice") == "Basmati"
    assert len(cache) == 1

    clock.now += 1
    assert cache.get("rice") is None
    assert len(cache) == 0


def test_ttl_cache_loads_once_and_skips_missing_values():
    cache = TTLCache(ttl_seconds=60, clock=FakeClock())
    calls = []

    def loader():
        calls.append(1)
        return "Kitchen"

    assert cache.get_or_load("loc-1", loader) == "Kitchen"
    assert cache.get_or_load("loc-1", loader) == "Kitchen"
    assert len(calls) == 1

    assert cache.get_or_load("loc-2", lambda: None) is None
    assert len(cache) == 1

    cache.invalidate("loc-1")
    assert cache.get("loc-1") is None


def test_ttl_cache_with_zero_ttl_never_stores():
    cache = TTLCache(ttl_seconds=0, clock=FakeClock())
    cache.set("rice", "Basmati")

    assert cache.get("rice") is None


def test_document_numbers_are_zero_padded_and_parsed_numerically():
    assert format_document_number("DEL", 2026, 7) == "DEL-2026-007"
    assert format_document_number("NCR", 2026, 1234) == "NCR-2026-1234"
    assert parse_sequence("TRF-2026-042") == 42
    assert parse_sequence("garbage") == 0


def test_next_number_continues_past_999(db: Session, seed):
    kitchen = seed.location("KITCHEN")
    rice = seed.item("RICE")
    period = seed.period({rice.id: "1.00"}, open_it=False)
    for sequence in (998, 999, 1000):
        db.add(
            Issue(
                id=f"issue-{sequence}",
                issue_no=format_document_number("ISS", 2026, sequence),
                location_id=kitchen.id,
                period_id=period.id,
                issue_date=date(2026, 3, 1),
                posted_by="operator-1",
            )
        )
    db.flush()

    assert next_issue_number(db, date(2026, 3, 2)) == "ISS-2026-1001"
    assert next_issue_number(db, date(2027, 1, 2)) == "ISS-2027-001"
    assert next_transfer_number(db, date(2026, 3, 2)) == "TRF-2026-001"
    db.rollback()


def test_money_helpers_round_half_up():
    assert to_money("2.345") == to_money("2.35")
    assert to_qty("1.23456") == to_qty("1.2346")
    assert line_value(to_qty("3"), to_qty("2.3333")) == to_money("7.00")


def test_token_round_trip_and_rejections():
    token = create_token("user-1", "Supervisor", timedelta(minutes=5))
    metadata = get_token_metadata(token)

    assert metadata.subject == "user-1"
    assert metadata.role == "supervisor"

    with pytest.raises(TokenValidationError):
        get_token_metadata(create_token("user-1", "admin", timedelta(minutes=-1)))
    with pytest.raises(TokenValidationError):
        get_token_metadata(create_token("user-1", "admin", timedelta(minutes=5), token_type="refresh"))
    with pytest.raises(TokenValidationError):
        get_token_metadata("not-a-token")


def test_catalog_lookups_are_cached_until_invalidated(db: Session, seed):
    rice = seed.item("RICE", "Rice")
    assert get_item(db, rice.id).name == "Rice"

    rice.name = "Basmati Rice"
    db.commit()
    assert get_item(db, rice.id).name == "Rice"

    invalidate_item(rice.id)
    assert get_item(db, rice.id).name == "Basmati Rice"

    kitchen = seed.location("KITCHEN")
    assert get_active_location(db, kitchen.id).is_active is True
    kitchen.is_active = False
    db.commit()
    invalidate_location(kitchen.id)
    with pytest.raises(ValidationError):
        get_active_location(db, kitchen.id)


class _LockNotAvailable(Exception):
    pgcode = "55P03"


def test_lock_timeout_during_approval_is_retryable_conflict(db: Session, monkeypatch):
    def timed_out(*args, **kwargs):
        raise OperationalError("SELECT ... FOR UPDATE", {}, _LockNotAvailable())

    monkeypatch.setattr(approval_handlers, "get_approval", timed_out)

    with pytest.raises(TransactionTimeoutError) as exc_info:
        approval_handlers.approve(db, actor=ADMIN, approval_id="approval-1")

    assert exc_info.value.code == "transaction_timeout"
    assert exc_info.value.status_code == 409


def test_other_operational_errors_propagate(db: Session, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, RuntimeError("connection reset"))

    monkeypatch.setattr(approval_handlers, "get_approval", broken)

    with pytest.raises(OperationalError):
        approval_handlers.approve(db, actor=ADMIN, approval_id="approval-1")
