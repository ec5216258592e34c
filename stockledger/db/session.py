from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from stockledger.core.config import settings
from stockledger.core.errors import TransactionTimeoutError

engine_kwargs: dict[str, object] = {
    # Detect and recover from stale pooled connections.
    "pool_pre_ping": True,
}

if not settings.database_url.lower().startswith("sqlite"):
    engine_kwargs.update(
        {
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
            "pool_timeout": settings.db_pool_timeout_seconds,
            "pool_recycle": settings.db_pool_recycle_seconds,
        }
    )

engine = create_engine(settings.database_url, **engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# lock_not_available, query_canceled
_TIMEOUT_SQLSTATES = {"55P03", "57014"}


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Commit everything written inside the block once, or roll all of it back."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def apply_transaction_timeouts(db: Session, *, lock_timeout_seconds: int, statement_timeout_seconds: int) -> None:
    """Bound lock waits and run time for the current transaction (PostgreSQL only)."""
    bind = db.get_bind()
    if bind.dialect.name != "postgresql":
        return
    db.execute(text(f"SET LOCAL lock_timeout = '{int(lock_timeout_seconds)}s'"))
    db.execute(text(f"SET LOCAL statement_timeout = '{int(statement_timeout_seconds)}s'"))


def is_timeout_error(exc: OperationalError) -> bool:
    sqlstate = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
    return sqlstate in _TIMEOUT_SQLSTATES


def raise_if_timeout(exc: OperationalError, *, operation: str) -> None:
    if is_timeout_error(exc):
        raise TransactionTimeoutError(
            f"{operation} timed out; no changes were applied, retry the request",
        ) from exc
