"""
Unit of work for document workflows.

Every workflow (GRN, material issue, FG receipt, adjustment, vendor return,
PO/WO status changes) runs its reads and writes inside one ``unit_of_work``
block: number reservation, costing updates, ledger rows and rollups either
all commit or all roll back.  There is no compensating logic anywhere else.

Lock failures reported by the database (lock_timeout, deadlock,
serialization failure) are re-raised as ``LockTimeoutError`` so callers can
retry the whole workflow.  Nothing is retried here.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from textile_kernel.exceptions import LockTimeoutError
from textile_kernel.logging_config import get_logger

logger = get_logger("db.unit_of_work")

# lock_not_available, deadlock_detected, serialization_failure
_RETRYABLE_PGCODES = frozenset({"55P03", "40P01", "40001"})
_RETRYABLE_MESSAGES = ("database is locked", "lock timeout", "deadlock detected")


def is_lock_failure(exc: DBAPIError) -> bool:
    """True if the driver error means "someone else held the lock"."""
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in _RETRYABLE_PGCODES:
        return True
    message = str(orig if orig is not None else exc).lower()
    return any(fragment in message for fragment in _RETRYABLE_MESSAGES)


def _apply_lock_timeout(session: Session, lock_timeout_ms: int | None) -> None:
    if not lock_timeout_ms:
        return
    if session.get_bind().dialect.name != "postgresql":
        return
    # SET does not take bind parameters; the value is an int from settings
    session.execute(text(f"SET LOCAL lock_timeout = {int(lock_timeout_ms)}"))


@contextmanager
def unit_of_work(
    session: Session,
    operation: str,
    *,
    lock_timeout_ms: int | None = None,
) -> Iterator[Session]:
    """
    Commit on success, roll back everything on any exception.

    Args:
        session: Session owned by the caller.  It is committed here.
        operation: Workflow name for logs and LockTimeoutError.
        lock_timeout_ms: Per-transaction lock wait limit (PostgreSQL).

    Raises:
        LockTimeoutError: Lock wait, deadlock or serialization failure.
        Any exception raised inside the block, after rollback.
    """
    try:
        _apply_lock_timeout(session, lock_timeout_ms)
        yield session
        session.commit()
        logger.info("workflow_committed", extra={"operation": operation})
    except DBAPIError as exc:
        session.rollback()
        if is_lock_failure(exc):
            logger.warning(
                "workflow_lock_conflict",
                extra={"operation": operation, "detail": str(exc.orig)},
            )
            raise LockTimeoutError(operation, detail=str(exc.orig)) from exc
        logger.error("workflow_rolled_back", extra={"operation": operation}, exc_info=True)
        raise
    except Exception as exc:
        session.rollback()
        logger.warning(
            "workflow_rolled_back",
            extra={
                "operation": operation,
                "error_code": getattr(exc, "code", type(exc).__name__),
            },
        )
        raise
