"""
Transaction boundary tests.

A unit of work commits on success, rolls back on any exception and maps
driver lock failures to LockTimeoutError.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from textile_kernel.db.unit_of_work import is_lock_failure, unit_of_work
from textile_kernel.exceptions import LockTimeoutError, ValidationError
from textile_kernel.models.inventory import InventoryValue


class _PgError(Exception):
    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


def _driver_error(message, pgcode=None):
    orig = _PgError(message, pgcode) if pgcode else Exception(message)
    return OperationalError("UPDATE inventory_values ...", {}, orig)


@pytest.mark.parametrize(
    "message, pgcode",
    [
        ("canceling statement due to lock timeout", "55P03"),
        ("deadlock detected", "40P01"),
        ("could not serialize access", "40001"),
        ("database is locked", None),
    ],
)
def test_lock_failures_are_recognised(message, pgcode):
    assert is_lock_failure(_driver_error(message, pgcode))


def test_other_driver_errors_are_not_lock_failures():
    assert not is_lock_failure(_driver_error("no such table: items"))


def test_commit_on_success(session, fabric):
    with unit_of_work(session, "touch_item"):
        fabric.name = "Cotton Combed 30s Bleached"

    session.expire_all()
    assert session.get(type(fabric), fabric.id).name == "Cotton Combed 30s Bleached"


def test_rollback_on_domain_error(session, fabric):
    with pytest.raises(ValidationError):
        with unit_of_work(session, "bad_adjustment"):
            row = session.get(InventoryValue, fabric.inventory_value.id)
            row.qty_on_hand = Decimal("99")
            session.flush()
            raise ValidationError("qty must be positive", "qty")

    session.expire_all()
    assert session.get(InventoryValue, fabric.inventory_value.id).qty_on_hand == Decimal("0")


def test_lock_failure_becomes_lock_timeout(session):
    with pytest.raises(LockTimeoutError) as exc_info:
        with unit_of_work(session, "issue_materials"):
            raise _driver_error("canceling statement due to lock timeout", "55P03")

    assert exc_info.value.operation == "issue_materials"
    assert exc_info.value.retryable


def test_non_lock_driver_error_propagates(session):
    with pytest.raises(OperationalError):
        with unit_of_work(session, "receive_goods"):
            raise _driver_error("disk I/O error")
