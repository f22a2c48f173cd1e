"""
Tests for DocNumberService (gapless per-period document numbering).

Validates:
- Counters start at 1 per document type and increase by one
- MONTHLY types restart on a new month, YEARLY types on a new year
- Switching the reset period inside a period keeps counting
- preview_next does not consume a number
- A rolled-back transaction does not consume a number
- update_config changes format, never the counter, and is audited
- The scanning fallback derives the next number from existing documents

Concurrency (two writers never get the same number) is covered in
tests/concurrency/test_concurrent_workflows.py.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from textile_kernel.db.unit_of_work import unit_of_work
from textile_kernel.domain.clock import DeterministicClock
from textile_kernel.domain.doc_numbers import DocType, ResetPeriod
from textile_kernel.exceptions import ValidationError
from textile_kernel.models.audit_log import AuditAction, AuditLog
from textile_kernel.models.doc_number import DocNumberConfig
from textile_kernel.services.doc_number_service import (
    DocNumberService,
    ScanningDocNumberStrategy,
)
from textile_modules.procurement.orm import GoodsReceiptModel


def _at(year, month, day=15) -> datetime:
    return datetime(year, month, day, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return DeterministicClock(_at(2025, 3, 7))


@pytest.fixture
def numbers(session, clock):
    return DocNumberService(session, clock)


class TestNextDocNumber:

    def test_first_numbers_per_type(self, numbers):
        assert numbers.next_doc_number(DocType.PO) == "PO/2025/0001"
        assert numbers.next_doc_number(DocType.GRN) == "GRN/2025/03/0001"
        assert numbers.next_doc_number(DocType.WO) == "WO/2025/0001"
        assert numbers.next_doc_number(DocType.ADJ) == "ADJ/2025/03/0001"
        assert numbers.next_doc_number(DocType.RET) == "RET/2025/03/0001"

    def test_counters_are_independent(self, numbers):
        numbers.next_doc_number(DocType.GRN)
        numbers.next_doc_number(DocType.GRN)
        assert numbers.next_doc_number(DocType.PO) == "PO/2025/0001"
        assert numbers.next_doc_number(DocType.GRN) == "GRN/2025/03/0003"

    def test_accepts_string_type(self, numbers):
        assert numbers.next_doc_number("WO") == "WO/2025/0001"

    def test_unknown_type(self, numbers):
        with pytest.raises(ValidationError):
            numbers.next_doc_number("INVOICE")

    def test_config_row_is_seeded_on_first_use(self, session, numbers):
        numbers.next_doc_number(DocType.GRN)
        config = session.execute(
            select(DocNumberConfig).where(DocNumberConfig.doc_type == "GRN")
        ).scalar_one()
        assert config.prefix == "GRN/"
        assert config.reset_period == ResetPeriod.MONTHLY.value
        assert (config.last_number, config.last_year, config.last_month) == (1, 2025, 3)


class TestPeriodRollover:

    def test_monthly_resets_on_new_month(self, numbers, clock):
        for _ in range(3):
            numbers.next_doc_number(DocType.GRN)
        clock.set_time(_at(2025, 4, 1))
        assert numbers.next_doc_number(DocType.GRN) == "GRN/2025/04/0001"

    def test_yearly_ignores_month_change(self, numbers, clock):
        numbers.next_doc_number(DocType.PO)
        clock.set_time(_at(2025, 11, 30))
        assert numbers.next_doc_number(DocType.PO) == "PO/2025/0002"

    def test_yearly_resets_on_new_year(self, numbers, clock):
        numbers.next_doc_number(DocType.PO)
        numbers.next_doc_number(DocType.PO)
        clock.set_time(_at(2026, 1, 2))
        assert numbers.next_doc_number(DocType.PO) == "PO/2026/0001"

    def test_same_month_of_next_year_is_a_new_period(self, numbers, clock):
        numbers.next_doc_number(DocType.GRN)
        clock.set_time(_at(2026, 3, 7))
        assert numbers.next_doc_number(DocType.GRN) == "GRN/2026/03/0001"

    def test_never_reset(self, numbers, clock, test_actor_id):
        numbers.update_config(DocType.RET, test_actor_id, reset_period=ResetPeriod.NEVER)
        assert numbers.next_doc_number(DocType.RET) == "RET/0001"
        clock.set_time(_at(2027, 8, 1))
        assert numbers.next_doc_number(DocType.RET) == "RET/0002"


class TestResetPeriodChange:

    def test_toggle_within_year_does_not_reissue(self, numbers, test_actor_id):
        issued = [numbers.next_doc_number(DocType.PO) for _ in range(3)]
        assert issued == ["PO/2025/0001", "PO/2025/0002", "PO/2025/0003"]

        numbers.update_config(DocType.PO, test_actor_id, reset_period=ResetPeriod.MONTHLY)
        numbers.update_config(DocType.PO, test_actor_id, reset_period=ResetPeriod.YEARLY)

        assert numbers.preview_next(DocType.PO) == "PO/2025/0004"
        assert numbers.next_doc_number(DocType.PO) == "PO/2025/0004"

    def test_switch_to_monthly_in_same_month_keeps_counting(self, numbers, test_actor_id):
        numbers.next_doc_number(DocType.PO)
        numbers.next_doc_number(DocType.PO)
        numbers.update_config(DocType.PO, test_actor_id, reset_period=ResetPeriod.MONTHLY)

        assert numbers.next_doc_number(DocType.PO) == "PO/2025/03/0003"

        numbers.update_config(DocType.PO, test_actor_id, reset_period=ResetPeriod.YEARLY)
        assert numbers.next_doc_number(DocType.PO) == "PO/2025/0004"

    def test_switch_to_monthly_in_later_month_restarts(self, numbers, clock, test_actor_id):
        numbers.next_doc_number(DocType.WO)
        clock.set_time(_at(2025, 5, 2))
        numbers.update_config(DocType.WO, test_actor_id, reset_period=ResetPeriod.MONTHLY)

        assert numbers.next_doc_number(DocType.WO) == "WO/2025/05/0001"


class TestPreview:

    def test_preview_does_not_consume(self, numbers):
        assert numbers.preview_next(DocType.WO) == "WO/2025/0001"
        assert numbers.preview_next(DocType.WO) == "WO/2025/0001"
        assert numbers.next_doc_number(DocType.WO) == "WO/2025/0001"
        assert numbers.preview_next(DocType.WO) == "WO/2025/0002"

    def test_preview_sees_rollover(self, numbers, clock):
        numbers.next_doc_number(DocType.GRN)
        clock.set_time(_at(2025, 4, 1))
        assert numbers.preview_next(DocType.GRN) == "GRN/2025/04/0001"


class TestRollbackLeavesNoGap:

    def test_failed_transaction_does_not_consume_number(self, session, numbers):
        with unit_of_work(session, "first"):
            assert numbers.next_doc_number(DocType.ADJ) == "ADJ/2025/03/0001"

        with pytest.raises(RuntimeError):
            with unit_of_work(session, "failing"):
                assert numbers.next_doc_number(DocType.ADJ) == "ADJ/2025/03/0002"
                raise RuntimeError("boom")

        with unit_of_work(session, "retry"):
            assert numbers.next_doc_number(DocType.ADJ) == "ADJ/2025/03/0002"


class TestConfigManagement:

    def test_seed_defaults_creates_every_type_once(self, numbers):
        created = numbers.seed_defaults()
        assert {c.doc_type for c in created} == {t.value for t in DocType}
        assert numbers.seed_defaults() == []
        assert len(numbers.list_configs()) == len(DocType)

    def test_update_prefix_and_padding(self, session, numbers, test_actor_id):
        numbers.next_doc_number(DocType.PO)
        config = numbers.update_config(DocType.PO, test_actor_id, prefix="POX", padding=6)

        assert config.prefix == "POX/"
        assert config.last_number == 1
        assert numbers.next_doc_number(DocType.PO) == "POX/2025/000002"

        entry = session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.DOC_NUMBER_CONFIG_CHANGED.value)
        ).scalar_one()
        assert entry.before["prefix"] == "PO/"
        assert entry.after["prefix"] == "POX/"
        assert entry.actor_id == test_actor_id

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"prefix": ""},
            {"prefix": "WAY-TOO-LONG"},
            {"padding": 0},
            {"padding": 11},
            {"reset_period": "WEEKLY"},
        ],
    )
    def test_invalid_updates(self, numbers, test_actor_id, kwargs):
        with pytest.raises(ValidationError):
            numbers.update_config(DocType.PO, test_actor_id, **kwargs)


class TestScanningStrategy:

    def test_next_after_highest_existing(self, session, deterministic_clock, stock_in, fabric):
        stock_in(fabric, "1", "1")
        stock_in(fabric, "1", "1")

        strategy = ScanningDocNumberStrategy(session, deterministic_clock)
        number = strategy.next_doc_number(DocType.GRN, GoodsReceiptModel.doc_number)
        assert number == "GRN/2025/01/0003"

    def test_empty_period_starts_at_one(self, session, clock):
        strategy = ScanningDocNumberStrategy(session, clock)
        assert strategy.next_doc_number(DocType.GRN, GoodsReceiptModel.doc_number) == (
            "GRN/2025/03/0001"
        )
