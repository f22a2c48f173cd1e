"""
Stock adjustment tests.

Adjustments are step-up gated, move stock at the current average cost and
leave an audit entry with before/after quantities and values.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from textile_kernel.exceptions import (
    InsufficientStockError,
    StepUpRateLimitedError,
    StepUpRejectedError,
    ValidationError,
)
from textile_kernel.models.audit_log import AuditAction, AuditLog
from textile_kernel.models.inventory import InventoryValue, StockMovement
from textile_modules.inventory.models import AdjustmentType


@pytest.fixture
def fabric_in_stock(stock_in, fabric):
    stock_in(fabric, "100", "10")
    return fabric


@pytest.fixture
def adjust(inventory_service, test_actor_id, valid_pin):
    def _adjust(item, adjustment_type, qty, reason="Cycle count rack A", credential=valid_pin):
        return inventory_service.adjust_stock(
            item_id=item.id,
            adjustment_type=adjustment_type,
            qty=qty,
            reason=reason,
            actor_id=test_actor_id,
            credential=credential,
        )

    return _adjust


def _value(session, item):
    return session.execute(
        select(InventoryValue).where(InventoryValue.item_id == item.id)
    ).scalar_one()


def _adjustment_movements(session, item):
    return session.execute(
        select(StockMovement).where(
            StockMovement.item_id == item.id, StockMovement.movement_type == "ADJUSTMENT"
        )
    ).scalars().all()


class TestAdjustStock:

    def test_increase_keeps_average(self, session, adjust, fabric_in_stock):
        adjustment = adjust(fabric_in_stock, AdjustmentType.INCREASE, "5")

        assert adjustment.doc_number == "ADJ/2025/01/0001"
        assert adjustment.qty_change == Decimal("5")
        assert (adjustment.prev_qty, adjustment.new_qty) == (Decimal("100"), Decimal("105"))
        assert adjustment.new_avg_cost == Decimal("10")
        value = _value(session, fabric_in_stock)
        assert value.total_value == Decimal("1050")

    def test_decrease_is_signed(self, session, adjust, fabric_in_stock):
        adjustment = adjust(fabric_in_stock, "DECREASE", "3.5", reason="Water damage rack B")

        assert adjustment.qty_change == Decimal("-3.5")
        movement = _adjustment_movements(session, fabric_in_stock)[0]
        assert movement.qty == Decimal("-3.5")
        assert movement.total_cost == Decimal("-35")
        assert movement.balance_qty == Decimal("96.5")

    def test_decrease_beyond_stock(self, session, adjust, fabric_in_stock):
        with pytest.raises(InsufficientStockError):
            adjust(fabric_in_stock, AdjustmentType.DECREASE, "100.5")
        assert _value(session, fabric_in_stock).qty_on_hand == Decimal("100")

    def test_audit_entry(self, session, adjust, fabric_in_stock, test_actor_id):
        adjustment = adjust(fabric_in_stock, AdjustmentType.DECREASE, "20")

        entry = session.execute(select(AuditLog)).scalar_one()
        assert entry.action == AuditAction.STOCK_ADJUSTMENT.value
        assert entry.entity_id == adjustment.id
        assert entry.actor_id == test_actor_id
        assert Decimal(entry.before["qty"]) == Decimal("100")
        assert Decimal(entry.before["value"]) == Decimal("1000")
        assert Decimal(entry.after["qty"]) == Decimal("80")
        assert Decimal(entry.after["value"]) == Decimal("800")
        assert entry.reason == "Cycle count rack A"
        assert entry.context["doc_number"] == adjustment.doc_number

    def test_get_adjustment(self, inventory_service, adjust, fabric_in_stock):
        adjustment = adjust(fabric_in_stock, AdjustmentType.INCREASE, "1")
        assert inventory_service.get_adjustment(adjustment.id) == adjustment


class TestStepUp:

    def test_rejected_credential_writes_nothing(self, session, adjust, fabric_in_stock):
        with pytest.raises(StepUpRejectedError):
            adjust(fabric_in_stock, AdjustmentType.DECREASE, "1", credential="999999")

        assert _adjustment_movements(session, fabric_in_stock) == []
        assert session.execute(select(AuditLog)).scalars().all() == []
        assert adjust(fabric_in_stock, AdjustmentType.DECREASE, "1").doc_number == "ADJ/2025/01/0001"

    def test_rate_limited(self, adjust, fabric_in_stock, valid_pin):
        for _ in range(3):
            with pytest.raises(StepUpRejectedError):
                adjust(fabric_in_stock, AdjustmentType.INCREASE, "1", credential="bad")
        with pytest.raises(StepUpRateLimitedError):
            adjust(fabric_in_stock, AdjustmentType.INCREASE, "1", credential=valid_pin)


@pytest.mark.parametrize(
    "adjustment_type, qty, reason",
    [
        ("INCREASE", "1", "oops"),
        ("INCREASE", "0", "Cycle count"),
        ("TRANSFER", "1", "Cycle count"),
    ],
)
def test_invalid_input(adjust, fabric_in_stock, adjustment_type, qty, reason):
    with pytest.raises(ValidationError):
        adjust(fabric_in_stock, adjustment_type, qty, reason=reason)
