"""
Costing -- pure moving-average cost transitions.

Responsibility:
    Computes the next (qty_on_hand, avg_cost, total_value) state of a stock
    item for each kind of stock change, and replays a ledger of movements
    back into a state.  The persistence side lives in
    ``textile_kernel.services.costing_service``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Receipt: weighted average over previous stock and the incoming lot.
    - Consumption: leaves at the current average; average is not recomputed.
    - Zero stock resets avg_cost (and total_value) to zero, so the next
      receipt's average is simply its own unit cost.
    - total_value is always ``quantize(qty_on_hand * avg_cost)``.
    - ``replay`` applies exactly the same functions as the live path, so
      replaying the ledger reproduces the stored state bit for bit.

Failure modes:
    - InsufficientStockError when consumption exceeds qty_on_hand.
    - ValidationError on non-positive quantity or negative unit cost.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable

from textile_kernel.domain.values import (
    ZERO,
    exact_context,
    quantize_value,
    safe_divide,
    to_number,
)
from textile_kernel.exceptions import InsufficientStockError, ValidationError


class CostOperation(str, Enum):
    """Kind of costing transition."""

    RECEIPT = "receipt"
    CONSUMPTION = "consumption"
    INCREASE_AT_AVERAGE = "increase_at_average"
    DECREASE_AT_AVERAGE = "decrease_at_average"


@dataclass(frozen=True)
class CostState:
    """Costing state of one item at a point in time."""

    qty_on_hand: Decimal
    avg_cost: Decimal
    total_value: Decimal

    @classmethod
    def zero(cls) -> CostState:
        return cls(qty_on_hand=ZERO, avg_cost=ZERO, total_value=ZERO)

    def to_dict(self) -> dict[str, Any]:
        return {
            "qty_on_hand": to_number(self.qty_on_hand),
            "avg_cost": to_number(self.avg_cost),
            "total_value": to_number(self.total_value),
        }


@dataclass(frozen=True)
class CostTransition:
    """
    Before/after snapshot of one costing transition.

    ``qty`` and ``total_cost`` are signed: positive for inbound, negative for
    outbound.  ``after`` is what the stock movement row stores as its
    balance snapshot.
    """

    operation: CostOperation
    before: CostState
    after: CostState
    qty: Decimal
    unit_cost: Decimal
    total_cost: Decimal

    @property
    def is_inbound(self) -> bool:
        return self.qty > ZERO


def _settle(qty: Decimal, avg_cost: Decimal) -> CostState:
    if qty == ZERO:
        return CostState.zero()
    avg = quantize_value(avg_cost)
    return CostState(
        qty_on_hand=quantize_value(qty),
        avg_cost=avg,
        total_value=quantize_value(qty * avg),
    )


def _require_positive(qty: Decimal) -> Decimal:
    qty = quantize_value(qty)
    if qty <= ZERO:
        raise ValidationError(f"Quantity must be positive, got {qty}", "qty")
    return qty


def apply_receipt(state: CostState, qty: Decimal, unit_cost: Decimal) -> CostTransition:
    """
    Apply an inbound lot at ``unit_cost``.

    newQty = prevQty + qty
    newTotal = prevQty * prevAvg + qty * unit_cost
    newAvg = newTotal / newQty   (0 when newQty is 0)
    """
    qty = _require_positive(qty)
    if unit_cost < ZERO:
        raise ValidationError(f"Unit cost must not be negative, got {unit_cost}", "unit_cost")

    with exact_context():
        unit_cost = quantize_value(unit_cost)
        new_qty = state.qty_on_hand + qty
        new_total = state.qty_on_hand * state.avg_cost + qty * unit_cost
        after = _settle(new_qty, safe_divide(new_total, new_qty))
        total_cost = quantize_value(qty * unit_cost)

    return CostTransition(
        operation=CostOperation.RECEIPT,
        before=state,
        after=after,
        qty=qty,
        unit_cost=unit_cost,
        total_cost=total_cost,
    )


def apply_consumption(
    state: CostState,
    qty: Decimal,
    *,
    item_id: Any = None,
    sku: str | None = None,
    operation: CostOperation = CostOperation.CONSUMPTION,
) -> CostTransition:
    """
    Take ``qty`` out of stock at the current average cost.

    The outgoing value is ``qty * avg_cost``; the average itself does not
    move.  Raises InsufficientStockError rather than going negative.
    """
    qty = _require_positive(qty)
    if qty > state.qty_on_hand:
        raise InsufficientStockError(
            item_id=item_id,
            requested=qty,
            available=state.qty_on_hand,
            sku=sku,
        )

    with exact_context():
        new_qty = state.qty_on_hand - qty
        after = _settle(new_qty, state.avg_cost)
        outgoing = quantize_value(qty * state.avg_cost)

    return CostTransition(
        operation=operation,
        before=state,
        after=after,
        qty=-qty,
        unit_cost=state.avg_cost,
        total_cost=-outgoing,
    )


def apply_increase_at_average(state: CostState, qty: Decimal) -> CostTransition:
    """Positive adjustment: quantity and value move, average cost does not."""
    qty = _require_positive(qty)
    with exact_context():
        after = _settle(state.qty_on_hand + qty, state.avg_cost)
        total_cost = quantize_value(qty * state.avg_cost)
    return CostTransition(
        operation=CostOperation.INCREASE_AT_AVERAGE,
        before=state,
        after=after,
        qty=qty,
        unit_cost=state.avg_cost,
        total_cost=total_cost,
    )


def apply_decrease_at_average(
    state: CostState,
    qty: Decimal,
    *,
    item_id: Any = None,
    sku: str | None = None,
) -> CostTransition:
    """Negative adjustment: a consumption that is labelled as such."""
    return apply_consumption(
        state,
        qty,
        item_id=item_id,
        sku=sku,
        operation=CostOperation.DECREASE_AT_AVERAGE,
    )


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerEntry:
    """Minimal view of a stock movement needed for replay."""

    movement_type: str
    qty: Decimal
    unit_cost: Decimal


def apply_movement(state: CostState, entry: LedgerEntry) -> CostState:
    """
    Re-apply one ledger movement.

    IN is a receipt at the recorded unit cost, OUT is a consumption, and
    ADJUSTMENT is an at-average increase or decrease depending on sign.
    """
    movement_type = str(getattr(entry.movement_type, "value", entry.movement_type))
    if movement_type == "IN":
        return apply_receipt(state, entry.qty, entry.unit_cost).after
    if movement_type == "OUT":
        return apply_consumption(state, -entry.qty).after
    if movement_type == "ADJUSTMENT":
        if entry.qty > ZERO:
            return apply_increase_at_average(state, entry.qty).after
        return apply_decrease_at_average(state, -entry.qty).after
    raise ValidationError(f"Unknown movement type: {movement_type}", "movement_type")


def replay(entries: Iterable[LedgerEntry]) -> CostState:
    """Fold movements, in ledger order, starting from the zero state."""
    state = CostState.zero()
    for entry in entries:
        state = apply_movement(state, entry)
    return state
