"""
Stock card and ledger replay queries.

The stock card for [date_from, date_to] is:

    opening  = balance snapshot of the last movement strictly before
               date_from (zero if none)
    rows     = every movement with date_from <= created_at <= date_to,
               ordered by (created_at, seq), each with its own running balance
    closing  = balance of the last row, or the opening balance

``verify_replay`` folds an item's whole ledger (in seq order) through the
same pure functions the live path uses and compares the result with the
stored InventoryValue.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select

from textile_kernel.domain.costing import CostState, LedgerEntry, apply_movement
from textile_kernel.domain.values import ZERO, to_number
from textile_kernel.exceptions import ItemNotFoundError
from textile_kernel.models.inventory import (
    InventoryValue,
    MovementRefType,
    StockMovement,
)
from textile_kernel.models.item import Item
from textile_kernel.selectors.base import BaseSelector

MOVEMENT_DESCRIPTIONS: dict[str, str] = {
    MovementRefType.GRN.value: "Goods receipt",
    MovementRefType.WO_ISSUE.value: "Material issue to work order",
    MovementRefType.FG_RECEIPT.value: "Finished goods receipt",
    MovementRefType.ADJUSTMENT.value: "Stock adjustment",
    MovementRefType.RETURN.value: "Vendor return",
}


@dataclass(frozen=True)
class StockCardRow:
    """One movement line of a stock card."""

    movement_id: UUID
    seq: int
    created_at: datetime
    doc_number: str
    ref_type: str
    description: str
    in_qty: Decimal
    out_qty: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    balance_qty: Decimal
    balance_value: Decimal
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "movement_id": str(self.movement_id),
            "seq": self.seq,
            "date": self.created_at.isoformat(),
            "doc_number": self.doc_number,
            "ref_type": self.ref_type,
            "description": self.description,
            "in_qty": to_number(self.in_qty),
            "out_qty": to_number(self.out_qty),
            "unit_cost": to_number(self.unit_cost),
            "total_cost": to_number(self.total_cost),
            "balance_qty": to_number(self.balance_qty),
            "balance_value": to_number(self.balance_value),
            "notes": self.notes,
        }


@dataclass(frozen=True)
class StockCard:
    """Opening balance, movements and closing balance for one item."""

    item_id: UUID
    sku: str
    name: str
    uom: str
    date_from: datetime
    date_to: datetime
    opening_qty: Decimal
    opening_value: Decimal
    rows: tuple[StockCardRow, ...]

    @property
    def closing_qty(self) -> Decimal:
        return self.rows[-1].balance_qty if self.rows else self.opening_qty

    @property
    def closing_value(self) -> Decimal:
        return self.rows[-1].balance_value if self.rows else self.opening_value

    @property
    def total_in(self) -> Decimal:
        return sum((r.in_qty for r in self.rows), ZERO)

    @property
    def total_out(self) -> Decimal:
        return sum((r.out_qty for r in self.rows), ZERO)

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": str(self.item_id),
            "sku": self.sku,
            "name": self.name,
            "uom": self.uom,
            "date_from": self.date_from.isoformat(),
            "date_to": self.date_to.isoformat(),
            "opening_balance": {
                "qty": to_number(self.opening_qty),
                "value": to_number(self.opening_value),
            },
            "movements": [r.to_dict() for r in self.rows],
            "closing_balance": {
                "qty": to_number(self.closing_qty),
                "value": to_number(self.closing_value),
            },
        }


@dataclass(frozen=True)
class ReplayCheck:
    """Replayed ledger state against the stored InventoryValue."""

    item_id: UUID
    movement_count: int
    replayed: CostState
    stored: CostState
    # seq numbers whose stored balance snapshot differs from the replay
    snapshot_mismatches: tuple[int, ...]
    # seq numbers missing from 1..movement_count
    seq_gaps: tuple[int, ...]

    @property
    def matches(self) -> bool:
        return (
            self.replayed == self.stored
            and not self.snapshot_mismatches
            and not self.seq_gaps
        )


def _bounds(date_from: date | datetime, date_to: date | datetime) -> tuple[datetime, datetime]:
    """Whole days when plain dates are given."""
    if not isinstance(date_from, datetime):
        date_from = datetime.combine(date_from, time.min, tzinfo=timezone.utc)
    if not isinstance(date_to, datetime):
        date_to = datetime.combine(date_to, time.max, tzinfo=timezone.utc)
    return date_from, date_to


def _row(movement: StockMovement) -> StockCardRow:
    qty = movement.qty
    return StockCardRow(
        movement_id=movement.id,
        seq=movement.seq,
        created_at=movement.created_at,
        doc_number=movement.ref_doc_number,
        ref_type=movement.ref_type,
        description=MOVEMENT_DESCRIPTIONS.get(movement.ref_type, movement.ref_type),
        in_qty=qty if qty > ZERO else ZERO,
        out_qty=-qty if qty < ZERO else ZERO,
        unit_cost=movement.unit_cost,
        total_cost=movement.total_cost,
        balance_qty=movement.balance_qty,
        balance_value=movement.balance_value,
        notes=movement.notes,
    )


class StockCardSelector(BaseSelector):
    """Stock card and replay verification for one item."""

    def stock_card(
        self,
        item_id: UUID,
        date_from: date | datetime,
        date_to: date | datetime,
    ) -> StockCard:
        item = self.session.get(Item, item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        start, end = _bounds(date_from, date_to)

        opening = self.session.execute(
            select(StockMovement)
            .where(StockMovement.item_id == item_id, StockMovement.created_at < start)
            .order_by(StockMovement.created_at.desc(), StockMovement.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

        movements = self.session.execute(
            select(StockMovement)
            .where(
                StockMovement.item_id == item_id,
                StockMovement.created_at >= start,
                StockMovement.created_at <= end,
            )
            .order_by(StockMovement.created_at, StockMovement.seq)
        ).scalars()

        return StockCard(
            item_id=item.id,
            sku=item.sku,
            name=item.name,
            uom=item.uom,
            date_from=start,
            date_to=end,
            opening_qty=opening.balance_qty if opening else ZERO,
            opening_value=opening.balance_value if opening else ZERO,
            rows=tuple(_row(m) for m in movements),
        )

    def movements(self, item_id: UUID) -> list[StockMovement]:
        """Whole ledger of an item in application order."""
        return list(
            self.session.execute(
                select(StockMovement)
                .where(StockMovement.item_id == item_id)
                .order_by(StockMovement.seq)
            ).scalars()
        )

    def verify_replay(self, item_id: UUID) -> ReplayCheck:
        """Fold the ledger from zero and compare with InventoryValue."""
        stored_row = self.session.execute(
            select(InventoryValue).where(InventoryValue.item_id == item_id)
        ).scalar_one_or_none()
        stored = (
            CostState(stored_row.qty_on_hand, stored_row.avg_cost, stored_row.total_value)
            if stored_row is not None
            else CostState.zero()
        )

        state = CostState.zero()
        mismatches = []
        seqs = []
        for movement in self.movements(item_id):
            seqs.append(movement.seq)
            state = apply_movement(
                state,
                LedgerEntry(movement.movement_type, movement.qty, movement.unit_cost),
            )
            snapshot = CostState(
                movement.balance_qty, movement.balance_avg_cost, movement.balance_value
            )
            if snapshot != state:
                mismatches.append(movement.seq)

        expected = set(range(1, len(seqs) + 1))
        return ReplayCheck(
            item_id=item_id,
            movement_count=len(seqs),
            replayed=state,
            stored=stored,
            snapshot_mismatches=tuple(mismatches),
            seq_gaps=tuple(sorted(expected - set(seqs))),
        )
