"""
StockLedgerService -- appends StockMovement rows.

Responsibility:
    Records one ledger row per costing transition, carrying the transition's
    after-state as its balance snapshot.

Architecture position:
    Kernel > Services.  Always called right after CostingService in the
    same unit of work, while the item's InventoryValue row is still locked.

Invariants enforced:
    - The balance snapshot equals the InventoryValue row at the moment of
      writing; a mismatch is a programming error and aborts the workflow.
    - ``seq`` is allocated from InventoryValue.movement_count under the
      item's row lock, giving a gap-free per-item application order.
    - Rows are append-only (db/immutability.py).
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.domain.costing import CostTransition
from textile_kernel.logging_config import get_logger
from textile_kernel.models.inventory import (
    InventoryValue,
    MovementRefType,
    MovementType,
    StockMovement,
)

logger = get_logger("services.stock_ledger_service")


@dataclass(frozen=True)
class MovementRef:
    """Originating document of a stock movement."""

    ref_type: MovementRefType
    ref_id: UUID
    doc_number: str


class StockLedgerService:
    """Writes StockMovement rows.  Does not commit."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def record(
        self,
        item_id: UUID,
        movement_type: MovementType,
        ref: MovementRef,
        transition: CostTransition,
        actor_id: UUID,
        notes: str | None = None,
    ) -> StockMovement:
        """
        Append the movement for ``transition``.

        Preconditions:
            ``transition`` was just persisted by CostingService for this item
            in the current transaction.
        """
        row = self._session.execute(
            select(InventoryValue).where(InventoryValue.item_id == item_id)
        ).scalar_one()
        after = transition.after
        if (row.qty_on_hand, row.avg_cost, row.total_value) != (
            after.qty_on_hand,
            after.avg_cost,
            after.total_value,
        ):
            raise RuntimeError(
                f"Balance snapshot for item {item_id} does not match its inventory value"
            )

        row.movement_count += 1
        movement = StockMovement(
            item_id=item_id,
            seq=row.movement_count,
            movement_type=MovementType(movement_type).value,
            ref_type=MovementRefType(ref.ref_type).value,
            ref_id=ref.ref_id,
            ref_doc_number=ref.doc_number,
            qty=transition.qty,
            unit_cost=transition.unit_cost,
            total_cost=transition.total_cost,
            balance_qty=after.qty_on_hand,
            balance_avg_cost=after.avg_cost,
            balance_value=after.total_value,
            notes=notes,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self._session.add(movement)
        self._session.flush()
        logger.info(
            "stock_movement_recorded",
            extra={
                "item_id": str(item_id),
                "seq": movement.seq,
                "movement_type": movement.movement_type,
                "ref_type": movement.ref_type,
                "ref_doc_number": ref.doc_number,
                "qty": transition.qty,
                "balance_qty": after.qty_on_hand,
                "balance_value": after.total_value,
            },
        )
        return movement
