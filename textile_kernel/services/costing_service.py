"""
CostingService -- persists moving-average transitions on InventoryValue.

Responsibility:
    Locks an item's InventoryValue row, applies one pure transition from
    ``textile_kernel.domain.costing`` and writes the new state back.  Returns
    the CostTransition so the caller can record a StockMovement carrying the
    identical numbers.

Architecture position:
    Kernel > Services -- imperative shell around the pure costing core.

Invariants enforced:
    - The row is read with SELECT ... FOR UPDATE, so two concurrent
      consumers of the same item serialize and the second sees the first's
      result before its sufficiency check.
    - InventoryValue is upserted on first use (zero state).
    - total_value == qty_on_hand * avg_cost after every write.

Failure modes:
    - ItemNotFoundError if the item does not exist.
    - InsufficientStockError (from the pure core) on over-consumption; the
      row is left untouched and the unit of work rolls back.

Non-goals:
    - Does NOT commit, and does NOT write ledger rows (StockLedgerService).
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.domain.costing import (
    CostState,
    CostTransition,
    apply_consumption,
    apply_decrease_at_average,
    apply_increase_at_average,
    apply_receipt,
)
from textile_kernel.exceptions import ItemNotFoundError
from textile_kernel.logging_config import get_logger
from textile_kernel.models.inventory import InventoryValue
from textile_kernel.models.item import Item

logger = get_logger("services.costing_service")


def state_of(row: InventoryValue) -> CostState:
    return CostState(
        qty_on_hand=row.qty_on_hand,
        avg_cost=row.avg_cost,
        total_value=row.total_value,
    )


class CostingService:
    """
    Applies costing transitions to InventoryValue rows.

    Usage (inside a unit of work):
        transition = costing.receive(item_id, Decimal("100"), Decimal("10"))
        ledger.record(item_id, MovementType.IN, ref, transition, actor_id)
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _select(self, item_id: UUID, lock: bool) -> InventoryValue | None:
        stmt = select(InventoryValue).where(InventoryValue.item_id == item_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def lock_state(self, item_id: UUID) -> InventoryValue:
        """
        Lock and return the item's InventoryValue row, creating it if absent.

        Raises:
            ItemNotFoundError: If no Item has this id.
        """
        row = self._select(item_id, lock=True)
        if row is not None:
            return row

        if self._session.get(Item, item_id) is None:
            raise ItemNotFoundError(item_id)

        savepoint = self._session.begin_nested()
        try:
            row = InventoryValue(
                item_id=item_id,
                qty_on_hand=Decimal("0"),
                avg_cost=Decimal("0"),
                total_value=Decimal("0"),
                movement_count=0,
            )
            self._session.add(row)
            self._session.flush()
            savepoint.commit()
            logger.info("inventory_value_created", extra={"item_id": str(item_id)})
            return row
        except IntegrityError:
            savepoint.rollback()
            return self._select(item_id, lock=True)

    def current_state(self, item_id: UUID) -> CostState:
        """Unlocked read; zero state if the item has never moved."""
        row = self._select(item_id, lock=False)
        return state_of(row) if row is not None else CostState.zero()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _persist(self, row: InventoryValue, transition: CostTransition) -> CostTransition:
        after = transition.after
        row.qty_on_hand = after.qty_on_hand
        row.avg_cost = after.avg_cost
        row.total_value = after.total_value
        row.last_updated = self._clock.now()
        self._session.flush()
        logger.info(
            "cost_transition_applied",
            extra={
                "item_id": str(row.item_id),
                "operation": transition.operation.value,
                "qty": transition.qty,
                "unit_cost": transition.unit_cost,
                "prev_qty": transition.before.qty_on_hand,
                "prev_avg_cost": transition.before.avg_cost,
                "new_qty": after.qty_on_hand,
                "new_avg_cost": after.avg_cost,
                "new_total_value": after.total_value,
            },
        )
        return transition

    def receive(self, item_id: UUID, qty: Decimal, unit_cost: Decimal) -> CostTransition:
        """Inbound lot at ``unit_cost`` (GRN, FG receipt, vendor return)."""
        row = self.lock_state(item_id)
        return self._persist(row, apply_receipt(state_of(row), qty, unit_cost))

    def consume(self, item_id: UUID, qty: Decimal) -> CostTransition:
        """Outbound at current average cost (material issue)."""
        row = self.lock_state(item_id)
        transition = apply_consumption(
            state_of(row), qty, item_id=item_id, sku=row.item.sku
        )
        return self._persist(row, transition)

    def increase_at_average(self, item_id: UUID, qty: Decimal) -> CostTransition:
        """Positive stock adjustment; average cost unchanged."""
        row = self.lock_state(item_id)
        return self._persist(row, apply_increase_at_average(state_of(row), qty))

    def decrease_at_average(self, item_id: UUID, qty: Decimal) -> CostTransition:
        """Negative stock adjustment; fails rather than going negative."""
        row = self.lock_state(item_id)
        transition = apply_decrease_at_average(
            state_of(row), qty, item_id=item_id, sku=row.item.sku
        )
        return self._persist(row, transition)
