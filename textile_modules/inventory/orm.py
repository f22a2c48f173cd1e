"""
SQLAlchemy ORM persistence models for the Inventory module.

Responsibility
--------------
Persist stock adjustment documents.  The stock effect itself lives in the
kernel (InventoryValue + StockMovement); this row is the signed paper trail
with the before/after costing state.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from textile_kernel.db.base import TrackedBase, UUIDString


class StockAdjustmentModel(TrackedBase):
    """
    A manual stock correction.

    Guarantees:
        - ``doc_number`` is unique (``ADJ/2025/03/0001``).
        - ``qty_change`` is signed: positive for INCREASE, negative for
          DECREASE.
        - ``movement_id`` references the ADJUSTMENT movement it produced.
    """

    __tablename__ = "stock_adjustments"

    __table_args__ = (
        Index("idx_adjustment_item", "item_id"),
    )

    doc_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    adjustment_type: Mapped[str] = mapped_column(String(20), nullable=False)
    qty_change: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    evidence_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    prev_qty: Mapped[Decimal] = mapped_column(nullable=False)
    new_qty: Mapped[Decimal] = mapped_column(nullable=False)
    prev_avg_cost: Mapped[Decimal] = mapped_column(nullable=False)
    new_avg_cost: Mapped[Decimal] = mapped_column(nullable=False)
    movement_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("stock_movements.id"), nullable=False
    )

    def to_dto(self):
        from textile_modules.inventory.models import AdjustmentType, StockAdjustment

        return StockAdjustment(
            id=self.id,
            doc_number=self.doc_number,
            item_id=self.item_id,
            adjustment_type=AdjustmentType(self.adjustment_type),
            qty_change=self.qty_change,
            reason=self.reason,
            evidence_url=self.evidence_url,
            prev_qty=self.prev_qty,
            new_qty=self.new_qty,
            prev_avg_cost=self.prev_avg_cost,
            new_avg_cost=self.new_avg_cost,
            movement_id=self.movement_id,
            created_at=self.created_at,
            created_by_id=self.created_by_id,
        )

    def __repr__(self) -> str:
        return f"<StockAdjustmentModel {self.doc_number} {self.qty_change}>"
