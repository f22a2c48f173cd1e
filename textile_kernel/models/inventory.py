"""
Module: textile_kernel.models.inventory
Responsibility: ORM persistence for the costing state of each item and for
    the append-only stock movement ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One InventoryValue per Item (unique item_id).
    - total_value == qty_on_hand * avg_cost after every mutation (set by
      CostingService from a pure CostTransition).
    - StockMovement rows are append-only (db/immutability.py).
    - (item_id, seq) is unique; seq is the per-item application order and
      is allocated while the item's InventoryValue row is locked.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE of a StockMovement.
    - IntegrityError on a duplicate (item_id, seq).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from textile_kernel.db.base import Base, UTCDateTime, UUIDString


class MovementType(str, Enum):
    """Direction of a stock movement."""

    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


class MovementRefType(str, Enum):
    """Document kind that caused a stock movement."""

    GRN = "GRN"
    WO_ISSUE = "WO_ISSUE"
    FG_RECEIPT = "FG_RECEIPT"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"


class InventoryValue(Base):
    """
    Current moving-average costing state of one item.

    Contract:
        Mutated exclusively by CostingService while holding a row lock.
        ``movement_count`` is the seq of the most recent StockMovement.
    """

    __tablename__ = "inventory_values"

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False, unique=True
    )
    qty_on_hand: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    avg_cost: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    movement_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_updated: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    item = relationship("Item", back_populates="inventory_value")

    def __repr__(self) -> str:
        return (
            f"<InventoryValue item={self.item_id} qty={self.qty_on_hand} "
            f"avg={self.avg_cost} value={self.total_value}>"
        )


class StockMovement(Base):
    """
    Append-only ledger row with a running balance snapshot.

    Guarantees:
        - qty and total_cost are signed (negative for outbound).
        - balance_* equal the InventoryValue state right after this movement.
        - Never updated or deleted.
    """

    __tablename__ = "stock_movements"
    __table_args__ = (
        UniqueConstraint("item_id", "seq", name="uq_stock_movement_item_seq"),
        Index("idx_movement_item_created", "item_id", "created_at"),
        Index("idx_movement_ref", "ref_type", "ref_id"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)
    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)

    ref_type: Mapped[str] = mapped_column(String(20), nullable=False)
    ref_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    ref_doc_number: Mapped[str] = mapped_column(String(50), nullable=False)

    qty: Mapped[Decimal] = mapped_column(nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(nullable=False)

    balance_qty: Mapped[Decimal] = mapped_column(nullable=False)
    balance_avg_cost: Mapped[Decimal] = mapped_column(nullable=False)
    balance_value: Mapped[Decimal] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    item = relationship("Item")

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.movement_type} {self.ref_doc_number} "
            f"item={self.item_id} qty={self.qty} seq={self.seq}>"
        )
