"""
Module: textile_kernel.models.item
Responsibility: Catalog master data the costing core reads -- stock items and
    their bill-of-materials lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Items and consumption rules are owned by catalog/BOM screens; the core reads
them and never edits them, except that ``ProductionService.save_bom``
replaces a finished good's rule set as a whole.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from textile_kernel.db.base import TrackedBase, UUIDString


class ItemType(str, Enum):
    """Stock item classes."""

    FABRIC = "FABRIC"
    ACCESSORY = "ACCESSORY"
    FINISHED_GOOD = "FINISHED_GOOD"

    @property
    def is_raw_material(self) -> bool:
        return self is not ItemType.FINISHED_GOOD


class Item(TrackedBase):
    """
    Stock-keeping unit (raw material or finished good).

    Guarantees:
        - sku is unique.
        - Exactly one InventoryValue row is linked (created by create_item()).
    """

    __tablename__ = "items"
    __table_args__ = (
        Index("idx_item_type", "item_type"),
    )

    sku: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)
    uom: Mapped[str] = mapped_column(String(20), nullable=False, default="PCS")
    reorder_point: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    inventory_value = relationship(
        "InventoryValue",
        back_populates="item",
        uselist=False,
    )

    def __repr__(self) -> str:
        return f"<Item {self.sku} ({self.item_type})>"


class ConsumptionRule(TrackedBase):
    """
    BOM line: material needed per unit of a finished good.

    Guarantees:
        - (finished_good_id, material_id) is unique.
        - waste_percent is a plain percentage (5 means 5%).
    """

    __tablename__ = "consumption_rules"
    __table_args__ = (
        UniqueConstraint("finished_good_id", "material_id", name="uq_bom_fg_material"),
        Index("idx_bom_fg", "finished_good_id"),
    )

    finished_good_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    material_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    qty_required: Mapped[Decimal] = mapped_column(nullable=False)
    waste_percent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    finished_good = relationship("Item", foreign_keys=[finished_good_id])
    material = relationship("Item", foreign_keys=[material_id])

    def __repr__(self) -> str:
        return f"<ConsumptionRule fg={self.finished_good_id} material={self.material_id}>"
