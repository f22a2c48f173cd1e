"""
SQLAlchemy ORM persistence models for the Returns module.

Responsibility
--------------
Persist vendor returns: leftover or rejected material coming back from a
CMT vendor, one child row per returned line.

Invariants enforced
-------------------
* ``cost_value`` of a line is fixed at draft time from the average cost then
  in force; processing brings the goods back in at that unit cost.
* ``stock_impacted`` is set exactly once, by processing.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from textile_kernel.db.base import TrackedBase, UTCDateTime, UUIDString


class VendorReturnModel(TrackedBase):
    """
    A return from a CMT vendor.

    Guarantees:
        - ``doc_number`` is unique (``RET/2025/03/0001``).
        - ``total_value`` == sum of line cost values.
        - ``total_items`` == number of lines.
    """

    __tablename__ = "vendor_returns"

    __table_args__ = (
        Index("idx_return_vendor", "vendor_id"),
        Index("idx_return_wo", "work_order_id"),
        Index("idx_return_status", "status"),
    )

    doc_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    vendor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    work_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("work_orders.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    evidence_urls: Mapped[list | None] = mapped_column(JSON, nullable=True)
    stock_impacted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    processed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    receipt_file_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    lines: Mapped[list["VendorReturnLineModel"]] = relationship(
        "VendorReturnLineModel",
        back_populates="vendor_return",
        cascade="all, delete-orphan",
        order_by="VendorReturnLineModel.line_number",
        lazy="selectin",
    )

    def to_dto(self):
        from textile_modules.returns.models import ReturnStatus, VendorReturn

        return VendorReturn(
            id=self.id,
            doc_number=self.doc_number,
            vendor_id=self.vendor_id,
            work_order_id=self.work_order_id,
            status=ReturnStatus(self.status),
            total_items=self.total_items,
            total_value=self.total_value,
            notes=self.notes,
            evidence_urls=tuple(self.evidence_urls or ()),
            stock_impacted=self.stock_impacted,
            processed_at=self.processed_at,
            processed_by_id=self.processed_by_id,
            completed_at=self.completed_at,
            completed_by_id=self.completed_by_id,
            tracking_number=self.tracking_number,
            receipt_file_url=self.receipt_file_url,
            lines=tuple(line.to_dto() for line in self.lines),
        )

    def __repr__(self) -> str:
        return f"<VendorReturnModel {self.doc_number} [{self.status}]>"


class VendorReturnLineModel(TrackedBase):
    """One returned item."""

    __tablename__ = "vendor_return_lines"

    __table_args__ = (
        Index("idx_return_line_return", "return_id"),
        Index("idx_return_line_item", "item_id"),
    )

    return_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("vendor_returns.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    line_type: Mapped[str] = mapped_column(String(20), nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    qty: Mapped[Decimal] = mapped_column(nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)
    cost_value: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    condition: Mapped[str] = mapped_column(String(20), nullable=False)
    reference_issue_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("material_issues.id"), nullable=True
    )
    movement_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("stock_movements.id"), nullable=True
    )

    vendor_return: Mapped["VendorReturnModel"] = relationship(
        "VendorReturnModel", back_populates="lines"
    )

    def to_dto(self):
        from textile_modules.returns.models import ReturnCondition, ReturnLineType, VendorReturnLine

        return VendorReturnLine(
            id=self.id,
            line_number=self.line_number,
            line_type=ReturnLineType(self.line_type),
            item_id=self.item_id,
            qty=self.qty,
            unit_cost=self.unit_cost,
            cost_value=self.cost_value,
            reason=self.reason,
            condition=ReturnCondition(self.condition),
            reference_issue_id=self.reference_issue_id,
            movement_id=self.movement_id,
        )
