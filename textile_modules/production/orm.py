"""
SQLAlchemy ORM persistence models for the Production module.

Responsibility
--------------
Provide database-backed persistence for work orders with their consumption
plan, material issues to the CMT vendor, and finished-goods receipts.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``ProductionService`` and
``WorkOrderReconciler``.  Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All quantity and money fields use ``Decimal`` -- NEVER float.
* The consumption plan is one WorkOrderMaterial row per BOM material,
  written once at WO creation; only issued/returned quantities move after.
* ``doc_number`` is unique on every document table.
* Vendors are master data outside this system; ``vendor_id`` carries no
  foreign key.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from textile_kernel.db.base import TrackedBase, UTCDateTime, UUIDString

# ---------------------------------------------------------------------------
# WorkOrderModel
# ---------------------------------------------------------------------------


class WorkOrderModel(TrackedBase):
    """
    A production order placed with a CMT vendor.

    Maps to the ``WorkOrder`` DTO in ``textile_modules.production.models``.

    Guarantees:
        - ``doc_number`` is unique (``WO/2025/0001``).
        - ``status`` follows WORK_ORDER_WORKFLOW.
        - ``actual_qty`` == sum of accepted qty over all FG receipts.
    """

    __tablename__ = "work_orders"

    __table_args__ = (
        Index("idx_wo_vendor", "vendor_id"),
        Index("idx_wo_status", "status"),
        Index("idx_wo_fg", "finished_good_id"),
    )

    doc_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    vendor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    finished_good_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    output_mode: Mapped[str] = mapped_column(String(20), nullable=False, default="GENERIC")
    planned_qty: Mapped[Decimal] = mapped_column(nullable=False)
    actual_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    target_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # [{"roll_ref": "R-01", "qty": "50", "notes": null}, ...]
    roll_breakdown: Mapped[list | None] = mapped_column(JSON, nullable=True)
    issued_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    canceled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    materials: Mapped[list["WorkOrderMaterialModel"]] = relationship(
        "WorkOrderMaterialModel",
        back_populates="work_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    issues: Mapped[list["MaterialIssueModel"]] = relationship(
        "MaterialIssueModel",
        back_populates="work_order",
        order_by="MaterialIssueModel.issued_at",
    )
    receipts: Mapped[list["FGReceiptModel"]] = relationship(
        "FGReceiptModel",
        back_populates="work_order",
        order_by="FGReceiptModel.received_at",
    )

    def material_for(self, material_id: UUID) -> "WorkOrderMaterialModel | None":
        for row in self.materials:
            if row.material_id == material_id:
                return row
        return None

    def to_dto(self):
        from textile_modules.production.models import OutputMode, WorkOrder, WorkOrderStatus

        return WorkOrder(
            id=self.id,
            doc_number=self.doc_number,
            vendor_id=self.vendor_id,
            finished_good_id=self.finished_good_id,
            output_mode=OutputMode(self.output_mode),
            planned_qty=self.planned_qty,
            actual_qty=self.actual_qty,
            status=WorkOrderStatus(self.status),
            target_date=self.target_date,
            notes=self.notes,
            roll_breakdown=tuple(self.roll_breakdown or ()),
            issued_at=self.issued_at,
            completed_at=self.completed_at,
            canceled_at=self.canceled_at,
            cancel_reason=self.cancel_reason,
            materials=tuple(row.to_dto() for row in self.materials),
        )

    def __repr__(self) -> str:
        return f"<WorkOrderModel {self.doc_number} [{self.status}]>"


class WorkOrderMaterialModel(TrackedBase):
    """
    One line of a work order's consumption plan.

    Guarantees:
        - (work_order_id, material_id) is unique.
        - ``issued_qty`` / ``returned_qty`` only grow.
    """

    __tablename__ = "work_order_materials"

    __table_args__ = (
        UniqueConstraint("work_order_id", "material_id", name="uq_wo_material"),
        Index("idx_wo_material_wo", "work_order_id"),
    )

    work_order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("work_orders.id"), nullable=False
    )
    material_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    qty_required: Mapped[Decimal] = mapped_column(nullable=False)
    waste_percent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    planned_qty: Mapped[Decimal] = mapped_column(nullable=False)
    issued_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    returned_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    work_order: Mapped["WorkOrderModel"] = relationship(
        "WorkOrderModel", back_populates="materials"
    )
    material = relationship("Item", foreign_keys=[material_id], lazy="joined")

    def to_dto(self):
        from textile_modules.production.models import WorkOrderMaterial

        return WorkOrderMaterial(
            id=self.id,
            material_id=self.material_id,
            material_sku=self.material.sku,
            material_name=self.material.name,
            uom=self.material.uom,
            qty_required=self.qty_required,
            waste_percent=self.waste_percent,
            planned_qty=self.planned_qty,
            issued_qty=self.issued_qty,
            returned_qty=self.returned_qty,
        )


# ---------------------------------------------------------------------------
# MaterialIssueModel
# ---------------------------------------------------------------------------


class MaterialIssueModel(TrackedBase):
    """
    Materials handed to the CMT vendor against a work order.

    Guarantees:
        - ``doc_number`` is unique (``ISS/2025/03/0004``).
        - ``total_cost`` == sum of line totals at the average cost in force
          when each line was issued.
    """

    __tablename__ = "material_issues"

    __table_args__ = (
        Index("idx_issue_wo", "work_order_id"),
    )

    doc_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    work_order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("work_orders.id"), nullable=False
    )
    issue_type: Mapped[str] = mapped_column(String(20), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(nullable=False)
    issued_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    work_order: Mapped["WorkOrderModel"] = relationship(
        "WorkOrderModel", back_populates="issues"
    )
    lines: Mapped[list["MaterialIssueLineModel"]] = relationship(
        "MaterialIssueLineModel",
        back_populates="issue",
        cascade="all, delete-orphan",
        order_by="MaterialIssueLineModel.line_number",
        lazy="selectin",
    )

    def to_dto(self):
        from textile_modules.production.models import IssueType, MaterialIssue

        return MaterialIssue(
            id=self.id,
            doc_number=self.doc_number,
            work_order_id=self.work_order_id,
            issue_type=IssueType(self.issue_type),
            total_cost=self.total_cost,
            issued_at=self.issued_at,
            notes=self.notes,
            lines=tuple(line.to_dto() for line in self.lines),
        )


class MaterialIssueLineModel(TrackedBase):
    """One issued material with the average cost it left at."""

    __tablename__ = "material_issue_lines"

    __table_args__ = (
        Index("idx_issue_line_issue", "issue_id"),
        Index("idx_issue_line_item", "item_id"),
    )

    issue_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("material_issues.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    qty: Mapped[Decimal] = mapped_column(nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(nullable=False)
    balance_qty: Mapped[Decimal] = mapped_column(nullable=False)
    movement_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("stock_movements.id"), nullable=False
    )

    issue: Mapped["MaterialIssueModel"] = relationship(
        "MaterialIssueModel", back_populates="lines"
    )

    def to_dto(self):
        from textile_modules.production.models import MaterialIssueLine

        return MaterialIssueLine(
            id=self.id,
            line_number=self.line_number,
            item_id=self.item_id,
            qty=self.qty,
            unit_cost=self.unit_cost,
            total_cost=self.total_cost,
            balance_qty=self.balance_qty,
            movement_id=self.movement_id,
        )


# ---------------------------------------------------------------------------
# FGReceiptModel
# ---------------------------------------------------------------------------


class FGReceiptModel(TrackedBase):
    """
    Finished goods received back from the CMT vendor after QC.

    Guarantees:
        - ``doc_number`` is unique (``RCPT/2025/03/0002``).
        - qty_accepted == qty_received - qty_rejected.
        - ``movement_id`` is set iff qty_accepted > 0.
    """

    __tablename__ = "fg_receipts"

    __table_args__ = (
        Index("idx_fg_receipt_wo", "work_order_id"),
    )

    doc_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    work_order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("work_orders.id"), nullable=False
    )
    receipt_type: Mapped[str] = mapped_column(String(20), nullable=False)
    qty_received: Mapped[Decimal] = mapped_column(nullable=False)
    qty_rejected: Mapped[Decimal] = mapped_column(nullable=False)
    qty_accepted: Mapped[Decimal] = mapped_column(nullable=False)
    material_cost: Mapped[Decimal] = mapped_column(nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)
    total_value: Mapped[Decimal] = mapped_column(nullable=False)
    qc_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    qc_photos: Mapped[list | None] = mapped_column(JSON, nullable=True)
    received_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    received_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    movement_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("stock_movements.id"), nullable=True
    )

    work_order: Mapped["WorkOrderModel"] = relationship(
        "WorkOrderModel", back_populates="receipts"
    )

    def to_dto(self):
        from textile_modules.production.models import FGReceipt

        return FGReceipt(
            id=self.id,
            doc_number=self.doc_number,
            work_order_id=self.work_order_id,
            qty_received=self.qty_received,
            qty_rejected=self.qty_rejected,
            qty_accepted=self.qty_accepted,
            material_cost=self.material_cost,
            unit_cost=self.unit_cost,
            total_value=self.total_value,
            received_at=self.received_at,
            received_by_id=self.received_by_id,
            qc_notes=self.qc_notes,
            qc_photos=tuple(self.qc_photos or ()),
            movement_id=self.movement_id,
        )
