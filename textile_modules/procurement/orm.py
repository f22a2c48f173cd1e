"""
SQLAlchemy ORM persistence models for the Procurement module.

Responsibility
--------------
Provide database-backed persistence for purchase orders, their lines and
status history, and goods receipt notes (GRN) with one child row per
received line.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``ProcurementService`` for
persistence.  Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* All quantity and money fields use ``Decimal`` -- NEVER float.
* Enum fields stored as String(20) for readability and portability.
* ``doc_number`` is unique on every document table.
* Suppliers are owned by master-data screens outside this system;
  ``supplier_id`` carries no foreign key.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from textile_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString

# ---------------------------------------------------------------------------
# PurchaseOrderModel
# ---------------------------------------------------------------------------


class PurchaseOrderModel(TrackedBase):
    """
    A purchase order to a supplier.

    Maps to the ``PurchaseOrder`` DTO in ``textile_modules.procurement.models``.

    Guarantees:
        - ``doc_number`` is unique (``PO/2025/0001``).
        - ``status`` follows PURCHASE_ORDER_WORKFLOW.
        - ``total_amount`` == sum of line qty * unit_price.
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        Index("idx_po_supplier", "supplier_id"),
        Index("idx_po_status", "status"),
        Index("idx_po_eta", "eta_date"),
    )

    doc_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    supplier_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    eta_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="IDR")
    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    grand_total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    terms: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["POItemModel"]] = relationship(
        "POItemModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="POItemModel.line_number",
        lazy="selectin",
    )
    status_history: Mapped[list["POStatusHistoryModel"]] = relationship(
        "POStatusHistoryModel",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="POStatusHistoryModel.created_at",
    )

    def to_dto(self):
        from textile_modules.procurement.models import POStatus, PurchaseOrder

        return PurchaseOrder(
            id=self.id,
            doc_number=self.doc_number,
            supplier_id=self.supplier_id,
            status=POStatus(self.status),
            eta_date=self.eta_date,
            currency=self.currency,
            total_amount=self.total_amount,
            tax_amount=self.tax_amount,
            grand_total=self.grand_total,
            notes=self.notes,
            terms=self.terms,
            items=tuple(item.to_dto() for item in self.items),
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.doc_number} [{self.status}]>"


class POItemModel(TrackedBase):
    """
    One ordered item on a purchase order.

    Guarantees:
        - ``received_qty`` is the sum of all GRN lines matched to this line.
    """

    __tablename__ = "po_items"

    __table_args__ = (
        Index("idx_po_item_po", "po_id"),
        Index("idx_po_item_item", "item_id"),
    )

    po_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    ordered_qty: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    received_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel", back_populates="items"
    )

    def to_dto(self):
        from textile_modules.procurement.models import POItem

        return POItem(
            id=self.id,
            po_id=self.po_id,
            line_number=self.line_number,
            item_id=self.item_id,
            ordered_qty=self.ordered_qty,
            unit_price=self.unit_price,
            received_qty=self.received_qty,
            notes=self.notes,
        )


class POStatusHistoryModel(Base):
    """Append-only trail of purchase order status changes."""

    __tablename__ = "po_status_history"

    __table_args__ = (
        Index("idx_po_status_history_po", "po_id", "created_at"),
    )

    po_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    changed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    purchase_order: Mapped["PurchaseOrderModel"] = relationship(
        "PurchaseOrderModel", back_populates="status_history"
    )


# ---------------------------------------------------------------------------
# GoodsReceiptModel
# ---------------------------------------------------------------------------


class GoodsReceiptModel(TrackedBase):
    """
    A goods receipt note.

    Maps to the ``GoodsReceipt`` DTO in ``textile_modules.procurement.models``.

    Guarantees:
        - ``doc_number`` is unique (``GRN/2025/03/0007``).
        - ``total_amount`` == sum of line totals.
        - Each line references the StockMovement it produced.
    """

    __tablename__ = "goods_receipts"

    __table_args__ = (
        Index("idx_grn_po", "po_id"),
        Index("idx_grn_date", "grn_date"),
    )

    doc_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    po_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=True
    )
    supplier_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    grn_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    received_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Upload is handled elsewhere; only the stored URLs are kept
    photo_urls: Mapped[list | None] = mapped_column(JSON, nullable=True)

    lines: Mapped[list["GoodsReceiptLineModel"]] = relationship(
        "GoodsReceiptLineModel",
        back_populates="goods_receipt",
        cascade="all, delete-orphan",
        order_by="GoodsReceiptLineModel.line_number",
        lazy="selectin",
    )

    def to_dto(self):
        from textile_modules.procurement.models import GoodsReceipt

        return GoodsReceipt(
            id=self.id,
            doc_number=self.doc_number,
            po_id=self.po_id,
            supplier_id=self.supplier_id,
            grn_date=self.grn_date,
            received_by_id=self.received_by_id,
            total_amount=self.total_amount,
            notes=self.notes,
            photo_urls=tuple(self.photo_urls or ()),
            lines=tuple(line.to_dto() for line in self.lines),
        )


class GoodsReceiptLineModel(TrackedBase):
    """One received item with its costing before/after snapshot."""

    __tablename__ = "goods_receipt_lines"

    __table_args__ = (
        Index("idx_grn_line_grn", "grn_id"),
        Index("idx_grn_line_item", "item_id"),
    )

    grn_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("goods_receipts.id"), nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    po_item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("po_items.id"), nullable=True
    )
    qty: Mapped[Decimal] = mapped_column(nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(nullable=False)
    prev_qty: Mapped[Decimal] = mapped_column(nullable=False)
    new_qty: Mapped[Decimal] = mapped_column(nullable=False)
    prev_avg_cost: Mapped[Decimal] = mapped_column(nullable=False)
    new_avg_cost: Mapped[Decimal] = mapped_column(nullable=False)
    movement_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("stock_movements.id"), nullable=False
    )

    goods_receipt: Mapped["GoodsReceiptModel"] = relationship(
        "GoodsReceiptModel", back_populates="lines"
    )

    def to_dto(self):
        from textile_modules.procurement.models import GoodsReceiptLine

        return GoodsReceiptLine(
            id=self.id,
            line_number=self.line_number,
            item_id=self.item_id,
            po_item_id=self.po_item_id,
            qty=self.qty,
            unit_cost=self.unit_cost,
            total_cost=self.total_cost,
            prev_qty=self.prev_qty,
            new_qty=self.new_qty,
            prev_avg_cost=self.prev_avg_cost,
            new_avg_cost=self.new_avg_cost,
            movement_id=self.movement_id,
        )
