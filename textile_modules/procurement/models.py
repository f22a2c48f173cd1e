"""
Procurement Domain Models.

The nouns of procurement: purchase orders and goods receipts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from textile_kernel.domain.values import ZERO, to_number


class POStatus(str, Enum):
    """Purchase order lifecycle states."""
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    PARTIAL = "PARTIAL"
    CLOSED = "CLOSED"
    OVER = "OVER"  # every line received, at least one beyond ordered
    CANCELLED = "CANCELLED"

    @property
    def is_open(self) -> bool:
        return self in (POStatus.DRAFT, POStatus.SUBMITTED, POStatus.PARTIAL)


# -----------------------------------------------------------------------------
# Inputs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class POLineInput:
    """A requested purchase order line.

    ``po_item_id`` identifies an existing line when editing a submitted PO.
    """
    item_id: UUID
    qty: Any
    unit_price: Any
    notes: str | None = None
    po_item_id: UUID | None = None


@dataclass(frozen=True)
class GRNLineInput:
    """A received line.  ``po_item_id`` pins the PO line when an item repeats."""
    item_id: UUID
    qty: Any
    unit_cost: Any
    po_item_id: UUID | None = None


# -----------------------------------------------------------------------------
# DTOs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class POItem:
    """A line item on a purchase order."""
    id: UUID
    po_id: UUID
    line_number: int
    item_id: UUID
    ordered_qty: Decimal
    unit_price: Decimal
    received_qty: Decimal = ZERO
    notes: str | None = None

    @property
    def pending_qty(self) -> Decimal:
        return max(ZERO, self.ordered_qty - self.received_qty)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "line_number": self.line_number,
            "item_id": str(self.item_id),
            "ordered_qty": to_number(self.ordered_qty),
            "unit_price": to_number(self.unit_price),
            "received_qty": to_number(self.received_qty),
            "notes": self.notes,
        }


@dataclass(frozen=True)
class PurchaseOrder:
    """A purchase order."""
    id: UUID
    doc_number: str
    supplier_id: UUID
    status: POStatus = POStatus.DRAFT
    eta_date: date | None = None
    currency: str = "IDR"
    total_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    grand_total: Decimal = ZERO
    notes: str | None = None
    terms: str | None = None
    items: tuple[POItem, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "doc_number": self.doc_number,
            "supplier_id": str(self.supplier_id),
            "status": self.status.value,
            "eta_date": self.eta_date.isoformat() if self.eta_date else None,
            "currency": self.currency,
            "total_amount": to_number(self.total_amount),
            "tax_amount": to_number(self.tax_amount),
            "grand_total": to_number(self.grand_total),
            "notes": self.notes,
            "terms": self.terms,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass(frozen=True)
class GoodsReceiptLine:
    """A received line with the costing state before and after it."""
    id: UUID
    line_number: int
    item_id: UUID
    qty: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    prev_qty: Decimal
    new_qty: Decimal
    prev_avg_cost: Decimal
    new_avg_cost: Decimal
    movement_id: UUID
    po_item_id: UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "line_number": self.line_number,
            "item_id": str(self.item_id),
            "po_item_id": str(self.po_item_id) if self.po_item_id else None,
            "qty": to_number(self.qty),
            "unit_cost": to_number(self.unit_cost),
            "total_cost": to_number(self.total_cost),
            "prev_qty": to_number(self.prev_qty),
            "new_qty": to_number(self.new_qty),
            "prev_avg_cost": to_number(self.prev_avg_cost),
            "new_avg_cost": to_number(self.new_avg_cost),
        }


@dataclass(frozen=True)
class GoodsReceipt:
    """A goods receipt note."""
    id: UUID
    doc_number: str
    supplier_id: UUID
    grn_date: datetime
    received_by_id: UUID
    total_amount: Decimal
    po_id: UUID | None = None
    notes: str | None = None
    photo_urls: tuple[str, ...] = ()
    lines: tuple[GoodsReceiptLine, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "doc_number": self.doc_number,
            "po_id": str(self.po_id) if self.po_id else None,
            "supplier_id": str(self.supplier_id),
            "grn_date": self.grn_date.isoformat(),
            "received_by_id": str(self.received_by_id),
            "total_amount": to_number(self.total_amount),
            "notes": self.notes,
            "photo_urls": list(self.photo_urls),
            "lines": [line.to_dict() for line in self.lines],
        }


@dataclass(frozen=True)
class OverduePurchaseOrder:
    """An open purchase order past its ETA."""
    purchase_order: PurchaseOrder
    days_overdue: int
    pending_qty: Decimal

    def to_dict(self) -> dict[str, Any]:
        data = self.purchase_order.to_dict()
        data["days_overdue"] = self.days_overdue
        data["pending_qty"] = to_number(self.pending_qty)
        return data
