"""
Returns Domain Models.

Vendor returns: what came back from a CMT vendor, in what condition and at
what value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from textile_kernel.domain.values import ZERO, to_number


class ReturnStatus(str, Enum):
    DRAFT = "DRAFT"
    PROCESSED = "PROCESSED"  # stock brought back in
    COMPLETED = "COMPLETED"  # paperwork closed, no stock effect


class ReturnLineType(str, Enum):
    """FG_REJECT lines are recorded for the vendor but never re-enter stock."""
    FABRIC = "FABRIC"
    ACCESSORIES = "ACCESSORIES"
    FG_REJECT = "FG_REJECT"

    @property
    def moves_stock(self) -> bool:
        return self is not ReturnLineType.FG_REJECT


class ReturnCondition(str, Enum):
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"
    DEFECTIVE = "DEFECTIVE"


@dataclass(frozen=True)
class ReturnLineInput:
    line_type: ReturnLineType | str
    item_id: UUID
    qty: Any
    reason: str
    condition: ReturnCondition | str
    reference_issue_id: UUID | None = None


@dataclass(frozen=True)
class VendorReturnLine:
    id: UUID
    line_number: int
    line_type: ReturnLineType
    item_id: UUID
    qty: Decimal
    unit_cost: Decimal
    cost_value: Decimal
    reason: str
    condition: ReturnCondition
    reference_issue_id: UUID | None = None
    movement_id: UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "line_number": self.line_number,
            "type": self.line_type.value,
            "item_id": str(self.item_id),
            "qty": to_number(self.qty),
            "unit_cost": to_number(self.unit_cost),
            "cost_value": to_number(self.cost_value),
            "reason": self.reason,
            "condition": self.condition.value,
            "reference_issue_id": (
                str(self.reference_issue_id) if self.reference_issue_id else None
            ),
        }


@dataclass(frozen=True)
class VendorReturn:
    """A vendor return document."""
    id: UUID
    doc_number: str
    vendor_id: UUID
    status: ReturnStatus = ReturnStatus.DRAFT
    work_order_id: UUID | None = None
    total_items: int = 0
    total_value: Decimal = ZERO
    notes: str | None = None
    evidence_urls: tuple[str, ...] = ()
    stock_impacted: bool = False
    processed_at: datetime | None = None
    processed_by_id: UUID | None = None
    completed_at: datetime | None = None
    completed_by_id: UUID | None = None
    tracking_number: str | None = None
    receipt_file_url: str | None = None
    lines: tuple[VendorReturnLine, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "doc_number": self.doc_number,
            "vendor_id": str(self.vendor_id),
            "work_order_id": str(self.work_order_id) if self.work_order_id else None,
            "status": self.status.value,
            "total_items": self.total_items,
            "total_value": to_number(self.total_value),
            "notes": self.notes,
            "evidence_urls": list(self.evidence_urls),
            "stock_impacted": self.stock_impacted,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "tracking_number": self.tracking_number,
            "receipt_file_url": self.receipt_file_url,
            "lines": [line.to_dict() for line in self.lines],
        }
