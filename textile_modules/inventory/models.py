"""
Inventory Domain Models.

Stock adjustments.  Balances, movements and stock cards are kernel
concepts (``textile_kernel.selectors``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from textile_kernel.domain.values import to_number


class AdjustmentType(str, Enum):
    INCREASE = "INCREASE"  # at current average, average unchanged
    DECREASE = "DECREASE"  # a consumption; cannot go negative


@dataclass(frozen=True)
class StockAdjustment:
    """A posted stock adjustment."""
    id: UUID
    doc_number: str
    item_id: UUID
    adjustment_type: AdjustmentType
    qty_change: Decimal
    reason: str
    prev_qty: Decimal
    new_qty: Decimal
    prev_avg_cost: Decimal
    new_avg_cost: Decimal
    movement_id: UUID
    created_at: datetime
    created_by_id: UUID
    evidence_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "doc_number": self.doc_number,
            "item_id": str(self.item_id),
            "type": self.adjustment_type.value,
            "qty_change": to_number(self.qty_change),
            "reason": self.reason,
            "evidence_url": self.evidence_url,
            "prev_qty": to_number(self.prev_qty),
            "new_qty": to_number(self.new_qty),
            "prev_avg_cost": to_number(self.prev_avg_cost),
            "new_avg_cost": to_number(self.new_avg_cost),
            "created_at": self.created_at.isoformat(),
            "created_by_id": str(self.created_by_id),
        }
