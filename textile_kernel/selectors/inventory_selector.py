"""
Read-side inventory summaries (dashboard figures, reorder lists).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select

from textile_kernel.domain.values import ZERO, to_number
from textile_kernel.models.inventory import InventoryValue
from textile_kernel.models.item import Item
from textile_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class StockSummaryRow:
    """Current stock and value of one item."""

    item_id: UUID
    sku: str
    name: str
    item_type: str
    uom: str
    qty_on_hand: Decimal
    avg_cost: Decimal
    total_value: Decimal
    reorder_point: Decimal | None

    @property
    def is_low_stock(self) -> bool:
        return self.reorder_point is not None and self.qty_on_hand <= self.reorder_point

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": str(self.item_id),
            "sku": self.sku,
            "name": self.name,
            "item_type": self.item_type,
            "uom": self.uom,
            "qty_on_hand": to_number(self.qty_on_hand),
            "avg_cost": to_number(self.avg_cost),
            "total_value": to_number(self.total_value),
            "reorder_point": to_number(self.reorder_point),
            "low_stock": self.is_low_stock,
        }


@dataclass(frozen=True)
class InventorySnapshot:
    total_value: Decimal
    item_count: int
    low_stock_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_value": to_number(self.total_value),
            "item_count": self.item_count,
            "low_stock_count": self.low_stock_count,
        }


class InventorySelector(BaseSelector):
    """Stock levels and values across items."""

    def current_stock_summary(
        self,
        item_ids: Iterable[UUID] | None = None,
    ) -> list[StockSummaryRow]:
        """Active items with their costing state, ordered by SKU.

        Items that have never moved report a zero state.
        """
        stmt = (
            select(Item, InventoryValue)
            .outerjoin(InventoryValue, InventoryValue.item_id == Item.id)
            .where(Item.is_active.is_(True))
            .order_by(Item.sku)
        )
        if item_ids is not None:
            stmt = stmt.where(Item.id.in_(list(item_ids)))

        rows = []
        for item, value in self.session.execute(stmt):
            rows.append(
                StockSummaryRow(
                    item_id=item.id,
                    sku=item.sku,
                    name=item.name,
                    item_type=item.item_type,
                    uom=item.uom,
                    qty_on_hand=value.qty_on_hand if value else ZERO,
                    avg_cost=value.avg_cost if value else ZERO,
                    total_value=value.total_value if value else ZERO,
                    reorder_point=item.reorder_point,
                )
            )
        return rows

    def low_stock_items(self) -> list[StockSummaryRow]:
        return [row for row in self.current_stock_summary() if row.is_low_stock]

    def snapshot(self) -> InventorySnapshot:
        # Decimals are summed in Python; SQLite stores them as text
        rows = self.current_stock_summary()
        return InventorySnapshot(
            total_value=sum((row.total_value for row in rows), ZERO),
            item_count=len(rows),
            low_stock_count=sum(1 for row in rows if row.is_low_stock),
        )
