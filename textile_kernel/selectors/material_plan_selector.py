"""
MaterialPlanSelector -- feeds the pure planner from the database.

Reads the active BOM of a finished good and the current qty_on_hand of each
material, then delegates to ``textile_kernel.domain.planning``.  Used both
for display and, inside the Work Order creation transaction, as the
fail-closed shortage check.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select

from textile_kernel.domain.planning import BomLine, MaterialPlan, plan_requirements
from textile_kernel.domain.values import to_positive_decimal
from textile_kernel.exceptions import ItemNotFoundError
from textile_kernel.models.inventory import InventoryValue
from textile_kernel.models.item import ConsumptionRule, Item
from textile_kernel.selectors.base import BaseSelector


class MaterialPlanSelector(BaseSelector):

    def bom_lines(self, finished_good_id: UUID) -> list[BomLine]:
        """Active consumption rules of ``finished_good_id``, ordered by material SKU."""
        rows = self.session.execute(
            select(ConsumptionRule, Item)
            .join(Item, Item.id == ConsumptionRule.material_id)
            .where(
                ConsumptionRule.finished_good_id == finished_good_id,
                ConsumptionRule.is_active.is_(True),
            )
            .order_by(Item.sku)
        )
        return [
            BomLine(
                material_id=rule.material_id,
                qty_required=rule.qty_required,
                waste_percent=rule.waste_percent,
                material_sku=material.sku,
                material_name=material.name,
                uom=material.uom,
            )
            for rule, material in rows
        ]

    def stock_levels(self, item_ids: list[UUID]) -> dict[UUID, Any]:
        if not item_ids:
            return {}
        rows = self.session.execute(
            select(InventoryValue.item_id, InventoryValue.qty_on_hand).where(
                InventoryValue.item_id.in_(item_ids)
            )
        )
        return {item_id: qty for item_id, qty in rows}

    def check_availability(self, finished_good_id: UUID, planned_qty: Any) -> MaterialPlan:
        """
        Material plan for ``planned_qty`` units against current stock.

        Raises:
            ItemNotFoundError: If the finished good does not exist.
            ValidationError: If planned_qty is not a positive decimal.
        """
        planned_output = to_positive_decimal(planned_qty, "planned_qty")
        if self.session.get(Item, finished_good_id) is None:
            raise ItemNotFoundError(finished_good_id)
        bom = self.bom_lines(finished_good_id)
        stock = self.stock_levels([line.material_id for line in bom])
        return plan_requirements(finished_good_id, planned_output, bom, stock)
