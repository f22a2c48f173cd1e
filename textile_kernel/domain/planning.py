"""
Material requirement planning -- pure BOM explosion.

Given a planned output quantity of a finished good, its active BOM lines and
the current stock of each material, compute the planned quantity per
material (waste included) and the shortage against stock.

    plannedQty = plannedOutput * qtyRequired * (1 + wastePercent / 100)
    shortage   = max(0, plannedQty - available)

Kernel > Domain -- zero I/O.  The selector in
``textile_kernel.selectors.material_plan_selector`` feeds it from the DB.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Sequence
from uuid import UUID

from textile_kernel.domain.values import (
    HUNDRED,
    ONE,
    ZERO,
    exact_context,
    quantize_value,
    to_number,
)


@dataclass(frozen=True)
class BomLine:
    """One active consumption rule for a finished good."""

    material_id: UUID
    qty_required: Decimal
    waste_percent: Decimal = ZERO
    material_sku: str = ""
    material_name: str = ""
    uom: str = ""


@dataclass(frozen=True)
class RequirementLine:
    """Planned requirement for one material."""

    material_id: UUID
    material_sku: str
    material_name: str
    uom: str
    qty_required: Decimal
    waste_percent: Decimal
    planned_qty: Decimal
    available_qty: Decimal
    shortage: Decimal

    @property
    def is_short(self) -> bool:
        return self.shortage > ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "material_id": str(self.material_id),
            "material_sku": self.material_sku,
            "material_name": self.material_name,
            "uom": self.uom,
            "qty_required": to_number(self.qty_required),
            "waste_percent": to_number(self.waste_percent),
            "planned_qty": to_number(self.planned_qty),
            "available_qty": to_number(self.available_qty),
            "shortage": to_number(self.shortage),
        }


@dataclass(frozen=True)
class MaterialPlan:
    """Result of a BOM explosion against current stock."""

    finished_good_id: UUID
    planned_output: Decimal
    lines: tuple[RequirementLine, ...]

    @property
    def shortages(self) -> tuple[RequirementLine, ...]:
        return tuple(line for line in self.lines if line.is_short)

    @property
    def has_shortage(self) -> bool:
        return any(line.is_short for line in self.lines)

    @property
    def available(self) -> bool:
        return not self.has_shortage

    def to_dict(self) -> dict[str, Any]:
        return {
            "finished_good_id": str(self.finished_good_id),
            "planned_output": to_number(self.planned_output),
            "available": self.available,
            "lines": [line.to_dict() for line in self.lines],
            "shortages": [line.to_dict() for line in self.shortages],
        }


def planned_quantity(
    planned_output: Decimal,
    qty_required: Decimal,
    waste_percent: Decimal,
) -> Decimal:
    """Material needed for ``planned_output`` units, waste included."""
    with exact_context():
        return quantize_value(
            planned_output * qty_required * (ONE + waste_percent / HUNDRED)
        )


def plan_requirements(
    finished_good_id: UUID,
    planned_output: Decimal,
    bom: Sequence[BomLine],
    stock: Mapping[UUID, Decimal],
) -> MaterialPlan:
    """
    Explode ``bom`` for ``planned_output`` and compare against ``stock``.

    Materials absent from ``stock`` count as zero on hand.
    """
    lines = []
    for rule in bom:
        planned = planned_quantity(planned_output, rule.qty_required, rule.waste_percent)
        available = stock.get(rule.material_id, ZERO)
        lines.append(
            RequirementLine(
                material_id=rule.material_id,
                material_sku=rule.material_sku,
                material_name=rule.material_name,
                uom=rule.uom,
                qty_required=rule.qty_required,
                waste_percent=rule.waste_percent,
                planned_qty=planned,
                available_qty=available,
                shortage=max(ZERO, planned - available),
            )
        )
    return MaterialPlan(
        finished_good_id=finished_good_id,
        planned_output=planned_output,
        lines=tuple(lines),
    )
