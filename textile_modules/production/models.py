"""
Production Domain Models.

The nouns of production: work orders and their consumption plan, material
issues, finished-goods receipts, BOM input and reconciliation results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from textile_kernel.domain.values import ZERO, to_number


class WorkOrderStatus(str, Enum):
    """Work order lifecycle states."""
    DRAFT = "DRAFT"
    ISSUED = "ISSUED"
    IN_PRODUCTION = "IN_PRODUCTION"
    PARTIAL = "PARTIAL"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OutputMode(str, Enum):
    """Whether output is counted generically or per finished-good SKU."""
    GENERIC = "GENERIC"
    SKU = "SKU"


class IssueType(str, Enum):
    FABRIC = "FABRIC"
    ACCESSORIES = "ACCESSORIES"


class ReconciliationStatus(str, Enum):
    """Material usage against theoretical, within tolerance."""
    OK = "OK"
    OVER = "OVER"
    UNDER = "UNDER"


# -----------------------------------------------------------------------------
# Inputs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RollBreakdownInput:
    """Planned output of one fabric roll; the rolls must add up to planned qty."""
    roll_ref: str
    qty: Any
    notes: str | None = None


@dataclass(frozen=True)
class IssueLineInput:
    item_id: UUID
    qty: Any


@dataclass(frozen=True)
class BomLineInput:
    """A consumption rule to save for a finished good."""
    material_id: UUID
    qty_required: Any
    waste_percent: Any = ZERO
    notes: str | None = None


# -----------------------------------------------------------------------------
# DTOs
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkOrderMaterial:
    """One consumption-plan line with its issue/return progress."""
    id: UUID
    material_id: UUID
    material_sku: str
    material_name: str
    uom: str
    qty_required: Decimal
    waste_percent: Decimal
    planned_qty: Decimal
    issued_qty: Decimal = ZERO
    returned_qty: Decimal = ZERO

    @property
    def outstanding_qty(self) -> Decimal:
        return max(ZERO, self.planned_qty - self.issued_qty)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "material_id": str(self.material_id),
            "material_sku": self.material_sku,
            "material_name": self.material_name,
            "uom": self.uom,
            "qty_required": to_number(self.qty_required),
            "waste_percent": to_number(self.waste_percent),
            "planned_qty": to_number(self.planned_qty),
            "issued_qty": to_number(self.issued_qty),
            "returned_qty": to_number(self.returned_qty),
        }


@dataclass(frozen=True)
class WorkOrder:
    """A CMT production order."""
    id: UUID
    doc_number: str
    vendor_id: UUID
    finished_good_id: UUID
    planned_qty: Decimal
    output_mode: OutputMode = OutputMode.GENERIC
    actual_qty: Decimal = ZERO
    status: WorkOrderStatus = WorkOrderStatus.DRAFT
    target_date: date | None = None
    notes: str | None = None
    roll_breakdown: tuple[dict[str, Any], ...] = ()
    issued_at: datetime | None = None
    completed_at: datetime | None = None
    canceled_at: datetime | None = None
    cancel_reason: str | None = None
    materials: tuple[WorkOrderMaterial, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "doc_number": self.doc_number,
            "vendor_id": str(self.vendor_id),
            "finished_good_id": str(self.finished_good_id),
            "output_mode": self.output_mode.value,
            "planned_qty": to_number(self.planned_qty),
            "actual_qty": to_number(self.actual_qty),
            "status": self.status.value,
            "target_date": self.target_date.isoformat() if self.target_date else None,
            "notes": self.notes,
            "roll_breakdown": list(self.roll_breakdown),
            "issued_at": self.issued_at.isoformat() if self.issued_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "canceled_at": self.canceled_at.isoformat() if self.canceled_at else None,
            "cancel_reason": self.cancel_reason,
            "materials": [m.to_dict() for m in self.materials],
        }


@dataclass(frozen=True)
class MaterialIssueLine:
    id: UUID
    line_number: int
    item_id: UUID
    qty: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    balance_qty: Decimal
    movement_id: UUID

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "line_number": self.line_number,
            "item_id": str(self.item_id),
            "qty": to_number(self.qty),
            "unit_cost": to_number(self.unit_cost),
            "total_cost": to_number(self.total_cost),
            "balance_qty": to_number(self.balance_qty),
        }


@dataclass(frozen=True)
class MaterialIssue:
    """Materials issued to the vendor for a work order."""
    id: UUID
    doc_number: str
    work_order_id: UUID
    issue_type: IssueType
    total_cost: Decimal
    issued_at: datetime
    notes: str | None = None
    lines: tuple[MaterialIssueLine, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "doc_number": self.doc_number,
            "work_order_id": str(self.work_order_id),
            "issue_type": self.issue_type.value,
            "total_cost": to_number(self.total_cost),
            "issued_at": self.issued_at.isoformat(),
            "notes": self.notes,
            "lines": [line.to_dict() for line in self.lines],
        }


@dataclass(frozen=True)
class FGReceipt:
    """Finished goods received from the vendor."""
    id: UUID
    doc_number: str
    work_order_id: UUID
    qty_received: Decimal
    qty_rejected: Decimal
    qty_accepted: Decimal
    material_cost: Decimal
    unit_cost: Decimal
    total_value: Decimal
    received_at: datetime
    received_by_id: UUID
    qc_notes: str | None = None
    qc_photos: tuple[str, ...] = ()
    movement_id: UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "doc_number": self.doc_number,
            "work_order_id": str(self.work_order_id),
            "qty_received": to_number(self.qty_received),
            "qty_rejected": to_number(self.qty_rejected),
            "qty_accepted": to_number(self.qty_accepted),
            "material_cost": to_number(self.material_cost),
            "unit_cost": to_number(self.unit_cost),
            "total_value": to_number(self.total_value),
            "received_at": self.received_at.isoformat(),
            "received_by_id": str(self.received_by_id),
            "qc_notes": self.qc_notes,
            "qc_photos": list(self.qc_photos),
        }


# -----------------------------------------------------------------------------
# Reconciliation
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ReconciliationLine:
    """Issued vs theoretical usage of one material."""
    material_id: UUID
    material_sku: str
    material_name: str
    uom: str
    planned_qty: Decimal
    issued_qty: Decimal
    returned_qty: Decimal
    actual_used: Decimal
    theoretical_usage: Decimal
    variance: Decimal
    variance_percent: Decimal
    issued_value: Decimal
    used_value: Decimal
    variance_value: Decimal
    status: ReconciliationStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "material_id": str(self.material_id),
            "material_sku": self.material_sku,
            "material_name": self.material_name,
            "uom": self.uom,
            "planned_qty": to_number(self.planned_qty),
            "issued_qty": to_number(self.issued_qty),
            "returned_qty": to_number(self.returned_qty),
            "actual_used": to_number(self.actual_used),
            "theoretical_usage": to_number(self.theoretical_usage),
            "variance": to_number(self.variance),
            "variance_percent": to_number(self.variance_percent),
            "issued_value": to_number(self.issued_value),
            "used_value": to_number(self.used_value),
            "variance_value": to_number(self.variance_value),
            "status": self.status.value,
        }


@dataclass(frozen=True)
class ReconciliationSummary:
    total_issues: int
    total_receipts: int
    total_returns: int
    total_material_cost: Decimal
    total_fg_value: Decimal
    material_variance: Decimal
    completion_percent: Decimal
    total_issued_value: Decimal
    total_used_value: Decimal
    net_variance_value: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_issues": self.total_issues,
            "total_receipts": self.total_receipts,
            "total_returns": self.total_returns,
            "total_material_cost": to_number(self.total_material_cost),
            "total_fg_value": to_number(self.total_fg_value),
            "material_variance": to_number(self.material_variance),
            "completion_percent": to_number(self.completion_percent),
            "total_issued_value": to_number(self.total_issued_value),
            "total_used_value": to_number(self.total_used_value),
            "net_variance_value": to_number(self.net_variance_value),
        }


@dataclass(frozen=True)
class WorkOrderReconciliation:
    work_order: WorkOrder
    lines: tuple[ReconciliationLine, ...]
    summary: ReconciliationSummary

    @property
    def has_variance(self) -> bool:
        return any(line.status is not ReconciliationStatus.OK for line in self.lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "work_order": self.work_order.to_dict(),
            "lines": [line.to_dict() for line in self.lines],
            "summary": self.summary.to_dict(),
        }
