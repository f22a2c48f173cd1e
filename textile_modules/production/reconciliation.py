"""
Work order material reconciliation.

Compares what was issued to the vendor (net of processed returns) with the
theoretical usage implied by the accepted output:

    actual_used       = issued - returned
    theoretical_usage = actual_output * qty_required * (1 + waste% / 100)
    variance          = actual_used - theoretical_usage
    variance %        = variance / theoretical_usage * 100   (0 when none)

A line is OK when |variance| is within ``reconciliation_tolerance_percent``
of theoretical usage, otherwise OVER or UNDER.  Values are priced at the
weighted average cost the material was issued at.

Read-only.  Returns in status PROCESSED or COMPLETED count; FG_REJECT lines
never do.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from textile_kernel.config import KernelSettings
from textile_kernel.domain.values import (
    HUNDRED,
    ONE,
    ZERO,
    exact_context,
    quantize_value,
    safe_divide,
)
from textile_kernel.logging_config import get_logger
from textile_kernel.selectors.base import BaseSelector
from textile_modules._workflow_helpers import get_document, sum_decimals
from textile_modules.production.models import (
    ReconciliationLine,
    ReconciliationStatus,
    ReconciliationSummary,
    WorkOrderReconciliation,
)
from textile_modules.production.orm import (
    FGReceiptModel,
    MaterialIssueLineModel,
    MaterialIssueModel,
    WorkOrderModel,
)
from textile_modules.returns.models import ReturnLineType, ReturnStatus
from textile_modules.returns.orm import VendorReturnLineModel, VendorReturnModel

logger = get_logger("modules.production.reconciliation")

_COUNTED_RETURNS = (ReturnStatus.PROCESSED.value, ReturnStatus.COMPLETED.value)


def classify_variance(
    variance: Decimal,
    theoretical: Decimal,
    tolerance_percent: Decimal,
) -> ReconciliationStatus:
    with exact_context():
        allowed = theoretical * tolerance_percent / HUNDRED
    if abs(variance) <= allowed:
        return ReconciliationStatus.OK
    return ReconciliationStatus.OVER if variance > ZERO else ReconciliationStatus.UNDER


class WorkOrderReconciler(BaseSelector):
    """Builds ``WorkOrderReconciliation`` views.  Never writes."""

    def __init__(self, session: Session, settings: KernelSettings | None = None):
        super().__init__(session)
        self._settings = settings or KernelSettings.with_defaults()

    def _issued(self, wo_id: UUID) -> tuple[dict[UUID, Decimal], dict[UUID, Decimal]]:
        qty: dict[UUID, list[Decimal]] = defaultdict(list)
        value: dict[UUID, list[Decimal]] = defaultdict(list)
        rows = self.session.execute(
            select(MaterialIssueLineModel.item_id, MaterialIssueLineModel.qty,
                   MaterialIssueLineModel.total_cost)
            .join(MaterialIssueModel, MaterialIssueModel.id == MaterialIssueLineModel.issue_id)
            .where(MaterialIssueModel.work_order_id == wo_id)
        )
        for item_id, line_qty, line_cost in rows:
            qty[item_id].append(line_qty)
            value[item_id].append(line_cost)
        return (
            {k: sum_decimals(v) for k, v in qty.items()},
            {k: sum_decimals(v) for k, v in value.items()},
        )

    def _returned(self, wo_id: UUID) -> dict[UUID, Decimal]:
        returned: dict[UUID, list[Decimal]] = defaultdict(list)
        rows = self.session.execute(
            select(VendorReturnLineModel.item_id, VendorReturnLineModel.qty)
            .join(VendorReturnModel, VendorReturnModel.id == VendorReturnLineModel.return_id)
            .where(
                VendorReturnModel.work_order_id == wo_id,
                VendorReturnModel.status.in_(_COUNTED_RETURNS),
                VendorReturnLineModel.line_type != ReturnLineType.FG_REJECT.value,
            )
        )
        for item_id, line_qty in rows:
            returned[item_id].append(line_qty)
        return {k: sum_decimals(v) for k, v in returned.items()}

    def reconcile(self, wo_id: UUID) -> WorkOrderReconciliation:
        """
        Reconcile one work order.

        Raises:
            DocumentNotFoundError: If the work order does not exist.
        """
        wo = get_document(self.session, WorkOrderModel, wo_id, "WorkOrder")
        tolerance = self._settings.reconciliation_tolerance_percent
        issued_qty, issued_value = self._issued(wo.id)
        returned_qty = self._returned(wo.id)
        output = wo.actual_qty

        lines = []
        for material in sorted(wo.materials, key=lambda m: m.material.sku):
            issued = issued_qty.get(material.material_id, ZERO)
            returned = returned_qty.get(material.material_id, ZERO)
            value = issued_value.get(material.material_id, ZERO)
            with exact_context():
                actual_used = issued - returned
                theoretical = quantize_value(
                    output * material.qty_required
                    * (ONE + material.waste_percent / HUNDRED)
                )
                variance = actual_used - theoretical
                variance_percent = quantize_value(
                    safe_divide(variance * HUNDRED, theoretical)
                )
                unit_cost = safe_divide(value, issued)
                used_value = quantize_value(actual_used * unit_cost)
                variance_value = quantize_value(variance * unit_cost)
            lines.append(
                ReconciliationLine(
                    material_id=material.material_id,
                    material_sku=material.material.sku,
                    material_name=material.material.name,
                    uom=material.material.uom,
                    planned_qty=material.planned_qty,
                    issued_qty=issued,
                    returned_qty=returned,
                    actual_used=actual_used,
                    theoretical_usage=theoretical,
                    variance=variance,
                    variance_percent=variance_percent,
                    issued_value=value,
                    used_value=used_value,
                    variance_value=variance_value,
                    status=classify_variance(variance, theoretical, tolerance),
                )
            )

        summary = self._summary(wo, lines)
        logger.info(
            "production_wo_reconciled",
            extra={
                "work_order_id": str(wo.id),
                "line_count": len(lines),
                "variance_lines": sum(
                    1 for line in lines if line.status is not ReconciliationStatus.OK
                ),
            },
        )
        return WorkOrderReconciliation(
            work_order=wo.to_dto(),
            lines=tuple(lines),
            summary=summary,
        )

    def _summary(
        self,
        wo: WorkOrderModel,
        lines: list[ReconciliationLine],
    ) -> ReconciliationSummary:
        issue_totals = list(
            self.session.execute(
                select(MaterialIssueModel.total_cost).where(
                    MaterialIssueModel.work_order_id == wo.id
                )
            ).scalars()
        )
        receipt_values = list(
            self.session.execute(
                select(FGReceiptModel.total_value).where(
                    FGReceiptModel.work_order_id == wo.id
                )
            ).scalars()
        )
        return_count = len(
            self.session.execute(
                select(VendorReturnModel.id).where(
                    VendorReturnModel.work_order_id == wo.id,
                    VendorReturnModel.status.in_(_COUNTED_RETURNS),
                )
            ).all()
        )
        material_cost = sum_decimals(issue_totals)
        fg_value = sum_decimals(receipt_values)
        with exact_context():
            completion = quantize_value(safe_divide(wo.actual_qty * HUNDRED, wo.planned_qty))
            material_variance = material_cost - fg_value
        return ReconciliationSummary(
            total_issues=len(issue_totals),
            total_receipts=len(receipt_values),
            total_returns=return_count,
            total_material_cost=material_cost,
            total_fg_value=fg_value,
            material_variance=material_variance,
            completion_percent=completion,
            total_issued_value=sum_decimals(line.issued_value for line in lines),
            total_used_value=sum_decimals(line.used_value for line in lines),
            net_variance_value=sum_decimals(line.variance_value for line in lines),
        )
