"""
Production Module Service (``textile_modules.production.service``).

Responsibility
--------------
Work order lifecycle (create, issue, cancel), material issues to the CMT
vendor, finished-goods receipts and BOM maintenance.

Architecture position
---------------------
**Modules layer** -- ``ProductionService`` is the sole public entry point
for production operations.  Planning, numbering, costing and the ledger
come from ``textile_kernel``.

Invariants enforced
-------------------
* Work order creation re-runs the material plan inside its transaction and
  fails closed on any shortage: nothing is persisted.
* Material leaves stock at the moving-average cost in force under the row
  lock; it can never go negative.
* Finished goods come in at total issued material cost divided by the
  accepted quantity of the receipt.
* The WO row is locked before its plan rollups or status change.

Failure modes
-------------
* ``MaterialShortageError`` -- plan shortage at WO creation.
* ``InsufficientStockError`` -- issue quantity exceeds stock on hand.
* ``ValidationError`` -- issuing a material not in the plan, rejected >
  received, roll breakdown not adding up to planned qty.
* ``InvalidTransitionError`` -- action not allowed in the WO's status.
* ``DocumentHasDependentsError`` -- cancel of a WO with FG receipts.

Usage::

    service = ProductionService(session, clock=clock)
    wo = service.create_work_order(
        vendor_id=vendor_id,
        finished_good_id=shirt_id,
        planned_qty="100",
        actor_id=actor_id,
    )
    service.issue_work_order(wo.id, actor_id)
    service.issue_materials(
        wo.id, [IssueLineInput(fabric_id, "150")], actor_id, IssueType.FABRIC,
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from textile_kernel.config import KernelSettings
from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.domain.doc_numbers import DocType
from textile_kernel.domain.planning import BomLine
from textile_kernel.domain.values import (
    HUNDRED,
    ZERO,
    exact_context,
    quantize_value,
    safe_divide,
    to_non_negative_decimal,
    to_positive_decimal,
)
from textile_kernel.exceptions import (
    DocumentHasDependentsError,
    InvalidTransitionError,
    ItemNotFoundError,
    MaterialShortageError,
    ValidationError,
)
from textile_kernel.logging_config import LogContext, get_logger
from textile_kernel.models.audit_log import AuditAction
from textile_kernel.models.inventory import MovementRefType, MovementType
from textile_kernel.models.item import ConsumptionRule, Item, ItemType
from textile_kernel.selectors.material_plan_selector import MaterialPlanSelector
from textile_kernel.services.audit_service import AuditService
from textile_kernel.services.costing_service import CostingService
from textile_kernel.services.doc_number_service import DocNumberService
from textile_kernel.services.stock_ledger_service import MovementRef, StockLedgerService
from textile_modules._workflow_helpers import (
    get_document,
    lock_document,
    require_lines,
    require_text,
    sum_decimals,
    workflow_scope,
)
from textile_modules.production.models import (
    BomLineInput,
    FGReceipt,
    IssueLineInput,
    IssueType,
    MaterialIssue,
    OutputMode,
    RollBreakdownInput,
    WorkOrder,
    WorkOrderStatus,
)
from textile_modules.production.orm import (
    FGReceiptModel,
    MaterialIssueLineModel,
    MaterialIssueModel,
    WorkOrderMaterialModel,
    WorkOrderModel,
)
from textile_modules.production.workflows import WORK_ORDER_WORKFLOW, output_status

logger = get_logger("modules.production.service")

_WO = "WorkOrder"


def _enum(enum_type, value, field):
    try:
        return enum_type(value)
    except ValueError:
        raise ValidationError(f"Unknown {field}: {value}", field) from None


class ProductionService:
    """
    Work orders, material issues, FG receipts and BOMs.

    Contract
    --------
    * Write methods return frozen DTOs built inside the transaction.
    * ``save_bom`` is the only writer of consumption rules.

    Non-goals
    ---------
    * Does NOT manage CMT vendors; ``vendor_id`` is an opaque reference.
    * Does NOT split one issue across several vendors.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: KernelSettings | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or KernelSettings.with_defaults()

        self._numbers = DocNumberService(session, self._clock, self._settings.doc_numbers)
        self._costing = CostingService(session, self._clock)
        self._ledger = StockLedgerService(session, self._clock)
        self._audit = AuditService(session, self._clock)
        self._plans = MaterialPlanSelector(session)

    # =========================================================================
    # Bill of Materials
    # =========================================================================

    def save_bom(
        self,
        finished_good_id: UUID,
        lines: Sequence[BomLineInput],
        actor_id: UUID,
    ) -> list[BomLine]:
        """
        Replace the consumption rules of ``finished_good_id``.

        Each material may appear once; ``waste_percent`` is 0-100.
        """
        lines = require_lines(lines)
        parsed = []
        seen: set[UUID] = set()
        for line in lines:
            if line.material_id in seen:
                raise ValidationError(
                    f"Material {line.material_id} appears more than once", "material_id"
                )
            seen.add(line.material_id)
            waste = to_non_negative_decimal(line.waste_percent, "waste_percent")
            if waste > HUNDRED:
                raise ValidationError("waste_percent cannot exceed 100", "waste_percent")
            parsed.append((line, to_positive_decimal(line.qty_required, "qty_required"), waste))

        with workflow_scope(self._session, self._settings, "save_bom", actor_id):
            finished_good = self._session.get(Item, finished_good_id)
            if finished_good is None:
                raise ItemNotFoundError(finished_good_id)
            if finished_good.item_type != ItemType.FINISHED_GOOD.value:
                raise ValidationError(
                    f"{finished_good.sku} is not a finished good", "finished_good_id"
                )
            for line, _, _ in parsed:
                material = self._session.get(Item, line.material_id)
                if material is None:
                    raise ItemNotFoundError(line.material_id)
                if not ItemType(material.item_type).is_raw_material:
                    raise ValidationError(
                        f"{material.sku} is not a raw material", "material_id"
                    )

            self._session.execute(
                delete(ConsumptionRule).where(
                    ConsumptionRule.finished_good_id == finished_good_id
                )
            )
            self._session.flush()

            for line, qty_required, waste in parsed:
                rule = ConsumptionRule(
                    finished_good_id=finished_good_id,
                    material_id=line.material_id,
                    qty_required=qty_required,
                    waste_percent=waste,
                    notes=line.notes,
                    created_by_id=actor_id,
                )
                self._session.add(rule)
            self._session.flush()
            bom = self._plans.bom_lines(finished_good_id)

            logger.info(
                "production_bom_saved",
                extra={
                    "finished_good_id": str(finished_good_id),
                    "line_count": len(bom),
                },
            )
            return bom

    # =========================================================================
    # Work Orders
    # =========================================================================

    def create_work_order(
        self,
        vendor_id: UUID,
        finished_good_id: UUID,
        planned_qty: Any,
        actor_id: UUID,
        output_mode: OutputMode | str = OutputMode.GENERIC,
        target_date: date | None = None,
        notes: str | None = None,
        roll_breakdown: Sequence[RollBreakdownInput] | None = None,
    ) -> WorkOrder:
        """
        Create a DRAFT work order with its consumption plan.

        The plan is computed from the active BOM and current stock inside
        the transaction.  Any shortage raises ``MaterialShortageError`` and
        no number is consumed.
        """
        planned = to_positive_decimal(planned_qty, "planned_qty")
        output_mode = _enum(OutputMode, output_mode, "output_mode")
        rolls = self._parse_roll_breakdown(roll_breakdown, planned)

        with workflow_scope(
            self._session, self._settings, "create_work_order", actor_id, DocType.WO.value
        ):
            plan = self._plans.check_availability(finished_good_id, planned)
            if not plan.lines:
                raise ValidationError(
                    "Finished good has no active bill of materials", "finished_good_id"
                )
            if plan.has_shortage:
                logger.warning(
                    "production_wo_blocked_by_shortage",
                    extra={
                        "finished_good_id": str(finished_good_id),
                        "shortage_count": len(plan.shortages),
                    },
                )
                raise MaterialShortageError(
                    finished_good_id, [line.to_dict() for line in plan.shortages]
                )

            doc_number = self._numbers.next_doc_number(DocType.WO)
            LogContext.set(doc_number=doc_number)

            wo = WorkOrderModel(
                id=uuid4(),
                doc_number=doc_number,
                vendor_id=vendor_id,
                finished_good_id=finished_good_id,
                output_mode=output_mode.value,
                planned_qty=planned,
                actual_qty=ZERO,
                status=WorkOrderStatus.DRAFT.value,
                target_date=target_date,
                notes=notes,
                roll_breakdown=rolls,
                created_by_id=actor_id,
            )
            for line in plan.lines:
                wo.materials.append(
                    WorkOrderMaterialModel(
                        material_id=line.material_id,
                        qty_required=line.qty_required,
                        waste_percent=line.waste_percent,
                        planned_qty=line.planned_qty,
                        issued_qty=ZERO,
                        returned_qty=ZERO,
                        created_by_id=actor_id,
                    )
                )
            self._session.add(wo)
            self._session.flush()

            logger.info(
                "production_wo_created",
                extra={
                    "work_order_id": str(wo.id),
                    "finished_good_id": str(finished_good_id),
                    "planned_qty": str(planned),
                    "material_count": len(plan.lines),
                },
            )
            return wo.to_dto()

    @staticmethod
    def _parse_roll_breakdown(
        rolls: Sequence[RollBreakdownInput] | None,
        planned: Decimal,
    ) -> list[dict[str, Any]] | None:
        if not rolls:
            return None
        parsed = []
        for roll in rolls:
            qty = to_non_negative_decimal(roll.qty, "roll_breakdown.qty")
            parsed.append({
                "roll_ref": require_text(roll.roll_ref, "roll_breakdown.roll_ref"),
                "qty": str(qty),
                "notes": roll.notes,
            })
        total = sum_decimals(Decimal(roll["qty"]) for roll in parsed)
        if total != planned:
            raise ValidationError(
                f"Roll breakdown total {total} must equal planned qty {planned}",
                "roll_breakdown",
            )
        return parsed

    def issue_work_order(self, wo_id: UUID, actor_id: UUID) -> WorkOrder:
        """DRAFT -> ISSUED."""
        with workflow_scope(
            self._session, self._settings, "issue_work_order", actor_id, DocType.WO.value
        ):
            wo = lock_document(self._session, WorkOrderModel, wo_id, _WO)
            LogContext.set(doc_number=wo.doc_number)
            transition = WORK_ORDER_WORKFLOW.require(_WO, wo.id, wo.status, "issue")
            wo.status = transition.to_state
            wo.issued_at = self._clock.now()
            wo.updated_by_id = actor_id
            self._session.flush()
            logger.info("production_wo_issued", extra={"work_order_id": str(wo.id)})
            return wo.to_dto()

    def cancel_work_order(
        self,
        wo_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> WorkOrder:
        """DRAFT/ISSUED -> CANCELLED, blocked once any FG receipt exists."""
        with workflow_scope(
            self._session, self._settings, "cancel_work_order", actor_id, DocType.WO.value
        ):
            wo = lock_document(self._session, WorkOrderModel, wo_id, _WO)
            LogContext.set(doc_number=wo.doc_number)

            receipt_count = self._session.execute(
                select(func.count(FGReceiptModel.id)).where(
                    FGReceiptModel.work_order_id == wo.id
                )
            ).scalar_one()
            if receipt_count:
                raise DocumentHasDependentsError(_WO, wo.id, "FGReceipt", receipt_count)
            transition = WORK_ORDER_WORKFLOW.require(_WO, wo.id, wo.status, "cancel")

            before_status = wo.status
            wo.status = transition.to_state
            wo.canceled_at = self._clock.now()
            wo.cancel_reason = reason
            wo.updated_by_id = actor_id
            self._session.flush()
            self._audit.record(
                actor_id=actor_id,
                action=AuditAction.WORK_ORDER_CANCELLED,
                entity_type=_WO,
                entity_id=wo.id,
                before={"status": before_status},
                after={"status": wo.status},
                reason=reason,
            )
            logger.info("production_wo_cancelled", extra={"work_order_id": str(wo.id)})
            return wo.to_dto()

    def get_work_order(self, wo_id: UUID) -> WorkOrder:
        return get_document(self._session, WorkOrderModel, wo_id, _WO).to_dto()

    # =========================================================================
    # Material Issue
    # =========================================================================

    def issue_materials(
        self,
        wo_id: UUID,
        lines: Sequence[IssueLineInput],
        actor_id: UUID,
        issue_type: IssueType | str,
        notes: str | None = None,
    ) -> MaterialIssue:
        """
        Issue materials to the vendor against a work order.

        Per line: consumption at the current average cost and an OUT
        movement (ref WO_ISSUE); the issued qty is rolled up onto the plan.
        """
        issue_type = _enum(IssueType, issue_type, "issue_type")
        parsed = [
            (line, to_positive_decimal(line.qty, "qty")) for line in require_lines(lines)
        ]

        with workflow_scope(
            self._session, self._settings, "issue_materials", actor_id, DocType.ISSUE.value
        ):
            wo = lock_document(self._session, WorkOrderModel, wo_id, _WO)
            if not WORK_ORDER_WORKFLOW.allows(wo.status, "issue_materials"):
                raise InvalidTransitionError(_WO, wo.id, wo.status, "issue_materials")
            planned_lines = []
            for line, qty in parsed:
                material = wo.material_for(line.item_id)
                if material is None:
                    raise ValidationError(
                        f"Item {line.item_id} is not in the plan of {wo.doc_number}", "item_id"
                    )
                planned_lines.append((line, qty, material))

            doc_number = self._numbers.next_doc_number(DocType.ISSUE)
            LogContext.set(doc_number=doc_number)

            issue = MaterialIssueModel(
                id=uuid4(),
                doc_number=doc_number,
                work_order_id=wo.id,
                issue_type=issue_type.value,
                total_cost=ZERO,
                issued_at=self._clock.now(),
                notes=notes,
                created_by_id=actor_id,
            )
            self._session.add(issue)
            ref = MovementRef(MovementRefType.WO_ISSUE, issue.id, doc_number)

            for number, (line, qty, material) in enumerate(planned_lines, start=1):
                transition = self._costing.consume(line.item_id, qty)
                movement = self._ledger.record(
                    line.item_id,
                    MovementType.OUT,
                    ref,
                    transition,
                    actor_id,
                    notes=f"Issued to {wo.doc_number}",
                )
                issue.lines.append(
                    MaterialIssueLineModel(
                        line_number=number,
                        item_id=line.item_id,
                        qty=-transition.qty,
                        unit_cost=transition.unit_cost,
                        total_cost=-transition.total_cost,
                        balance_qty=transition.after.qty_on_hand,
                        movement_id=movement.id,
                        created_by_id=actor_id,
                    )
                )
                material.issued_qty = material.issued_qty + qty

            issue.total_cost = sum_decimals(line.total_cost for line in issue.lines)
            transition = WORK_ORDER_WORKFLOW.require(_WO, wo.id, wo.status, "issue_materials")
            wo.status = transition.to_state
            wo.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "production_materials_issued",
                extra={
                    "work_order_id": str(wo.id),
                    "issue_id": str(issue.id),
                    "line_count": len(planned_lines),
                    "total_cost": str(issue.total_cost),
                },
            )
            return issue.to_dto()

    # =========================================================================
    # Finished Goods Receipt
    # =========================================================================

    def receive_finished_goods(
        self,
        wo_id: UUID,
        qty_received: Any,
        actor_id: UUID,
        qty_rejected: Any = ZERO,
        qc_notes: str | None = None,
        qc_photos: Sequence[str] | None = None,
    ) -> FGReceipt:
        """
        Receive finished goods from the vendor.

        unit cost = total cost of every material issue of the WO / accepted
        qty (0 when nothing is accepted).  Accepted goods enter stock via a
        receipt transition and an IN movement (ref FG_RECEIPT).
        """
        received = to_positive_decimal(qty_received, "qty_received")
        rejected = to_non_negative_decimal(qty_rejected, "qty_rejected")
        if rejected > received:
            raise ValidationError("qty_rejected cannot exceed qty_received", "qty_rejected")
        with exact_context():
            accepted = quantize_value(received - rejected)

        with workflow_scope(
            self._session, self._settings, "receive_finished_goods", actor_id,
            DocType.RECEIPT.value,
        ):
            wo = lock_document(self._session, WorkOrderModel, wo_id, _WO)
            if not WORK_ORDER_WORKFLOW.allows(wo.status, "receive_fg"):
                raise InvalidTransitionError(_WO, wo.id, wo.status, "receive_fg")

            doc_number = self._numbers.next_doc_number(DocType.RECEIPT)
            LogContext.set(doc_number=doc_number)

            material_cost = sum_decimals(
                self._session.execute(
                    select(MaterialIssueModel.total_cost).where(
                        MaterialIssueModel.work_order_id == wo.id
                    )
                ).scalars()
            )
            with exact_context():
                unit_cost = quantize_value(safe_divide(material_cost, accepted))

            receipt = FGReceiptModel(
                id=uuid4(),
                doc_number=doc_number,
                work_order_id=wo.id,
                receipt_type=wo.output_mode,
                qty_received=received,
                qty_rejected=rejected,
                qty_accepted=accepted,
                material_cost=material_cost,
                unit_cost=unit_cost,
                total_value=ZERO,
                qc_notes=qc_notes,
                qc_photos=list(qc_photos) if qc_photos else None,
                received_at=self._clock.now(),
                received_by_id=actor_id,
                created_by_id=actor_id,
            )
            self._session.add(receipt)

            if accepted > ZERO:
                transition = self._costing.receive(wo.finished_good_id, accepted, unit_cost)
                movement = self._ledger.record(
                    wo.finished_good_id,
                    MovementType.IN,
                    MovementRef(MovementRefType.FG_RECEIPT, receipt.id, doc_number),
                    transition,
                    actor_id,
                    notes=f"FG receipt {doc_number}",
                )
                receipt.total_value = transition.total_cost
                receipt.movement_id = movement.id

            with exact_context():
                wo.actual_qty = quantize_value(wo.actual_qty + accepted)
            transition = WORK_ORDER_WORKFLOW.require(
                _WO, wo.id, wo.status, "receive_fg",
                output_status(wo.actual_qty, wo.planned_qty),
            )
            wo.status = transition.to_state
            if wo.status == WorkOrderStatus.COMPLETED.value:
                wo.completed_at = self._clock.now()
            wo.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "production_fg_received",
                extra={
                    "work_order_id": str(wo.id),
                    "receipt_id": str(receipt.id),
                    "qty_accepted": str(accepted),
                    "unit_cost": str(unit_cost),
                    "wo_status": wo.status,
                },
            )
            return receipt.to_dto()
