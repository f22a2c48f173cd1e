"""
Returns Module Service (``textile_modules.returns.service``).

Responsibility
--------------
Vendor return drafts (create, update, delete), processing (stock back in)
and completion (paperwork only).

Invariants enforced
-------------------
* Line values are taken at the average cost in force when the draft is
  saved; processing receives the goods back at exactly that unit cost.
* Processing is guarded by the return's row lock and its DRAFT status, so
  a return moves stock at most once.
* FG_REJECT lines never move stock.

Failure modes
-------------
* ``ValidationError`` -- malformed lines, vendor not matching the WO.
* ``DocumentNotEditableError`` -- update/delete outside DRAFT.
* ``InvalidTransitionError`` -- process twice, complete before process.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from textile_kernel.config import KernelSettings
from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.domain.doc_numbers import DocType
from textile_kernel.domain.values import to_positive_decimal
from textile_kernel.exceptions import (
    DocumentNotEditableError,
    ItemNotFoundError,
    ValidationError,
)
from textile_kernel.logging_config import LogContext, get_logger
from textile_kernel.models.audit_log import AuditAction
from textile_kernel.models.inventory import MovementRefType, MovementType
from textile_kernel.models.item import Item
from textile_kernel.services.audit_service import AuditService
from textile_kernel.services.costing_service import CostingService
from textile_kernel.services.doc_number_service import DocNumberService
from textile_kernel.services.stock_ledger_service import MovementRef, StockLedgerService
from textile_modules._workflow_helpers import (
    get_document,
    line_total,
    lock_document,
    require_lines,
    require_text,
    sum_decimals,
    workflow_scope,
)
from textile_modules.production.orm import WorkOrderModel
from textile_modules.returns.models import (
    ReturnCondition,
    ReturnLineInput,
    ReturnLineType,
    ReturnStatus,
    VendorReturn,
)
from textile_modules.returns.orm import VendorReturnLineModel, VendorReturnModel
from textile_modules.returns.workflows import VENDOR_RETURN_WORKFLOW

logger = get_logger("modules.returns.service")

_RET = "VendorReturn"


def _parse_line(line: ReturnLineInput) -> tuple[ReturnLineInput, ReturnLineType, ReturnCondition]:
    try:
        line_type = ReturnLineType(line.line_type)
    except ValueError:
        raise ValidationError(f"Unknown return line type: {line.line_type}", "type") from None
    try:
        condition = ReturnCondition(line.condition)
    except ValueError:
        raise ValidationError(f"Unknown condition: {line.condition}", "condition") from None
    return line, line_type, condition


class VendorReturnService:
    """Vendor return drafts, processing and completion."""

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

    # =========================================================================
    # Drafts
    # =========================================================================

    def _validate_lines(self, lines: Sequence[ReturnLineInput]) -> list[tuple]:
        parsed = []
        for line in require_lines(lines):
            line, line_type, condition = _parse_line(line)
            parsed.append((
                line,
                line_type,
                condition,
                to_positive_decimal(line.qty, "qty"),
                require_text(line.reason, "reason", min_length=3),
            ))
        return parsed

    def _check_work_order(self, work_order_id: UUID | None, vendor_id: UUID) -> None:
        if work_order_id is None:
            return
        wo = get_document(self._session, WorkOrderModel, work_order_id, "WorkOrder")
        if wo.vendor_id != vendor_id:
            raise ValidationError(
                f"Vendor does not match work order {wo.doc_number}", "vendor_id"
            )

    def _build_lines(
        self,
        ret: VendorReturnModel,
        parsed: list[tuple],
        actor_id: UUID,
    ) -> None:
        rows = []
        for number, (line, line_type, condition, qty, reason) in enumerate(parsed, start=1):
            if self._session.get(Item, line.item_id) is None:
                raise ItemNotFoundError(line.item_id)
            unit_cost = self._costing.current_state(line.item_id).avg_cost
            rows.append(
                VendorReturnLineModel(
                    line_number=number,
                    line_type=line_type.value,
                    item_id=line.item_id,
                    qty=qty,
                    unit_cost=unit_cost,
                    cost_value=line_total(qty, unit_cost),
                    reason=reason,
                    condition=condition.value,
                    reference_issue_id=line.reference_issue_id,
                    created_by_id=actor_id,
                )
            )
        ret.lines[:] = rows
        ret.total_items = len(rows)
        ret.total_value = sum_decimals(row.cost_value for row in rows)

    def create_draft(
        self,
        vendor_id: UUID,
        lines: Sequence[ReturnLineInput],
        actor_id: UUID,
        work_order_id: UUID | None = None,
        notes: str | None = None,
        evidence_urls: Sequence[str] | None = None,
    ) -> VendorReturn:
        """Create a DRAFT return valued at current average cost."""
        parsed = self._validate_lines(lines)

        with workflow_scope(
            self._session, self._settings, "create_vendor_return", actor_id, DocType.RET.value
        ):
            self._check_work_order(work_order_id, vendor_id)
            doc_number = self._numbers.next_doc_number(DocType.RET)
            LogContext.set(doc_number=doc_number)

            ret = VendorReturnModel(
                id=uuid4(),
                doc_number=doc_number,
                vendor_id=vendor_id,
                work_order_id=work_order_id,
                status=ReturnStatus.DRAFT.value,
                notes=notes,
                evidence_urls=list(evidence_urls) if evidence_urls else None,
                stock_impacted=False,
                created_by_id=actor_id,
            )
            self._build_lines(ret, parsed, actor_id)
            self._session.add(ret)
            self._session.flush()

            logger.info(
                "returns_draft_created",
                extra={
                    "return_id": str(ret.id),
                    "total_items": ret.total_items,
                    "total_value": str(ret.total_value),
                },
            )
            return ret.to_dto()

    def update_draft(
        self,
        return_id: UUID,
        vendor_id: UUID,
        lines: Sequence[ReturnLineInput],
        actor_id: UUID,
        work_order_id: UUID | None = None,
        notes: str | None = None,
        evidence_urls: Sequence[str] | None = None,
    ) -> VendorReturn:
        """Replace a DRAFT return's header and lines; values are re-taken."""
        parsed = self._validate_lines(lines)

        with workflow_scope(
            self._session, self._settings, "update_vendor_return", actor_id, DocType.RET.value
        ):
            ret = lock_document(self._session, VendorReturnModel, return_id, _RET)
            LogContext.set(doc_number=ret.doc_number)
            if not VENDOR_RETURN_WORKFLOW.allows(ret.status, "edit"):
                raise DocumentNotEditableError(_RET, ret.id, ret.status)
            self._check_work_order(work_order_id, vendor_id)

            ret.vendor_id = vendor_id
            ret.work_order_id = work_order_id
            ret.notes = notes
            ret.evidence_urls = list(evidence_urls) if evidence_urls else None
            self._build_lines(ret, parsed, actor_id)
            ret.updated_by_id = actor_id
            self._session.flush()

            logger.info("returns_draft_updated", extra={"return_id": str(ret.id)})
            return ret.to_dto()

    def delete_draft(self, return_id: UUID, actor_id: UUID) -> None:
        with workflow_scope(
            self._session, self._settings, "delete_vendor_return", actor_id, DocType.RET.value
        ):
            ret = lock_document(self._session, VendorReturnModel, return_id, _RET)
            LogContext.set(doc_number=ret.doc_number)
            if not VENDOR_RETURN_WORKFLOW.allows(ret.status, "edit"):
                raise DocumentNotEditableError(_RET, ret.id, ret.status)
            self._session.delete(ret)
            self._session.flush()
            logger.info("returns_draft_deleted", extra={"return_id": str(return_id)})

    # =========================================================================
    # Processing
    # =========================================================================

    def process(self, return_id: UUID, actor_id: UUID) -> VendorReturn:
        """
        DRAFT -> PROCESSED: bring FABRIC/ACCESSORIES lines back into stock.

        Each such line is a receipt at its draft unit cost with an IN
        movement (ref RETURN).  With a linked work order, ``returned_qty``
        grows on the matching plan line.
        """
        with workflow_scope(
            self._session, self._settings, "process_vendor_return", actor_id, DocType.RET.value
        ):
            ret = lock_document(self._session, VendorReturnModel, return_id, _RET)
            LogContext.set(doc_number=ret.doc_number)
            transition = VENDOR_RETURN_WORKFLOW.require(_RET, ret.id, ret.status, "process")

            wo = None
            if ret.work_order_id is not None:
                wo = lock_document(self._session, WorkOrderModel, ret.work_order_id, "WorkOrder")

            ref = MovementRef(MovementRefType.RETURN, ret.id, ret.doc_number)
            moved = 0
            for line in ret.lines:
                if not ReturnLineType(line.line_type).moves_stock:
                    continue
                cost = self._costing.receive(line.item_id, line.qty, line.unit_cost)
                movement = self._ledger.record(
                    line.item_id,
                    MovementType.IN,
                    ref,
                    cost,
                    actor_id,
                    notes=f"Vendor return {ret.doc_number}",
                )
                line.movement_id = movement.id
                moved += 1
                if wo is not None:
                    material = wo.material_for(line.item_id)
                    if material is not None:
                        material.returned_qty = material.returned_qty + line.qty

            ret.status = transition.to_state
            ret.processed_at = self._clock.now()
            ret.processed_by_id = actor_id
            ret.stock_impacted = True
            ret.updated_by_id = actor_id
            self._session.flush()

            self._audit.record(
                actor_id=actor_id,
                action=AuditAction.VENDOR_RETURN_PROCESSED,
                entity_type=_RET,
                entity_id=ret.id,
                before={"status": ReturnStatus.DRAFT.value},
                after={"status": ret.status, "total_value": ret.total_value},
                context={"work_order_id": ret.work_order_id, "lines_moved": moved},
            )
            logger.info(
                "returns_processed",
                extra={"return_id": str(ret.id), "lines_moved": moved},
            )
            return ret.to_dto()

    def complete(
        self,
        return_id: UUID,
        actor_id: UUID,
        tracking_number: str | None = None,
        receipt_file_url: str | None = None,
    ) -> VendorReturn:
        """PROCESSED -> COMPLETED.  No inventory effect."""
        with workflow_scope(
            self._session, self._settings, "complete_vendor_return", actor_id, DocType.RET.value
        ):
            ret = lock_document(self._session, VendorReturnModel, return_id, _RET)
            LogContext.set(doc_number=ret.doc_number)
            transition = VENDOR_RETURN_WORKFLOW.require(_RET, ret.id, ret.status, "complete")

            ret.status = transition.to_state
            ret.completed_at = self._clock.now()
            ret.completed_by_id = actor_id
            ret.tracking_number = tracking_number
            ret.receipt_file_url = receipt_file_url
            ret.updated_by_id = actor_id
            self._session.flush()

            self._audit.record(
                actor_id=actor_id,
                action=AuditAction.VENDOR_RETURN_COMPLETED,
                entity_type=_RET,
                entity_id=ret.id,
                before={"status": ReturnStatus.PROCESSED.value},
                after={"status": ret.status, "tracking_number": tracking_number},
            )
            logger.info("returns_completed", extra={"return_id": str(ret.id)})
            return ret.to_dto()

    def get_return(self, return_id: UUID) -> VendorReturn:
        return get_document(self._session, VendorReturnModel, return_id, _RET).to_dto()
