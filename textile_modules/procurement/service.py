"""
Procurement Module Service (``textile_modules.procurement.service``).

Responsibility
--------------
Purchase order management (create, edit, submit, cancel), goods receipt
posting and the overdue-PO query.  Goods receipts compose the kernel
sequencer, costing engine and stock ledger in one transaction together with
the PO received-quantity rollup.

Architecture position
---------------------
**Modules layer** -- ``ProcurementService`` is the sole public entry point
for procurement operations.

Invariants enforced
-------------------
* Each public write method owns the transaction boundary through
  ``unit_of_work``: commit on success, rollback on any exception.
* The PO row is locked (``SELECT ... FOR UPDATE``) before its rollup or
  status is changed.
* Every PO status change writes a POStatusHistory row.
* Editing a submitted PO and cancelling a PO require step-up verification
  before the first write.

Failure modes
-------------
* ``ValidationError`` -- malformed lines, GRN item not on the linked PO.
* ``InvalidTransitionError`` -- GRN against a PO not SUBMITTED/PARTIAL,
  submit of a non-draft PO.
* ``DocumentHasDependentsError`` -- cancel of a PO with goods receipts.
* ``StepUpRejectedError`` / ``StepUpRateLimitedError``.
* ``LockTimeoutError`` -- lock wait exceeded; retry the whole call.

Usage::

    service = ProcurementService(session, clock=clock, settings=settings)
    grn = service.receive_goods(
        supplier_id=supplier_id,
        lines=[GRNLineInput(item_id=fabric_id, qty="200", unit_cost="25000")],
        actor_id=actor_id,
        po_id=po.id,
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from textile_kernel.config import KernelSettings
from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.domain.doc_numbers import DocType
from textile_kernel.domain.values import (
    ZERO,
    to_non_negative_decimal,
    to_positive_decimal,
)
from textile_kernel.exceptions import (
    DocumentHasDependentsError,
    DocumentNotEditableError,
    InvalidTransitionError,
    ItemNotFoundError,
    ValidationError,
)
from textile_kernel.logging_config import LogContext, get_logger
from textile_kernel.models.audit_log import AuditAction
from textile_kernel.models.inventory import MovementRefType, MovementType
from textile_kernel.models.item import Item
from textile_kernel.services.audit_service import AuditService
from textile_kernel.services.authorization import SensitiveAction, StepUpGate
from textile_kernel.services.costing_service import CostingService
from textile_kernel.services.doc_number_service import DocNumberService
from textile_kernel.services.stock_ledger_service import MovementRef, StockLedgerService
from textile_modules._workflow_helpers import (
    get_document,
    line_total,
    lock_document,
    require_lines,
    sum_decimals,
    workflow_scope,
)
from textile_modules.procurement.models import (
    GoodsReceipt,
    GRNLineInput,
    OverduePurchaseOrder,
    POLineInput,
    POStatus,
    PurchaseOrder,
)
from textile_modules.procurement.orm import (
    GoodsReceiptLineModel,
    GoodsReceiptModel,
    POItemModel,
    POStatusHistoryModel,
    PurchaseOrderModel,
)
from textile_modules.procurement.workflows import (
    PURCHASE_ORDER_WORKFLOW,
    receipt_rollup_status,
)

logger = get_logger("modules.procurement.service")

_PO = "PurchaseOrder"


class ProcurementService:
    """
    Purchase orders and goods receipts.

    Contract
    --------
    * Write methods return frozen DTOs built inside the transaction.
    * Step-up checks go through the injected ``StepUpGate``; with none
      given, a fail-closed gate honouring ``settings.enforce_step_up`` is
      used.

    Non-goals
    ---------
    * Does NOT manage suppliers; ``supplier_id`` is an opaque reference.
    * Does NOT retry on ``LockTimeoutError``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: KernelSettings | None = None,
        step_up: StepUpGate | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or KernelSettings.with_defaults()
        self._step_up = step_up or StepUpGate(None, enforce=self._settings.enforce_step_up)

        self._numbers = DocNumberService(session, self._clock, self._settings.doc_numbers)
        self._costing = CostingService(session, self._clock)
        self._ledger = StockLedgerService(session, self._clock)
        self._audit = AuditService(session, self._clock)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _parse_po_lines(lines: Sequence[POLineInput]) -> list[tuple[POLineInput, Decimal, Decimal]]:
        parsed = []
        for line in require_lines(lines):
            parsed.append((
                line,
                to_positive_decimal(line.qty, "qty"),
                to_non_negative_decimal(line.unit_price, "unit_price"),
            ))
        return parsed

    def _require_items(self, item_ids: Sequence[UUID]) -> None:
        for item_id in set(item_ids):
            if self._session.get(Item, item_id) is None:
                raise ItemNotFoundError(item_id)

    def _write_history(
        self,
        po: PurchaseOrderModel,
        actor_id: UUID,
        notes: str,
    ) -> None:
        self._session.add(
            POStatusHistoryModel(
                po_id=po.id,
                status=po.status,
                changed_by_id=actor_id,
                notes=notes,
                created_at=self._clock.now(),
            )
        )

    @staticmethod
    def _recompute_totals(po: PurchaseOrderModel) -> None:
        po.total_amount = sum_decimals(
            line_total(item.ordered_qty, item.unit_price) for item in po.items
        )
        po.grand_total = po.total_amount + po.tax_amount

    @staticmethod
    def _snapshot(po: PurchaseOrderModel) -> dict[str, Any]:
        return {
            "status": po.status,
            "eta_date": po.eta_date,
            "total_amount": po.total_amount,
            "notes": po.notes,
            "terms": po.terms,
            "lines": [
                {
                    "item_id": item.item_id,
                    "ordered_qty": item.ordered_qty,
                    "unit_price": item.unit_price,
                    "received_qty": item.received_qty,
                }
                for item in po.items
            ],
        }

    # =========================================================================
    # Purchase Orders
    # =========================================================================

    def create_purchase_order(
        self,
        supplier_id: UUID,
        lines: Sequence[POLineInput],
        actor_id: UUID,
        eta_date: date | None = None,
        currency: str = "IDR",
        tax_amount: Any = ZERO,
        notes: str | None = None,
        terms: str | None = None,
    ) -> PurchaseOrder:
        """Create a DRAFT purchase order numbered ``PO/{YYYY}/{NNNN}``."""
        parsed = self._parse_po_lines(lines)
        tax = to_non_negative_decimal(tax_amount, "tax_amount")

        with workflow_scope(
            self._session, self._settings, "create_purchase_order", actor_id, DocType.PO.value
        ):
            self._require_items([line.item_id for line, _, _ in parsed])
            doc_number = self._numbers.next_doc_number(DocType.PO)
            LogContext.set(doc_number=doc_number)

            po = PurchaseOrderModel(
                id=uuid4(),
                doc_number=doc_number,
                supplier_id=supplier_id,
                status=POStatus.DRAFT.value,
                eta_date=eta_date,
                currency=currency,
                tax_amount=tax,
                notes=notes,
                terms=terms,
                created_by_id=actor_id,
            )
            for number, (line, qty, price) in enumerate(parsed, start=1):
                po.items.append(
                    POItemModel(
                        line_number=number,
                        item_id=line.item_id,
                        ordered_qty=qty,
                        unit_price=price,
                        received_qty=ZERO,
                        notes=line.notes,
                        created_by_id=actor_id,
                    )
                )
            self._recompute_totals(po)
            self._session.add(po)
            self._write_history(po, actor_id, "PO created")
            self._session.flush()

            logger.info(
                "procurement_po_created",
                extra={
                    "po_id": str(po.id),
                    "line_count": len(parsed),
                    "total_amount": str(po.total_amount),
                },
            )
            return po.to_dto()

    def update_purchase_order(
        self,
        po_id: UUID,
        actor_id: UUID,
        lines: Sequence[POLineInput] | None = None,
        eta_date: date | None = None,
        notes: str | None = None,
        terms: str | None = None,
        tax_amount: Any = None,
        credential: str | None = None,
    ) -> PurchaseOrder:
        """
        Edit a purchase order.

        DRAFT orders are edited freely.  SUBMITTED/PARTIAL orders require
        step-up verification (EDIT_POSTED_PO) and are audited; lines with
        received quantity cannot be removed or cut below what was received.
        Arguments left as None are unchanged.
        """
        parsed = self._parse_po_lines(lines) if lines is not None else None
        tax = to_non_negative_decimal(tax_amount, "tax_amount") if tax_amount is not None else None

        with workflow_scope(
            self._session, self._settings, "update_purchase_order", actor_id, DocType.PO.value
        ):
            po = lock_document(self._session, PurchaseOrderModel, po_id, _PO)
            LogContext.set(doc_number=po.doc_number)
            if not PURCHASE_ORDER_WORKFLOW.allows(po.status, "edit"):
                raise DocumentNotEditableError(_PO, po.id, po.status)
            posted = po.status != POStatus.DRAFT.value
            if posted:
                self._step_up.require(actor_id, SensitiveAction.EDIT_POSTED_PO, credential)

            before = self._snapshot(po)
            if parsed is not None:
                self._require_items([line.item_id for line, _, _ in parsed])
                self._replace_lines(po, parsed, actor_id)
            if eta_date is not None:
                po.eta_date = eta_date
            if notes is not None:
                po.notes = notes
            if terms is not None:
                po.terms = terms
            if tax is not None:
                po.tax_amount = tax
            self._recompute_totals(po)
            if posted and parsed is not None:
                # dropped or resized lines can complete a partly received order
                self._rollup_purchase_order(po, actor_id, "edit", "Lines edited after submit")
            po.updated_by_id = actor_id
            self._session.flush()

            if posted:
                self._audit.record(
                    actor_id=actor_id,
                    action=AuditAction.PO_EDITED_AFTER_SUBMIT,
                    entity_type=_PO,
                    entity_id=po.id,
                    before=before,
                    after=self._snapshot(po),
                )
            logger.info(
                "procurement_po_updated",
                extra={"po_id": str(po.id), "status": po.status, "posted": posted},
            )
            return po.to_dto()

    def _replace_lines(
        self,
        po: PurchaseOrderModel,
        parsed: list[tuple[POLineInput, Decimal, Decimal]],
        actor_id: UUID,
    ) -> None:
        existing = {item.id: item for item in po.items}
        kept: list[POItemModel] = []
        for line, qty, price in parsed:
            if line.po_item_id is None:
                kept.append(
                    POItemModel(
                        item_id=line.item_id,
                        ordered_qty=qty,
                        unit_price=price,
                        received_qty=ZERO,
                        notes=line.notes,
                        created_by_id=actor_id,
                    )
                )
                continue
            row = existing.pop(line.po_item_id, None)
            if row is None:
                raise ValidationError(
                    f"Line {line.po_item_id} does not belong to {po.doc_number}", "po_item_id"
                )
            if row.received_qty > ZERO and line.item_id != row.item_id:
                raise ValidationError("Cannot change the item of a received line", "item_id")
            if qty < row.received_qty:
                raise ValidationError(
                    f"Ordered qty {qty} is below received qty {row.received_qty}", "qty"
                )
            row.item_id = line.item_id
            row.ordered_qty = qty
            row.unit_price = price
            row.notes = line.notes
            kept.append(row)

        for row in existing.values():
            if row.received_qty > ZERO:
                raise ValidationError(
                    f"Cannot remove line {row.line_number}: goods already received", "lines"
                )
        for number, row in enumerate(kept, start=1):
            row.line_number = number
        po.items[:] = kept

    def submit_purchase_order(self, po_id: UUID, actor_id: UUID) -> PurchaseOrder:
        """DRAFT -> SUBMITTED."""
        with workflow_scope(
            self._session, self._settings, "submit_purchase_order", actor_id, DocType.PO.value
        ):
            po = lock_document(self._session, PurchaseOrderModel, po_id, _PO)
            LogContext.set(doc_number=po.doc_number)
            transition = PURCHASE_ORDER_WORKFLOW.require(_PO, po.id, po.status, "submit")
            po.status = transition.to_state
            po.updated_by_id = actor_id
            self._write_history(po, actor_id, "PO submitted to supplier")
            self._session.flush()
            logger.info("procurement_po_submitted", extra={"po_id": str(po.id)})
            return po.to_dto()

    def cancel_purchase_order(
        self,
        po_id: UUID,
        actor_id: UUID,
        credential: str | None,
        reason: str | None = None,
    ) -> PurchaseOrder:
        """
        DRAFT/SUBMITTED -> CANCELLED, only while no goods receipt exists.

        Requires step-up verification (VOID_DOCUMENT).
        """
        self._step_up.require(actor_id, SensitiveAction.VOID_DOCUMENT, credential)

        with workflow_scope(
            self._session, self._settings, "cancel_purchase_order", actor_id, DocType.PO.value
        ):
            po = lock_document(self._session, PurchaseOrderModel, po_id, _PO)
            LogContext.set(doc_number=po.doc_number)
            transition = PURCHASE_ORDER_WORKFLOW.require(_PO, po.id, po.status, "cancel")

            receipt_count = self._session.execute(
                select(func.count(GoodsReceiptModel.id)).where(GoodsReceiptModel.po_id == po.id)
            ).scalar_one()
            if receipt_count:
                raise DocumentHasDependentsError(_PO, po.id, "GoodsReceipt", receipt_count)

            before_status = po.status
            po.status = transition.to_state
            po.updated_by_id = actor_id
            self._write_history(po, actor_id, reason or "PO cancelled")
            self._session.flush()
            self._audit.record(
                actor_id=actor_id,
                action=AuditAction.PO_CANCELLED,
                entity_type=_PO,
                entity_id=po.id,
                before={"status": before_status},
                after={"status": po.status},
                reason=reason,
            )
            logger.info("procurement_po_cancelled", extra={"po_id": str(po.id)})
            return po.to_dto()

    def get_purchase_order(self, po_id: UUID) -> PurchaseOrder:
        return get_document(self._session, PurchaseOrderModel, po_id, _PO).to_dto()

    def overdue_purchase_orders(self, as_of: date | None = None) -> list[OverduePurchaseOrder]:
        """Open purchase orders whose ETA is before ``as_of`` (default: today)."""
        as_of = as_of or self._clock.now().date()
        rows = self._session.execute(
            select(PurchaseOrderModel)
            .where(
                PurchaseOrderModel.eta_date < as_of,
                PurchaseOrderModel.status.in_([
                    POStatus.DRAFT.value,
                    POStatus.SUBMITTED.value,
                    POStatus.PARTIAL.value,
                ]),
            )
            .order_by(PurchaseOrderModel.eta_date)
        ).scalars()

        result = []
        for po in rows:
            dto = po.to_dto()
            result.append(
                OverduePurchaseOrder(
                    purchase_order=dto,
                    days_overdue=(as_of - po.eta_date).days,
                    pending_qty=sum_decimals(item.pending_qty for item in dto.items),
                )
            )
        return result

    # =========================================================================
    # Goods Receipt
    # =========================================================================

    def receive_goods(
        self,
        lines: Sequence[GRNLineInput],
        actor_id: UUID,
        supplier_id: UUID | None = None,
        po_id: UUID | None = None,
        notes: str | None = None,
        photo_urls: Sequence[str] | None = None,
    ) -> GoodsReceipt:
        """
        Post a goods receipt note.

        Per line: moving-average receipt transition and an IN movement (ref
        GRN).  With ``po_id``, the PO must be SUBMITTED or PARTIAL; lines
        are matched to PO lines, received quantities rolled up and the PO
        status recomputed.
        """
        parsed = [
            (
                line,
                to_positive_decimal(line.qty, "qty"),
                to_non_negative_decimal(line.unit_cost, "unit_cost"),
            )
            for line in require_lines(lines)
        ]
        if po_id is None and supplier_id is None:
            raise ValidationError("supplier_id is required without a purchase order", "supplier_id")

        with workflow_scope(
            self._session, self._settings, "receive_goods", actor_id, DocType.GRN.value
        ):
            po = None
            if po_id is not None:
                po = lock_document(self._session, PurchaseOrderModel, po_id, _PO)
                if not PURCHASE_ORDER_WORKFLOW.allows(po.status, "receive"):
                    raise InvalidTransitionError(_PO, po.id, po.status, "receive")
                if supplier_id is not None and supplier_id != po.supplier_id:
                    raise ValidationError(
                        f"Supplier does not match purchase order {po.doc_number}", "supplier_id"
                    )
                supplier_id = po.supplier_id

            doc_number = self._numbers.next_doc_number(DocType.GRN)
            LogContext.set(doc_number=doc_number)

            grn = GoodsReceiptModel(
                id=uuid4(),
                doc_number=doc_number,
                po_id=po.id if po is not None else None,
                supplier_id=supplier_id,
                grn_date=self._clock.now(),
                received_by_id=actor_id,
                total_amount=ZERO,
                notes=notes,
                photo_urls=list(photo_urls) if photo_urls else None,
                created_by_id=actor_id,
            )
            self._session.add(grn)
            ref = MovementRef(MovementRefType.GRN, grn.id, doc_number)

            for number, (line, qty, unit_cost) in enumerate(parsed, start=1):
                po_item = self._match_po_item(po, line) if po is not None else None
                transition = self._costing.receive(line.item_id, qty, unit_cost)
                movement = self._ledger.record(
                    line.item_id, MovementType.IN, ref, transition, actor_id, notes=notes
                )
                grn.lines.append(
                    GoodsReceiptLineModel(
                        line_number=number,
                        item_id=line.item_id,
                        po_item_id=po_item.id if po_item is not None else None,
                        qty=transition.qty,
                        unit_cost=transition.unit_cost,
                        total_cost=transition.total_cost,
                        prev_qty=transition.before.qty_on_hand,
                        new_qty=transition.after.qty_on_hand,
                        prev_avg_cost=transition.before.avg_cost,
                        new_avg_cost=transition.after.avg_cost,
                        movement_id=movement.id,
                        created_by_id=actor_id,
                    )
                )
                if po_item is not None:
                    po_item.received_qty = po_item.received_qty + transition.qty

            grn.total_amount = sum_decimals(line.total_cost for line in grn.lines)
            if po is not None:
                self._rollup_purchase_order(po, actor_id, "receive", f"GRN issued: {doc_number}")
            self._session.flush()

            logger.info(
                "procurement_grn_posted",
                extra={
                    "grn_id": str(grn.id),
                    "po_id": str(po.id) if po is not None else None,
                    "line_count": len(parsed),
                    "total_amount": str(grn.total_amount),
                },
            )
            return grn.to_dto()

    @staticmethod
    def _match_po_item(po: PurchaseOrderModel, line: GRNLineInput) -> POItemModel:
        if line.po_item_id is not None:
            for item in po.items:
                if item.id == line.po_item_id:
                    if item.item_id != line.item_id:
                        raise ValidationError(
                            f"PO line {line.po_item_id} is for a different item", "item_id"
                        )
                    return item
            raise ValidationError(
                f"Line {line.po_item_id} does not belong to {po.doc_number}", "po_item_id"
            )

        candidates = [item for item in po.items if item.item_id == line.item_id]
        if not candidates:
            raise ValidationError(
                f"Item {line.item_id} is not on purchase order {po.doc_number}", "item_id"
            )
        for item in candidates:
            if item.received_qty < item.ordered_qty:
                return item
        return candidates[0]

    def _rollup_purchase_order(
        self,
        po: PurchaseOrderModel,
        actor_id: UUID,
        action: str,
        note: str,
    ) -> None:
        """Move the PO to the status its received quantities imply."""
        new_status = receipt_rollup_status(
            po.status,
            [(item.ordered_qty, item.received_qty) for item in po.items],
        )
        if new_status == po.status and (
            action != "receive"
            or not PURCHASE_ORDER_WORKFLOW.find(po.status, action, new_status)
        ):
            return
        transition = PURCHASE_ORDER_WORKFLOW.require(_PO, po.id, po.status, action, new_status)
        previous = po.status
        po.status = transition.to_state
        po.updated_by_id = actor_id
        self._write_history(po, actor_id, note)
        logger.info(
            "procurement_po_rolled_up",
            extra={
                "po_id": str(po.id),
                "from_status": previous,
                "to_status": po.status,
            },
        )
