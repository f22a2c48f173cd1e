"""
Inventory Module Service (``textile_modules.inventory.service``).

Responsibility
--------------
Manual stock adjustments, gated by step-up verification and audited.

Invariants enforced
-------------------
* The step-up check runs before the transaction opens; a rejected or
  rate-limited credential leaves nothing written.
* INCREASE keeps the average cost; DECREASE is a consumption and fails with
  ``InsufficientStockError`` rather than going negative.
* Every adjustment writes an ADJUSTMENT movement with signed qty and an
  AuditLog entry carrying before/after qty and value plus the reason.

Usage::

    service = InventoryService(session, clock=clock, step_up=gate)
    service.adjust_stock(
        item_id=fabric_id,
        adjustment_type=AdjustmentType.DECREASE,
        qty="3.5",
        reason="Water damage in rack B",
        actor_id=actor_id,
        credential=pin,
    )
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from textile_kernel.config import KernelSettings
from textile_kernel.domain.clock import Clock, SystemClock
from textile_kernel.domain.doc_numbers import DocType
from textile_kernel.domain.values import to_positive_decimal
from textile_kernel.exceptions import ValidationError
from textile_kernel.logging_config import LogContext, get_logger
from textile_kernel.models.audit_log import AuditAction
from textile_kernel.models.inventory import MovementRefType, MovementType
from textile_kernel.services.audit_service import AuditService
from textile_kernel.services.authorization import SensitiveAction, StepUpGate
from textile_kernel.services.costing_service import CostingService
from textile_kernel.services.doc_number_service import DocNumberService
from textile_kernel.services.stock_ledger_service import MovementRef, StockLedgerService
from textile_modules._workflow_helpers import get_document, require_text, workflow_scope
from textile_modules.inventory.models import AdjustmentType, StockAdjustment
from textile_modules.inventory.orm import StockAdjustmentModel

logger = get_logger("modules.inventory.service")


class InventoryService:
    """Stock adjustments."""

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

    def adjust_stock(
        self,
        item_id: UUID,
        adjustment_type: AdjustmentType | str,
        qty: Any,
        reason: str,
        actor_id: UUID,
        credential: str | None,
        evidence_url: str | None = None,
        ip_address: str | None = None,
    ) -> StockAdjustment:
        """
        Post a stock adjustment.

        Raises:
            StepUpRejectedError / StepUpRateLimitedError: Credential not
                accepted; nothing is written.
            ValidationError: Unknown type, qty <= 0, reason under 5 chars.
            InsufficientStockError: DECREASE beyond stock on hand.
        """
        self._step_up.require(actor_id, SensitiveAction.STOCK_ADJUSTMENT, credential)

        try:
            adjustment_type = AdjustmentType(adjustment_type)
        except ValueError:
            raise ValidationError(
                f"Unknown adjustment type: {adjustment_type}", "type"
            ) from None
        qty = to_positive_decimal(qty, "qty")
        reason = require_text(reason, "reason", min_length=5)

        with workflow_scope(
            self._session, self._settings, "adjust_stock", actor_id, DocType.ADJ.value
        ):
            doc_number = self._numbers.next_doc_number(DocType.ADJ)
            LogContext.set(doc_number=doc_number)
            if adjustment_type is AdjustmentType.INCREASE:
                transition = self._costing.increase_at_average(item_id, qty)
            else:
                transition = self._costing.decrease_at_average(item_id, qty)
            adjustment_id = uuid4()
            movement = self._ledger.record(
                item_id,
                MovementType.ADJUSTMENT,
                MovementRef(MovementRefType.ADJUSTMENT, adjustment_id, doc_number),
                transition,
                actor_id,
                notes=f"Adjustment: {reason}",
            )

            before, after = transition.before, transition.after
            adjustment = StockAdjustmentModel(
                id=adjustment_id,
                doc_number=doc_number,
                item_id=item_id,
                adjustment_type=adjustment_type.value,
                qty_change=transition.qty,
                reason=reason,
                evidence_url=evidence_url,
                prev_qty=before.qty_on_hand,
                new_qty=after.qty_on_hand,
                prev_avg_cost=before.avg_cost,
                new_avg_cost=after.avg_cost,
                movement_id=movement.id,
                created_at=self._clock.now(),
                created_by_id=actor_id,
            )
            self._session.add(adjustment)
            self._session.flush()

            self._audit.record(
                actor_id=actor_id,
                action=AuditAction.STOCK_ADJUSTMENT,
                entity_type="StockAdjustment",
                entity_id=adjustment.id,
                before={"qty": before.qty_on_hand, "value": before.total_value},
                after={"qty": after.qty_on_hand, "value": after.total_value},
                reason=reason,
                context={
                    "item_id": item_id,
                    "type": adjustment_type.value,
                    "qty": qty,
                    "doc_number": doc_number,
                },
                ip_address=ip_address,
            )
            logger.info(
                "inventory_stock_adjusted",
                extra={
                    "adjustment_id": str(adjustment.id),
                    "item_id": str(item_id),
                    "type": adjustment_type.value,
                    "qty_change": str(transition.qty),
                },
            )
            return adjustment.to_dto()

    def get_adjustment(self, adjustment_id: UUID) -> StockAdjustment:
        return get_document(
            self._session, StockAdjustmentModel, adjustment_id, "StockAdjustment"
        ).to_dto()
