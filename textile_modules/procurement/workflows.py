"""
Procurement Workflows.

State machine for purchase orders.  ``ProcurementService`` resolves every
status change through ``PURCHASE_ORDER_WORKFLOW.require`` before writing.
"""

from decimal import Decimal

from textile_kernel.domain.workflow import Guard, Transition, Workflow
from textile_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

NO_GOODS_RECEIPTS = Guard(
    name="no_goods_receipts",
    description="No goods receipt has been posted against the PO",
)

STEP_UP_VERIFIED = Guard(
    name="step_up_verified",
    description="Actor passed step-up verification for the action",
)

RECEIPT_ROLLUP = Guard(
    name="receipt_rollup",
    description="Target state is the rollup of received vs ordered quantities",
)


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order lifecycle",
    initial_state="DRAFT",
    states=(
        "DRAFT",
        "SUBMITTED",
        "PARTIAL",
        "CLOSED",
        "OVER",
        "CANCELLED",
    ),
    transitions=(
        Transition("DRAFT", "DRAFT", action="edit"),
        Transition("SUBMITTED", "SUBMITTED", action="edit", guard=STEP_UP_VERIFIED),
        Transition("PARTIAL", "PARTIAL", action="edit", guard=STEP_UP_VERIFIED),
        Transition("PARTIAL", "CLOSED", action="edit", guard=RECEIPT_ROLLUP),
        Transition("DRAFT", "SUBMITTED", action="submit"),
        Transition("SUBMITTED", "PARTIAL", action="receive", guard=RECEIPT_ROLLUP, moves_stock=True),
        Transition("SUBMITTED", "CLOSED", action="receive", guard=RECEIPT_ROLLUP, moves_stock=True),
        Transition("SUBMITTED", "OVER", action="receive", guard=RECEIPT_ROLLUP, moves_stock=True),
        Transition("PARTIAL", "PARTIAL", action="receive", guard=RECEIPT_ROLLUP, moves_stock=True),
        Transition("PARTIAL", "CLOSED", action="receive", guard=RECEIPT_ROLLUP, moves_stock=True),
        Transition("PARTIAL", "OVER", action="receive", guard=RECEIPT_ROLLUP, moves_stock=True),
        Transition("DRAFT", "CANCELLED", action="cancel", guard=NO_GOODS_RECEIPTS),
        Transition("SUBMITTED", "CANCELLED", action="cancel", guard=NO_GOODS_RECEIPTS),
    ),
    terminal_states=("CLOSED", "OVER", "CANCELLED"),
)

logger.debug(
    "procurement_po_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
        "initial_state": PURCHASE_ORDER_WORKFLOW.initial_state,
    },
)


def receipt_rollup_status(
    current: str,
    lines: list[tuple[Decimal, Decimal]],
) -> str:
    """
    PO status after a goods receipt, from (ordered, received) per line.

    CLOSED when every line is fully received (OVER if any line exceeds its
    ordered qty), PARTIAL when anything was received, else ``current``.
    """
    if lines and all(received >= ordered for ordered, received in lines):
        if any(received > ordered for ordered, received in lines):
            return "OVER"
        return "CLOSED"
    if any(received > 0 for _, received in lines):
        return "PARTIAL"
    return current
