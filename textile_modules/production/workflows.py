"""
Production Workflows.

State machine for work orders.  ``ProductionService`` resolves every status
change through ``WORK_ORDER_WORKFLOW.require`` before writing.
"""

from decimal import Decimal

from textile_kernel.domain.workflow import Guard, Transition, Workflow
from textile_kernel.logging_config import get_logger

logger = get_logger("modules.production.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

NO_FG_RECEIPTS = Guard(
    name="no_fg_receipts",
    description="No finished-goods receipt has been posted against the WO",
)

OUTPUT_BELOW_PLAN = Guard(
    name="output_below_plan",
    description="Accepted output so far is below planned qty",
)

OUTPUT_REACHED_PLAN = Guard(
    name="output_reached_plan",
    description="Accepted output so far is at or above planned qty",
)


# -----------------------------------------------------------------------------
# Work Order Workflow
# -----------------------------------------------------------------------------

WORK_ORDER_WORKFLOW = Workflow(
    name="work_order",
    description="CMT work order lifecycle",
    initial_state="DRAFT",
    states=(
        "DRAFT",
        "ISSUED",
        "IN_PRODUCTION",
        "PARTIAL",
        "COMPLETED",
        "CANCELLED",
    ),
    transitions=(
        Transition("DRAFT", "ISSUED", action="issue"),
        Transition("ISSUED", "IN_PRODUCTION", action="issue_materials", moves_stock=True),
        Transition("IN_PRODUCTION", "IN_PRODUCTION", action="issue_materials", moves_stock=True),
        Transition("PARTIAL", "PARTIAL", action="issue_materials", moves_stock=True),
        Transition(
            "IN_PRODUCTION", "PARTIAL", action="receive_fg",
            guard=OUTPUT_BELOW_PLAN, moves_stock=True,
        ),
        Transition(
            "IN_PRODUCTION", "COMPLETED", action="receive_fg",
            guard=OUTPUT_REACHED_PLAN, moves_stock=True,
        ),
        Transition(
            "PARTIAL", "PARTIAL", action="receive_fg",
            guard=OUTPUT_BELOW_PLAN, moves_stock=True,
        ),
        Transition(
            "PARTIAL", "COMPLETED", action="receive_fg",
            guard=OUTPUT_REACHED_PLAN, moves_stock=True,
        ),
        Transition("DRAFT", "CANCELLED", action="cancel", guard=NO_FG_RECEIPTS),
        Transition("ISSUED", "CANCELLED", action="cancel", guard=NO_FG_RECEIPTS),
    ),
    terminal_states=("COMPLETED", "CANCELLED"),
)

logger.debug(
    "production_wo_workflow_registered",
    extra={
        "workflow_name": WORK_ORDER_WORKFLOW.name,
        "state_count": len(WORK_ORDER_WORKFLOW.states),
        "transition_count": len(WORK_ORDER_WORKFLOW.transitions),
        "initial_state": WORK_ORDER_WORKFLOW.initial_state,
    },
)


def output_status(actual_qty: Decimal, planned_qty: Decimal) -> str:
    """COMPLETED once accepted output reaches plan, else PARTIAL."""
    return "COMPLETED" if actual_qty >= planned_qty else "PARTIAL"
