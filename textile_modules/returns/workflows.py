"""
Returns Workflows.

State machine for vendor returns.  A draft is edited or deleted freely;
processing is the single step that moves stock.
"""

from textile_kernel.domain.workflow import Guard, Transition, Workflow
from textile_kernel.logging_config import get_logger

logger = get_logger("modules.returns.workflows")


NOT_YET_PROCESSED = Guard(
    name="not_yet_processed",
    description="Return has not brought stock back in yet",
)

VENDOR_RETURN_WORKFLOW = Workflow(
    name="vendor_return",
    description="Vendor return lifecycle",
    initial_state="DRAFT",
    states=(
        "DRAFT",
        "PROCESSED",
        "COMPLETED",
    ),
    transitions=(
        Transition("DRAFT", "DRAFT", action="edit"),
        Transition("DRAFT", "PROCESSED", action="process", guard=NOT_YET_PROCESSED, moves_stock=True),
        Transition("PROCESSED", "COMPLETED", action="complete"),
    ),
    terminal_states=("COMPLETED",),
)

logger.debug(
    "returns_workflow_registered",
    extra={
        "workflow_name": VENDOR_RETURN_WORKFLOW.name,
        "state_count": len(VENDOR_RETURN_WORKFLOW.states),
        "transition_count": len(VENDOR_RETURN_WORKFLOW.transitions),
        "initial_state": VENDOR_RETURN_WORKFLOW.initial_state,
    },
)
