"""
Document state machine tests.

Challenge the purchase order, work order and vendor return workflows with:
1. The valid paths each document takes
2. Invalid transition attempts (must raise before any write)
3. Structural checks (terminal states have no outgoing edges)
4. The rollup helpers that pick the target state
"""

from decimal import Decimal

import pytest

from textile_kernel.domain.workflow import Transition, Workflow
from textile_kernel.exceptions import InvalidTransitionError
from textile_modules.procurement.workflows import PURCHASE_ORDER_WORKFLOW, receipt_rollup_status
from textile_modules.production.workflows import WORK_ORDER_WORKFLOW, output_status
from textile_modules.returns.workflows import VENDOR_RETURN_WORKFLOW

ALL_WORKFLOWS = [
    ("Purchase Order", PURCHASE_ORDER_WORKFLOW),
    ("Work Order", WORK_ORDER_WORKFLOW),
    ("Vendor Return", VENDOR_RETURN_WORKFLOW),
]


# =============================================================================
# Structure
# =============================================================================


@pytest.mark.parametrize("name, workflow", ALL_WORKFLOWS)
class TestStructure:

    def test_initial_state_is_draft(self, name, workflow):
        assert workflow.initial_state == "DRAFT"

    def test_terminal_states_have_no_outgoing_edges(self, name, workflow):
        for t in workflow.transitions:
            assert t.from_state not in workflow.terminal_states, (
                f"{name}: {t.action} leaves terminal state {t.from_state}"
            )

    def test_every_state_is_reachable(self, name, workflow):
        reachable = {workflow.initial_state}
        changed = True
        while changed:
            changed = False
            for t in workflow.transitions:
                if t.from_state in reachable and t.to_state not in reachable:
                    reachable.add(t.to_state)
                    changed = True
        assert reachable == set(workflow.states)


def test_unknown_state_in_transition_is_rejected():
    with pytest.raises(ValueError):
        Workflow(
            name="broken",
            description="",
            initial_state="A",
            states=("A",),
            transitions=(Transition("A", "B", action="go"),),
        )


# =============================================================================
# Purchase orders
# =============================================================================


class TestPurchaseOrderWorkflow:

    def test_submit_only_from_draft(self):
        assert PURCHASE_ORDER_WORKFLOW.require("PO", 1, "DRAFT", "submit").to_state == "SUBMITTED"
        with pytest.raises(InvalidTransitionError) as exc_info:
            PURCHASE_ORDER_WORKFLOW.require("PO", 1, "SUBMITTED", "submit")
        assert exc_info.value.from_state == "SUBMITTED"

    @pytest.mark.parametrize("status", ["DRAFT", "CLOSED", "OVER", "CANCELLED"])
    def test_receive_not_allowed(self, status):
        assert not PURCHASE_ORDER_WORKFLOW.allows(status, "receive")

    @pytest.mark.parametrize("status", ["SUBMITTED", "PARTIAL"])
    def test_receive_allowed(self, status):
        transition = PURCHASE_ORDER_WORKFLOW.find(status, "receive", "CLOSED")
        assert transition is not None
        assert transition.moves_stock

    def test_cancel_only_before_receipts(self):
        assert PURCHASE_ORDER_WORKFLOW.allows("DRAFT", "cancel")
        assert PURCHASE_ORDER_WORKFLOW.allows("SUBMITTED", "cancel")
        assert not PURCHASE_ORDER_WORKFLOW.allows("PARTIAL", "cancel")

    def test_edit_after_submit_is_guarded(self):
        transition = PURCHASE_ORDER_WORKFLOW.find("SUBMITTED", "edit")
        assert transition.guard is not None
        assert PURCHASE_ORDER_WORKFLOW.find("DRAFT", "edit").guard is None
        assert not PURCHASE_ORDER_WORKFLOW.allows("CLOSED", "edit")


class TestReceiptRollup:

    def test_nothing_received_keeps_status(self):
        assert receipt_rollup_status("SUBMITTED", [(Decimal("10"), Decimal("0"))]) == "SUBMITTED"

    def test_partial(self):
        lines = [(Decimal("10"), Decimal("10")), (Decimal("5"), Decimal("0"))]
        assert receipt_rollup_status("SUBMITTED", lines) == "PARTIAL"

    def test_closed(self):
        lines = [(Decimal("10"), Decimal("10")), (Decimal("5"), Decimal("5"))]
        assert receipt_rollup_status("PARTIAL", lines) == "CLOSED"

    def test_over_when_any_line_exceeds(self):
        lines = [(Decimal("10"), Decimal("12")), (Decimal("5"), Decimal("5"))]
        assert receipt_rollup_status("PARTIAL", lines) == "OVER"

    def test_over_received_line_with_pending_line_is_partial(self):
        lines = [(Decimal("10"), Decimal("12")), (Decimal("5"), Decimal("0"))]
        assert receipt_rollup_status("SUBMITTED", lines) == "PARTIAL"


# =============================================================================
# Work orders
# =============================================================================


class TestWorkOrderWorkflow:

    def test_happy_path(self):
        wf = WORK_ORDER_WORKFLOW
        assert wf.require("WO", 1, "DRAFT", "issue").to_state == "ISSUED"
        assert wf.require("WO", 1, "ISSUED", "issue_materials").to_state == "IN_PRODUCTION"
        assert wf.require("WO", 1, "IN_PRODUCTION", "receive_fg", "PARTIAL").to_state == "PARTIAL"
        assert wf.require("WO", 1, "PARTIAL", "issue_materials").to_state == "PARTIAL"
        assert wf.require("WO", 1, "PARTIAL", "receive_fg", "COMPLETED").to_state == "COMPLETED"

    @pytest.mark.parametrize("status", ["DRAFT", "COMPLETED", "CANCELLED"])
    def test_material_issue_refused(self, status):
        with pytest.raises(InvalidTransitionError):
            WORK_ORDER_WORKFLOW.require("WO", 1, status, "issue_materials")

    @pytest.mark.parametrize("status", ["DRAFT", "ISSUED", "COMPLETED", "CANCELLED"])
    def test_fg_receipt_refused(self, status):
        assert not WORK_ORDER_WORKFLOW.allows(status, "receive_fg")

    @pytest.mark.parametrize("status", ["IN_PRODUCTION", "PARTIAL", "COMPLETED"])
    def test_cancel_refused_once_in_production(self, status):
        assert not WORK_ORDER_WORKFLOW.allows(status, "cancel")

    def test_output_status(self):
        assert output_status(Decimal("40"), Decimal("100")) == "PARTIAL"
        assert output_status(Decimal("100"), Decimal("100")) == "COMPLETED"
        assert output_status(Decimal("105"), Decimal("100")) == "COMPLETED"


# =============================================================================
# Vendor returns
# =============================================================================


class TestVendorReturnWorkflow:

    def test_process_then_complete(self):
        wf = VENDOR_RETURN_WORKFLOW
        assert wf.require("RET", 1, "DRAFT", "process").to_state == "PROCESSED"
        assert wf.require("RET", 1, "PROCESSED", "complete").to_state == "COMPLETED"

    def test_cannot_process_twice(self):
        with pytest.raises(InvalidTransitionError):
            VENDOR_RETURN_WORKFLOW.require("RET", 1, "PROCESSED", "process")

    def test_cannot_complete_a_draft(self):
        assert not VENDOR_RETURN_WORKFLOW.allows("DRAFT", "complete")

    def test_only_drafts_are_editable(self):
        assert VENDOR_RETURN_WORKFLOW.allows("DRAFT", "edit")
        assert not VENDOR_RETURN_WORKFLOW.allows("PROCESSED", "edit")
