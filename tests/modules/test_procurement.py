"""
Procurement workflow tests: purchase orders and goods receipts.

Covers the PO lifecycle (create, edit, submit, cancel), the GRN costing and
ledger effects, and the received-quantity rollup onto the PO.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from textile_kernel.exceptions import (
    DocumentNotEditableError,
    DocumentNotFoundError,
    InvalidTransitionError,
    ItemNotFoundError,
    StateConflictError,
    StepUpRejectedError,
    ValidationError,
)
from textile_kernel.models.audit_log import AuditAction, AuditLog
from textile_kernel.models.inventory import InventoryValue, StockMovement
from textile_modules.procurement.models import GRNLineInput, POLineInput, POStatus
from textile_modules.procurement.orm import POStatusHistoryModel


def _history(session, po_id):
    return session.execute(
        select(POStatusHistoryModel.status)
        .where(POStatusHistoryModel.po_id == po_id)
        .order_by(POStatusHistoryModel.created_at)
    ).scalars().all()


@pytest.fixture
def draft_po(procurement_service, fabric, buttons, supplier_id, test_actor_id):
    return procurement_service.create_purchase_order(
        supplier_id=supplier_id,
        lines=[
            POLineInput(item_id=fabric.id, qty="200", unit_price="25000"),
            POLineInput(item_id=buttons.id, qty="1000", unit_price="150"),
        ],
        actor_id=test_actor_id,
        eta_date=date(2025, 1, 20),
        tax_amount="550000",
    )


@pytest.fixture
def submitted_po(procurement_service, draft_po, test_actor_id, deterministic_clock):
    deterministic_clock.tick()
    return procurement_service.submit_purchase_order(draft_po.id, test_actor_id)


class TestPurchaseOrderLifecycle:

    def test_create_draft(self, session, draft_po):
        assert draft_po.doc_number == "PO/2025/0001"
        assert draft_po.status is POStatus.DRAFT
        assert draft_po.total_amount == Decimal("5150000")
        assert draft_po.grand_total == Decimal("5700000")
        assert [i.line_number for i in draft_po.items] == [1, 2]
        assert _history(session, draft_po.id) == ["DRAFT"]

    def test_numbers_are_sequential(self, procurement_service, fabric, supplier_id, test_actor_id, draft_po):
        second = procurement_service.create_purchase_order(
            supplier_id, [POLineInput(fabric.id, "10", "25000")], test_actor_id
        )
        assert second.doc_number == "PO/2025/0002"

    @pytest.mark.parametrize(
        "qty, price",
        [("0", "100"), ("-1", "100"), ("5", "-1")],
    )
    def test_invalid_lines(self, procurement_service, fabric, supplier_id, test_actor_id, qty, price):
        with pytest.raises(ValidationError):
            procurement_service.create_purchase_order(
                supplier_id, [POLineInput(fabric.id, qty, price)], test_actor_id
            )

    def test_no_lines(self, procurement_service, supplier_id, test_actor_id):
        with pytest.raises(ValidationError):
            procurement_service.create_purchase_order(supplier_id, [], test_actor_id)

    def test_unknown_item_consumes_no_number(
        self, procurement_service, fabric, supplier_id, test_actor_id
    ):
        with pytest.raises(ItemNotFoundError):
            procurement_service.create_purchase_order(
                supplier_id, [POLineInput(uuid4(), "1", "1")], test_actor_id
            )
        po = procurement_service.create_purchase_order(
            supplier_id, [POLineInput(fabric.id, "1", "1")], test_actor_id
        )
        assert po.doc_number == "PO/2025/0001"

    def test_edit_draft_without_credential(self, procurement_service, draft_po, fabric, test_actor_id, session):
        updated = procurement_service.update_purchase_order(
            draft_po.id,
            test_actor_id,
            lines=[POLineInput(item_id=fabric.id, qty="100", unit_price="26000")],
            notes="Reduced to one roll lot",
        )

        assert len(updated.items) == 1
        assert updated.total_amount == Decimal("2600000")
        assert updated.notes == "Reduced to one roll lot"
        assert session.execute(select(AuditLog)).scalars().all() == []

    def test_submit(self, session, submitted_po):
        assert submitted_po.status is POStatus.SUBMITTED
        assert _history(session, submitted_po.id) == ["DRAFT", "SUBMITTED"]

    def test_submit_twice(self, procurement_service, submitted_po, test_actor_id):
        with pytest.raises(InvalidTransitionError):
            procurement_service.submit_purchase_order(submitted_po.id, test_actor_id)

    def test_edit_submitted_requires_step_up(
        self, procurement_service, submitted_po, test_actor_id, session
    ):
        with pytest.raises(StepUpRejectedError):
            procurement_service.update_purchase_order(
                submitted_po.id, test_actor_id, eta_date=date(2025, 2, 1), credential="000000"
            )
        assert procurement_service.get_purchase_order(submitted_po.id).eta_date == date(2025, 1, 20)

    def test_edit_submitted_is_audited(
        self, procurement_service, submitted_po, test_actor_id, valid_pin, session
    ):
        updated = procurement_service.update_purchase_order(
            submitted_po.id, test_actor_id, eta_date=date(2025, 2, 1), credential=valid_pin
        )

        assert updated.eta_date == date(2025, 2, 1)
        entry = session.execute(select(AuditLog)).scalar_one()
        assert entry.action == AuditAction.PO_EDITED_AFTER_SUBMIT.value
        assert entry.before["eta_date"] == "2025-01-20"
        assert entry.after["eta_date"] == "2025-02-01"

    def test_cancel_requires_step_up(self, procurement_service, draft_po, test_actor_id):
        with pytest.raises(StepUpRejectedError):
            procurement_service.cancel_purchase_order(draft_po.id, test_actor_id, credential=None)
        assert procurement_service.get_purchase_order(draft_po.id).status is POStatus.DRAFT

    def test_cancel(self, procurement_service, submitted_po, test_actor_id, valid_pin, session):
        cancelled = procurement_service.cancel_purchase_order(
            submitted_po.id, test_actor_id, credential=valid_pin, reason="Supplier out of stock"
        )

        assert cancelled.status is POStatus.CANCELLED
        entry = session.execute(select(AuditLog)).scalar_one()
        assert entry.action == AuditAction.PO_CANCELLED.value
        assert entry.before == {"status": "SUBMITTED"}
        assert entry.reason == "Supplier out of stock"

    def test_cancelled_po_is_not_editable(
        self, procurement_service, draft_po, test_actor_id, valid_pin
    ):
        procurement_service.cancel_purchase_order(draft_po.id, test_actor_id, credential=valid_pin)
        with pytest.raises(DocumentNotEditableError):
            procurement_service.update_purchase_order(draft_po.id, test_actor_id, notes="late")

    def test_unknown_po(self, procurement_service):
        with pytest.raises(DocumentNotFoundError):
            procurement_service.get_purchase_order(uuid4())


class TestGoodsReceipt:

    def test_grn_without_po(self, session, procurement_service, fabric, supplier_id, test_actor_id):
        grn = procurement_service.receive_goods(
            lines=[GRNLineInput(item_id=fabric.id, qty="100", unit_cost="10")],
            actor_id=test_actor_id,
            supplier_id=supplier_id,
            photo_urls=["https://files.example/grn-1.jpg"],
        )

        assert grn.doc_number == "GRN/2025/01/0001"
        assert grn.total_amount == Decimal("1000")
        assert grn.photo_urls == ("https://files.example/grn-1.jpg",)
        line = grn.lines[0]
        assert (line.prev_qty, line.new_qty, line.new_avg_cost) == (
            Decimal("0"), Decimal("100"), Decimal("10")
        )
        movement = session.execute(select(StockMovement)).scalar_one()
        assert movement.movement_type == "IN"
        assert movement.ref_type == "GRN"
        assert movement.ref_doc_number == grn.doc_number

    def test_weighted_average_over_two_receipts(self, session, stock_in, fabric):
        stock_in(fabric, "100", "10")
        grn = stock_in(fabric, "50", "16")

        assert grn.lines[0].new_avg_cost == Decimal("12")
        value = session.execute(
            select(InventoryValue).where(InventoryValue.item_id == fabric.id)
        ).scalar_one()
        assert (value.qty_on_hand, value.total_value) == (Decimal("150"), Decimal("1800"))

    def test_supplier_required_without_po(self, procurement_service, fabric, test_actor_id):
        with pytest.raises(ValidationError):
            procurement_service.receive_goods(
                [GRNLineInput(fabric.id, "1", "1")], actor_id=test_actor_id
            )

    def test_partial_then_closed(
        self, session, procurement_service, submitted_po, fabric, buttons, test_actor_id,
        deterministic_clock,
    ):
        po_id = submitted_po.id
        deterministic_clock.tick()
        procurement_service.receive_goods(
            [GRNLineInput(fabric.id, "120", "25000")], test_actor_id, po_id=po_id
        )
        po = procurement_service.get_purchase_order(po_id)
        assert po.status is POStatus.PARTIAL
        assert po.items[0].received_qty == Decimal("120")
        assert po.items[0].pending_qty == Decimal("80")

        deterministic_clock.tick()
        procurement_service.receive_goods(
            [GRNLineInput(fabric.id, "80", "25000"), GRNLineInput(buttons.id, "1000", "150")],
            test_actor_id,
            po_id=po_id,
        )
        assert procurement_service.get_purchase_order(po_id).status is POStatus.CLOSED
        assert _history(session, po_id)[-1] == "CLOSED"

    def test_over_receipt(self, procurement_service, submitted_po, fabric, buttons, test_actor_id):
        procurement_service.receive_goods(
            [GRNLineInput(fabric.id, "210", "25000"), GRNLineInput(buttons.id, "1000", "150")],
            test_actor_id,
            po_id=submitted_po.id,
        )
        assert procurement_service.get_purchase_order(submitted_po.id).status is POStatus.OVER

    def test_receipt_against_draft_po_rolls_back(
        self, session, procurement_service, draft_po, fabric, test_actor_id
    ):
        with pytest.raises(InvalidTransitionError):
            procurement_service.receive_goods(
                [GRNLineInput(fabric.id, "10", "25000")], test_actor_id, po_id=draft_po.id
            )
        assert session.execute(select(StockMovement)).scalars().all() == []

    def test_item_not_on_po(self, procurement_service, submitted_po, create_item, test_actor_id):
        other = create_item(sku="FAB-RAY-01")
        with pytest.raises(ValidationError):
            procurement_service.receive_goods(
                [GRNLineInput(other.id, "10", "1")], test_actor_id, po_id=submitted_po.id
            )

    def test_supplier_mismatch(self, procurement_service, submitted_po, fabric, test_actor_id):
        with pytest.raises(ValidationError):
            procurement_service.receive_goods(
                [GRNLineInput(fabric.id, "10", "1")],
                test_actor_id,
                supplier_id=uuid4(),
                po_id=submitted_po.id,
            )

    def test_failed_line_rolls_back_whole_grn(
        self, session, procurement_service, fabric, supplier_id, test_actor_id
    ):
        with pytest.raises(ItemNotFoundError):
            procurement_service.receive_goods(
                [GRNLineInput(fabric.id, "10", "1"), GRNLineInput(uuid4(), "5", "1")],
                test_actor_id,
                supplier_id=supplier_id,
            )
        value = session.execute(
            select(InventoryValue).where(InventoryValue.item_id == fabric.id)
        ).scalar_one()
        assert value.qty_on_hand == Decimal("0")

    def test_received_po_cannot_be_cancelled(
        self, procurement_service, submitted_po, fabric, test_actor_id, valid_pin
    ):
        procurement_service.receive_goods(
            [GRNLineInput(fabric.id, "10", "25000")], test_actor_id, po_id=submitted_po.id
        )
        with pytest.raises(StateConflictError):
            procurement_service.cancel_purchase_order(
                submitted_po.id, test_actor_id, credential=valid_pin
            )

    def test_received_line_cannot_be_removed(
        self, procurement_service, submitted_po, fabric, buttons, test_actor_id, valid_pin
    ):
        procurement_service.receive_goods(
            [GRNLineInput(fabric.id, "10", "25000")], test_actor_id, po_id=submitted_po.id
        )
        buttons_line = submitted_po.items[1]
        with pytest.raises(ValidationError):
            procurement_service.update_purchase_order(
                submitted_po.id,
                test_actor_id,
                lines=[POLineInput(buttons.id, "1000", "150", po_item_id=buttons_line.id)],
                credential=valid_pin,
            )

    def test_dropping_unreceived_line_closes_po(
        self, session, procurement_service, submitted_po, fabric, test_actor_id, valid_pin,
        deterministic_clock,
    ):
        po_id = submitted_po.id
        deterministic_clock.tick()
        procurement_service.receive_goods(
            [GRNLineInput(fabric.id, "200", "25000")], test_actor_id, po_id=po_id
        )
        assert procurement_service.get_purchase_order(po_id).status is POStatus.PARTIAL

        deterministic_clock.tick()
        fabric_line = submitted_po.items[0]
        edited = procurement_service.update_purchase_order(
            po_id,
            test_actor_id,
            lines=[POLineInput(fabric.id, "200", "25000", po_item_id=fabric_line.id)],
            credential=valid_pin,
        )

        assert edited.status is POStatus.CLOSED
        assert [(i.ordered_qty, i.received_qty) for i in edited.items] == [
            (Decimal("200"), Decimal("200"))
        ]
        assert _history(session, po_id)[-1] == "CLOSED"
        entry = session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.PO_EDITED_AFTER_SUBMIT.value)
        ).scalar_one()
        assert entry.before["status"] == "PARTIAL"
        assert entry.after["status"] == "CLOSED"

    def test_edit_keeping_pending_qty_stays_partial(
        self, procurement_service, submitted_po, fabric, buttons, test_actor_id, valid_pin,
    ):
        procurement_service.receive_goods(
            [GRNLineInput(fabric.id, "50", "25000")], test_actor_id, po_id=submitted_po.id
        )
        fabric_line, buttons_line = submitted_po.items
        edited = procurement_service.update_purchase_order(
            submitted_po.id,
            test_actor_id,
            lines=[
                POLineInput(fabric.id, "60", "25000", po_item_id=fabric_line.id),
                POLineInput(buttons.id, "500", "150", po_item_id=buttons_line.id),
            ],
            credential=valid_pin,
        )
        assert edited.status is POStatus.PARTIAL
        assert edited.items[0].pending_qty == Decimal("10")


def test_overdue_purchase_orders(procurement_service, submitted_po, fabric, supplier_id, test_actor_id):
    procurement_service.create_purchase_order(
        supplier_id,
        [POLineInput(fabric.id, "5", "25000")],
        test_actor_id,
        eta_date=date(2025, 3, 1),
    )

    overdue = procurement_service.overdue_purchase_orders(as_of=date(2025, 1, 25))

    assert len(overdue) == 1
    assert overdue[0].purchase_order.id == submitted_po.id
    assert overdue[0].days_overdue == 5
    assert overdue[0].pending_qty == Decimal("1200")
