"""
Work order reconciliation tests.

Material actually used (issued minus processed returns) is compared with
the theoretical usage of the accepted output.
"""

from decimal import Decimal

import pytest

from textile_kernel.config import KernelSettings
from textile_modules.production.models import (
    BomLineInput,
    IssueLineInput,
    IssueType,
    ReconciliationStatus,
)
from textile_modules.production.reconciliation import WorkOrderReconciler, classify_variance
from textile_modules.returns.models import ReturnLineInput


@pytest.fixture
def run_work_order(production_service, stock_in, shirt, fabric, vendor_id, test_actor_id):
    """Buy 200 m, plan 100 shirts at 1.5 m, issue ``issued`` m, receive 100."""
    production_service.save_bom(shirt.id, [BomLineInput(fabric.id, "1.5")], test_actor_id)
    stock_in(fabric, "200", "25000")

    def _run(issued, received="100"):
        wo = production_service.create_work_order(vendor_id, shirt.id, "100", test_actor_id)
        production_service.issue_work_order(wo.id, test_actor_id)
        production_service.issue_materials(
            wo.id, [IssueLineInput(fabric.id, issued)], test_actor_id, IssueType.FABRIC
        )
        production_service.receive_finished_goods(wo.id, received, test_actor_id)
        return wo

    return _run


@pytest.mark.parametrize(
    "issued, expected_status, expected_variance",
    [
        ("150", ReconciliationStatus.OK, Decimal("0")),
        ("151", ReconciliationStatus.OK, Decimal("1")),
        ("160", ReconciliationStatus.OVER, Decimal("10")),
        ("140", ReconciliationStatus.UNDER, Decimal("-10")),
    ],
)
def test_variance_classification(reconciler, run_work_order, issued, expected_status, expected_variance):
    wo = run_work_order(issued)

    line = reconciler.reconcile(wo.id).lines[0]

    assert line.theoretical_usage == Decimal("150")
    assert line.variance == expected_variance
    assert line.status is expected_status


def test_summary(reconciler, run_work_order):
    wo = run_work_order("160")

    result = reconciler.reconcile(wo.id)

    summary = result.summary
    assert summary.total_issues == 1
    assert summary.total_receipts == 1
    assert summary.total_returns == 0
    assert summary.total_material_cost == Decimal("4000000")
    assert summary.total_fg_value == Decimal("4000000")
    assert summary.material_variance == Decimal("0")
    assert summary.completion_percent == Decimal("100")
    assert summary.net_variance_value == Decimal("250000")
    line = result.lines[0]
    assert line.variance_percent.quantize(Decimal("0.01")) == Decimal("6.67")


def test_processed_returns_reduce_usage(
    reconciler, run_work_order, return_service, fabric, vendor_id, test_actor_id
):
    wo = run_work_order("160")
    ret = return_service.create_draft(
        vendor_id,
        [ReturnLineInput("FABRIC", fabric.id, "10", "Leftover cut ends", "GOOD")],
        test_actor_id,
        work_order_id=wo.id,
    )

    assert reconciler.reconcile(wo.id).lines[0].returned_qty == Decimal("0")

    return_service.process(ret.id, test_actor_id)
    result = reconciler.reconcile(wo.id)

    line = result.lines[0]
    assert line.returned_qty == Decimal("10")
    assert line.actual_used == Decimal("150")
    assert line.status is ReconciliationStatus.OK
    assert result.summary.total_returns == 1


def test_tolerance_comes_from_settings(session, run_work_order):
    wo = run_work_order("151")
    strict = KernelSettings.from_dict({"reconciliation_tolerance_percent": "0.5"})

    line = WorkOrderReconciler(session, strict).reconcile(wo.id).lines[0]

    assert line.status is ReconciliationStatus.OVER


def test_classify_variance_boundaries():
    assert classify_variance(Decimal("1.5"), Decimal("150"), Decimal("1")) is ReconciliationStatus.OK
    assert classify_variance(Decimal("-1.5"), Decimal("150"), Decimal("1")) is ReconciliationStatus.OK
    assert classify_variance(Decimal("1.6"), Decimal("150"), Decimal("1")) is ReconciliationStatus.OVER
    assert classify_variance(Decimal("0"), Decimal("0"), Decimal("1")) is ReconciliationStatus.OK
