"""
Production Module (``textile_modules.production``).

Responsibility
--------------
CMT (cut-make-trim) production: bills of materials, work orders with a
consumption plan, material issues to the vendor, finished-goods receipts
and material reconciliation.

Architecture
------------
Layer: **Modules**.  The material planner, sequencer, costing engine and
stock ledger are kernel services; this package orchestrates them per
document and owns the work order state machine.

Invariants
----------
- A work order is never created against a material shortage.
- Material issues consume at the current moving-average cost.
- Finished goods enter stock at issued material cost per accepted unit.
- Each service method owns its transaction boundary (commit / rollback).
"""

from textile_modules.production.models import (
    BomLineInput,
    FGReceipt,
    IssueLineInput,
    IssueType,
    MaterialIssue,
    MaterialIssueLine,
    OutputMode,
    ReconciliationLine,
    ReconciliationStatus,
    ReconciliationSummary,
    RollBreakdownInput,
    WorkOrder,
    WorkOrderMaterial,
    WorkOrderReconciliation,
    WorkOrderStatus,
)
from textile_modules.production.reconciliation import WorkOrderReconciler
from textile_modules.production.service import ProductionService
from textile_modules.production.workflows import WORK_ORDER_WORKFLOW

__all__ = [
    "BomLineInput",
    "FGReceipt",
    "IssueLineInput",
    "IssueType",
    "MaterialIssue",
    "MaterialIssueLine",
    "OutputMode",
    "ReconciliationLine",
    "ReconciliationStatus",
    "ReconciliationSummary",
    "RollBreakdownInput",
    "WorkOrder",
    "WorkOrderMaterial",
    "WorkOrderReconciliation",
    "WorkOrderStatus",
    "WorkOrderReconciler",
    "ProductionService",
    "WORK_ORDER_WORKFLOW",
]
