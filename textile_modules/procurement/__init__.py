"""
Procurement Module (``textile_modules.procurement``).

Responsibility
--------------
Purchase orders and goods receipt notes.  A GRN is the only inbound
purchase path into stock: each received line becomes a moving-average
receipt on the item and an IN movement in the stock ledger, and, when the
GRN is linked to a PO, rolls the received quantity up onto the PO line and
recomputes the PO status.

Architecture
------------
Layer: **Modules** -- ORM models, DTOs, the PO state machine and a thin
orchestration service.  Numbering, costing, the ledger and audit come from
``textile_kernel``; nothing in the kernel imports from here.

Invariants
----------
- Each service method owns its transaction boundary (commit / rollback).
- The PO row is locked before its received quantities or status change.
- Every PO status change writes a POStatusHistory row.

Failure Modes
-------------
- ``InvalidTransitionError`` when receiving against a PO that is not
  SUBMITTED or PARTIAL.
- ``DocumentHasDependentsError`` when cancelling a PO with goods receipts.
- Any exception triggers a session rollback before re-raising.
"""

from textile_modules.procurement.models import (
    GoodsReceipt,
    GoodsReceiptLine,
    GRNLineInput,
    OverduePurchaseOrder,
    POItem,
    POLineInput,
    POStatus,
    PurchaseOrder,
)
from textile_modules.procurement.service import ProcurementService
from textile_modules.procurement.workflows import PURCHASE_ORDER_WORKFLOW

__all__ = [
    "GoodsReceipt",
    "GoodsReceiptLine",
    "GRNLineInput",
    "OverduePurchaseOrder",
    "POItem",
    "POLineInput",
    "POStatus",
    "PurchaseOrder",
    "ProcurementService",
    "PURCHASE_ORDER_WORKFLOW",
]
