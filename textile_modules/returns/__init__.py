"""
Returns Module (``textile_modules.returns``).

Responsibility
--------------
Vendor returns: leftover fabric and accessories coming back from a CMT
vendor, plus rejected finished goods recorded against the vendor.

Architecture
------------
Layer: **Modules**.  Processing a return is a receipt into stock at the
value fixed when the draft was saved; FG_REJECT lines are documentary only.

Invariants
----------
- A return moves stock at most once (DRAFT -> PROCESSED under the row lock).
- Processed and completed returns feed work order reconciliation.
"""

from textile_modules.returns.models import (
    ReturnCondition,
    ReturnLineInput,
    ReturnLineType,
    ReturnStatus,
    VendorReturn,
    VendorReturnLine,
)
from textile_modules.returns.service import VendorReturnService
from textile_modules.returns.workflows import VENDOR_RETURN_WORKFLOW

__all__ = [
    "ReturnCondition",
    "ReturnLineInput",
    "ReturnLineType",
    "ReturnStatus",
    "VendorReturn",
    "VendorReturnLine",
    "VendorReturnService",
    "VENDOR_RETURN_WORKFLOW",
]
