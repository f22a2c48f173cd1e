"""
Inventory Module (``textile_modules.inventory``).

Responsibility
--------------
Manual stock adjustments.  An adjustment is a sensitive action: it requires
step-up verification, moves stock at the current average cost and is
recorded in the audit log.

Read models (stock card, stock summary, low stock, replay check) are kernel
selectors in ``textile_kernel.selectors``.
"""

from textile_modules.inventory.models import AdjustmentType, StockAdjustment
from textile_modules.inventory.service import InventoryService

__all__ = [
    "AdjustmentType",
    "StockAdjustment",
    "InventoryService",
]
