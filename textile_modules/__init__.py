"""
Textile Modules.

Document workflows over the textile kernel.  Each module contains:
- ORM models for its documents (orm.py)
- Frozen DTOs and inputs (models.py)
- State machines (workflows.py)
- A service that owns the transaction boundary (service.py)

Modules:
- Procurement: purchase orders, goods receipts
- Production: work orders, material issues, FG receipts, BOMs, reconciliation
- Inventory: stock adjustments
- Returns: vendor returns
"""

from textile_modules import inventory, procurement, production, returns

__all__ = [
    "inventory",
    "procurement",
    "production",
    "returns",
]
