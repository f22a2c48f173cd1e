"""Kernel ORM models."""

from textile_kernel.models.audit_log import AuditAction, AuditLog
from textile_kernel.models.doc_number import DocNumberConfig
from textile_kernel.models.inventory import (
    InventoryValue,
    MovementRefType,
    MovementType,
    StockMovement,
)
from textile_kernel.models.item import ConsumptionRule, Item, ItemType

__all__ = [
    "AuditAction",
    "AuditLog",
    "ConsumptionRule",
    "DocNumberConfig",
    "InventoryValue",
    "Item",
    "ItemType",
    "MovementRefType",
    "MovementType",
    "StockMovement",
]
