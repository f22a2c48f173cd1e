"""
CatalogService -- item creation for seeds, imports and tests.

Catalog maintenance screens are outside the core; this service only
guarantees that every Item is born with its zero-state InventoryValue row.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from textile_kernel.domain.values import to_non_negative_decimal
from textile_kernel.exceptions import ItemNotFoundError, ValidationError
from textile_kernel.logging_config import get_logger
from textile_kernel.models.inventory import InventoryValue
from textile_kernel.models.item import Item, ItemType

logger = get_logger("services.catalog_service")


class CatalogService:
    """Creates and looks up items.  Does not commit."""

    def __init__(self, session: Session):
        self._session = session

    def create_item(
        self,
        sku: str,
        name: str,
        item_type: ItemType | str,
        actor_id: UUID,
        uom: str = "PCS",
        reorder_point: Any = None,
    ) -> Item:
        if not sku or not sku.strip():
            raise ValidationError("SKU is required", "sku")
        if not name or not name.strip():
            raise ValidationError("Name is required", "name")
        try:
            item_type = ItemType(item_type)
        except ValueError:
            raise ValidationError(f"Unknown item type: {item_type}", "item_type") from None

        item = Item(
            sku=sku.strip(),
            name=name.strip(),
            item_type=item_type.value,
            uom=uom,
            reorder_point=(
                to_non_negative_decimal(reorder_point, "reorder_point")
                if reorder_point is not None
                else None
            ),
            created_by_id=actor_id,
        )
        self._session.add(item)
        self._session.flush()
        self._session.add(
            InventoryValue(
                item_id=item.id,
                qty_on_hand=Decimal("0"),
                avg_cost=Decimal("0"),
                total_value=Decimal("0"),
                movement_count=0,
            )
        )
        self._session.flush()
        logger.info("item_created", extra={"item_id": str(item.id), "sku": item.sku})
        return item

    def get_item(self, item_id: UUID) -> Item:
        item = self._session.get(Item, item_id)
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def get_by_sku(self, sku: str) -> Item:
        item = self._session.execute(
            select(Item).where(Item.sku == sku)
        ).scalar_one_or_none()
        if item is None:
            raise ItemNotFoundError(sku)
        return item
