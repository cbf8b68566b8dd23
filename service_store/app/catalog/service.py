"""
Catalog operations for the Store service.
"""

from typing import Any, Dict, List, Optional

from shared.errors import ForbiddenError, NotFoundError, ValidationError
from shared.logging import get_logger
from ..models import (
    CatalogFilter, CatalogItem, CatalogItemCreateRequest, CatalogItemUpdateRequest,
    Identity, parse_item_id
)


NULLABLE_FIELDS = ("description", "category", "image")


def redact(items: List[CatalogItem], is_admin: bool) -> List[Dict[str, Any]]:
    """Serialize items, dropping the ``stock`` key for non-admin viewers."""
    return [item.to_public(include_stock=is_admin) for item in items]


def parse_price(value: Optional[str], name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        raise ValidationError(f"Invalid {name}: {value}", {name: value})


class CatalogService:
    """List, search and edit catalog items."""

    def __init__(self, store):
        self.store = store
        self.logger = get_logger("store.catalog")

    async def list_items(self, criteria: Optional[CatalogFilter] = None) -> List[CatalogItem]:
        return await self.store.list_items(criteria)

    async def create_item(self, owner: Identity, request: CatalogItemCreateRequest) -> CatalogItem:
        return await self.store.create_item(owner.id, request.model_dump())

    async def update_item(self, caller: Identity, item_id: str,
                          request: CatalogItemUpdateRequest) -> CatalogItem:
        """Apply a partial update; only the item's owner or an admin may edit."""
        item_id = self._item_id(item_id)
        item = await self.store.get_item(item_id)
        if item is None:
            raise NotFoundError("Item not found", {"item_id": item_id})

        if item.owner_id != caller.id and not caller.is_admin:
            raise ForbiddenError("Not authorized to update this item", {"item_id": item_id})

        changes = {
            key: value for key, value in request.model_dump(exclude_unset=True).items()
            if value is not None or key in NULLABLE_FIELDS
        }
        updated = await self.store.update_item(item_id, changes)
        if updated is None:
            # Deleted between the ownership check and the write.
            raise NotFoundError("Item not found", {"item_id": item_id})
        self.logger.info("Catalog item updated", item_id=item_id, caller_id=caller.id)
        return updated

    async def delete_item(self, item_id: str) -> None:
        item_id = self._item_id(item_id)
        if not await self.store.delete_item(item_id):
            raise NotFoundError("Item not found", {"item_id": item_id})

    def _item_id(self, item_id: str) -> str:
        canonical = parse_item_id(item_id)
        if canonical is None:
            raise ValidationError(f"Invalid item id: {item_id}", {"item_id": item_id})
        return canonical
