"""
Inventory ledger: atomic stock adjustments.
"""

from typing import Any, Optional

from shared.errors import InsufficientStockError, InvalidQuantityError, NotFoundError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..models import MAX_QUANTITY, CatalogItem, parse_item_id


def coerce_quantity(value: Any) -> Optional[int]:
    """Coerce a client-supplied quantity to an int, or None if it is not one.

    Accepts ints, integral floats and numeric strings. Booleans are rejected.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            try:
                number = float(text)
            except ValueError:
                return None
            return int(number) if number.is_integer() else None
    return None


class InventoryLedger:
    """Stock adjustments performed as single conditional writes in the store.

    No application-level locking: the store's conditional UPDATE is the only
    thing standing between concurrent purchases and a negative stock.
    Authorization (restock is admin-only) is the caller's concern.
    """

    def __init__(self, store, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("store.inventory")

    async def purchase(self, item_id: str, quantity: Any = 1) -> CatalogItem:
        """Take ``quantity`` units of an item; a missing (None) quantity means 1.

        Raises InvalidQuantityError, NotFoundError or InsufficientStockError.
        """
        item_id = self._check_item_id(item_id)
        if quantity is None:
            quantity = 1
        qty = coerce_quantity(quantity)
        if qty is None or qty < 1:
            self._record("purchase", "invalid_quantity")
            raise InvalidQuantityError("Quantity must be >= 1", {"quantity": quantity})
        if qty > MAX_QUANTITY:
            self._record("purchase", "invalid_quantity")
            raise InvalidQuantityError(f"Quantity must be <= {MAX_QUANTITY}", {"quantity": quantity})

        item = await self.store.decrement_stock_if_available(item_id, qty)
        if item is not None:
            self._record("purchase", "success")
            self.logger.info("Purchase recorded", item_id=item_id, quantity=qty, stock=item.stock)
            return item

        # Diagnostic read for the error message only; the write above already decided.
        available = await self.store.get_stock(item_id)
        if available is None:
            self._record("purchase", "not_found")
            raise NotFoundError("Item not found", {"item_id": item_id})

        self._record("purchase", "insufficient_stock")
        self.logger.info(
            "Purchase rejected, insufficient stock",
            item_id=item_id,
            requested=qty,
            available=available
        )
        raise InsufficientStockError(available=available, requested=qty)

    async def restock(self, item_id: str, quantity: Any) -> CatalogItem:
        """Add ``quantity`` units to an item.

        Raises InvalidQuantityError before touching storage (or when the new
        total would overflow the stock column), or NotFoundError.
        """
        item_id = self._check_item_id(item_id)
        qty = coerce_quantity(quantity)
        if qty is None or qty <= 0:
            self._record("restock", "invalid_quantity")
            raise InvalidQuantityError("Please provide a valid quantity > 0", {"quantity": quantity})
        if qty > MAX_QUANTITY:
            self._record("restock", "invalid_quantity")
            raise InvalidQuantityError(f"Quantity must be <= {MAX_QUANTITY}", {"quantity": quantity})

        item = await self.store.increment_stock(item_id, qty)
        if item is None:
            # Either the item is gone or the new total would not fit the column.
            available = await self.store.get_stock(item_id)
            if available is None:
                self._record("restock", "not_found")
                raise NotFoundError("Item not found", {"item_id": item_id})
            self._record("restock", "invalid_quantity")
            raise InvalidQuantityError(
                f"Restock would exceed the maximum stock of {MAX_QUANTITY}",
                {"quantity": qty, "stock": available}
            )

        self._record("restock", "success")
        self.logger.info("Restock recorded", item_id=item_id, quantity=qty, stock=item.stock)
        return item

    def _check_item_id(self, item_id: str) -> str:
        canonical = parse_item_id(item_id)
        if canonical is None:
            raise ValidationError(f"Invalid item id: {item_id}", {"item_id": item_id})
        return canonical

    def _record(self, operation: str, outcome: str):
        if self.metrics is not None:
            self.metrics.increment_counter("inventory_operations_total", operation=operation, outcome=outcome)
