"""
Cart aggregation: payload normalization plus merge/replace/remove semantics.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from shared.errors import NotFoundError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..models import MAX_QUANTITY, Cart, CartEntry, CartLine, CatalogItem, parse_item_id


ID_KEYS = ("itemId", "item", "_id")
NESTED_ID_KEYS = ("_id", "id")
QUANTITY_KEYS = ("quantity", "qty")


def _scalar_id(value: Any) -> Optional[str]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int)):
        text = str(value).strip()
        return text or None
    return None


def _extract_id(entry: Dict[str, Any]) -> Optional[str]:
    for key in ID_KEYS:
        value = entry.get(key)
        if isinstance(value, dict):
            for nested_key in NESTED_ID_KEYS:
                nested = _scalar_id(value.get(nested_key))
                if nested:
                    return nested
            continue
        scalar = _scalar_id(value)
        if scalar:
            return scalar
    return None


def _extract_quantity(entry: Dict[str, Any]) -> int:
    for key in QUANTITY_KEYS:
        value = entry.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            quantity = value if isinstance(value, int) else int(float(value))
        except (TypeError, ValueError, OverflowError):
            return 1
        return max(1, quantity)
    return 1


def _check_line_totals(lines: Iterable[CartLine]):
    for line in lines:
        if line.quantity > MAX_QUANTITY:
            raise ValidationError(
                f"Quantity too large for item: {line.item_id}",
                {"item_id": line.item_id, "max_quantity": MAX_QUANTITY}
            )


def normalize(payload: Any) -> List[CartEntry]:
    """Normalize a client cart payload into ordered ``CartEntry`` values.

    Accepted shapes::

        {"itemId": "A", "quantity": 2}
        {"item": "A"} / {"item": {"_id": "A"}, "qty": 2}
        {"items": [<any of the above>, ...]}

    Quantity defaults to 1 and is floored at 1. Entries inside ``items``
    whose id cannot be found are kept with ``item_id=None`` so validation
    can report them. Anything else normalizes to ``[]``.
    """
    if not isinstance(payload, dict):
        return []

    items = payload.get("items")
    if isinstance(items, list):
        entries = []
        for raw in items:
            if isinstance(raw, dict):
                entries.append(CartEntry(_extract_id(raw), _extract_quantity(raw)))
            else:
                entries.append(CartEntry(None, 1))
        return entries

    item_id = _extract_id(payload)
    if item_id:
        return [CartEntry(item_id, _extract_quantity(payload))]
    return []


class CartAggregator:
    """Applies merge and replace semantics to a user's cart.

    Every entry is validated against the catalog before anything is written,
    so a bad entry late in a batch never leaves a half-updated cart.
    Concurrent writers for the same user resolve as last-writer-wins.
    """

    def __init__(self, store, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("store.cart")

    async def get(self, owner_id: str) -> Cart:
        """Fetch the user's cart, empty when none exists yet."""
        cart = await self.store.get_cart(owner_id)
        return cart if cart is not None else Cart(owner_id=owner_id)

    async def resolve(self, cart: Cart) -> List[Tuple[CartLine, Optional[CatalogItem]]]:
        """Pair each cart line with its catalog item (None if it vanished)."""
        items = await self.store.get_items([line.item_id for line in cart.items])
        return [(line, items.get(line.item_id)) for line in cart.items]

    async def add(self, owner_id: str, entries: List[CartEntry]) -> Tuple[Cart, bool]:
        """Merge entries into the cart additively.

        Not idempotent: adding the same entry twice doubles its quantity.
        Returns the saved cart and whether it was created by this call.
        """
        if not entries:
            raise ValidationError("No items provided")
        validated = await self._validate(entries)

        existing = await self.store.get_cart(owner_id)
        created = existing is None
        cart = existing if existing is not None else Cart(owner_id=owner_id)

        for entry in validated:
            line = cart.find(entry.item_id)
            if line is not None:
                line.quantity += entry.quantity
            else:
                cart.items.append(CartLine(item_id=entry.item_id, quantity=entry.quantity))
        _check_line_totals(cart.items)

        cart = await self.store.save_cart(cart)
        self._record("add")
        self.logger.info("Cart merged", owner_id=owner_id, entries=len(validated), lines=len(cart.items))
        return cart, created

    async def replace(self, owner_id: str, entries: List[CartEntry]) -> Cart:
        """Substitute the cart's lines wholesale.

        Duplicate ids in one payload are summed into a single line kept at
        the position of their first occurrence. An empty payload clears the
        cart.
        """
        validated = await self._validate(entries)

        lines: Dict[str, CartLine] = {}
        for entry in validated:
            if entry.item_id in lines:
                lines[entry.item_id].quantity += entry.quantity
            else:
                lines[entry.item_id] = CartLine(item_id=entry.item_id, quantity=entry.quantity)
        _check_line_totals(lines.values())

        cart = await self.store.save_cart(Cart(owner_id=owner_id, items=list(lines.values())))
        self._record("replace")
        self.logger.info("Cart replaced", owner_id=owner_id, lines=len(cart.items))
        return cart

    async def remove(self, owner_id: str, item_id: str) -> Cart:
        """Drop the line for ``item_id``; absent lines are not an error."""
        canonical = parse_item_id(item_id)
        if canonical is None:
            raise ValidationError(f"Invalid itemId: {item_id}", {"item_id": item_id})

        cart = await self.store.get_cart(owner_id)
        if cart is None:
            return Cart(owner_id=owner_id)

        remaining = [line for line in cart.items if line.item_id != canonical]
        if len(remaining) == len(cart.items):
            return cart

        cart.items = remaining
        cart = await self.store.save_cart(cart)
        self._record("remove")
        self.logger.info("Cart line removed", owner_id=owner_id, item_id=canonical)
        return cart

    async def _validate(self, entries: List[CartEntry]) -> List[CartEntry]:
        """Check every entry, returning them with canonical ids. Never writes."""
        validated = []
        for entry in entries:
            if not entry.item_id:
                raise ValidationError("Missing itemId for an item")
            canonical = parse_item_id(entry.item_id)
            if canonical is None:
                raise ValidationError(f"Invalid itemId: {entry.item_id}", {"item_id": entry.item_id})
            if entry.quantity < 1:
                raise ValidationError(f"Invalid quantity for item: {entry.item_id}", {"item_id": entry.item_id})
            if entry.quantity > MAX_QUANTITY:
                raise ValidationError(
                    f"Quantity too large for item: {entry.item_id}",
                    {"item_id": entry.item_id, "max_quantity": MAX_QUANTITY}
                )
            validated.append(CartEntry(canonical, entry.quantity))

        existing = await self.store.existing_item_ids({entry.item_id for entry in validated})
        for entry in validated:
            if entry.item_id not in existing:
                raise NotFoundError(f"Item not found: {entry.item_id}", {"item_id": entry.item_id})
        return validated

    def _record(self, operation: str):
        if self.metrics is not None:
            self.metrics.increment_counter("cart_operations_total", operation=operation)
