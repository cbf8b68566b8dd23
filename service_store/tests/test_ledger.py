"""
Unit tests for InventoryLedger.
"""

import asyncio
import uuid

import pytest

from service_store.app.inventory.ledger import InventoryLedger, coerce_quantity
from service_store.app.models import MAX_QUANTITY
from shared.errors import (
    InsufficientStockError, InvalidQuantityError, NotFoundError, ValidationError
)
from shared.metrics import MetricsCollector


class TestCoerceQuantity:
    """Test cases for coerce_quantity."""

    @pytest.mark.parametrize("value,expected", [
        (3, 3),
        (0, 0),
        (-2, -2),
        (2.0, 2),
        ("4", 4),
        (" 5 ", 5),
        ("6.0", 6),
    ])
    def test_accepts_integral_values(self, value, expected):
        assert coerce_quantity(value) == expected

    @pytest.mark.parametrize("value", [None, True, False, 1.5, "abc", "", [1], {"n": 1}])
    def test_rejects_everything_else(self, value):
        assert coerce_quantity(value) is None


class TestInventoryLedger:
    """Test cases for InventoryLedger."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("store")

    @pytest.fixture
    def ledger(self, store, metrics):
        return InventoryLedger(store, metrics=metrics)

    @pytest.mark.asyncio
    async def test_purchase_decrements_stock(self, ledger, store):
        item = store.seed_item(stock=10)

        result = await ledger.purchase(item.id, 3)

        assert result.stock == 7
        assert store.items[item.id].stock == 7

    @pytest.mark.asyncio
    async def test_purchase_defaults_to_one_unit(self, ledger, store):
        item = store.seed_item(stock=2)

        result = await ledger.purchase(item.id)

        assert result.stock == 1

    @pytest.mark.asyncio
    async def test_purchase_can_empty_stock(self, ledger, store):
        item = store.seed_item(stock=4)

        result = await ledger.purchase(item.id, 4)

        assert result.stock == 0

    @pytest.mark.asyncio
    async def test_insufficient_stock_reports_available_and_leaves_stock(self, ledger, store):
        item = store.seed_item(stock=2)

        with pytest.raises(InsufficientStockError) as exc_info:
            await ledger.purchase(item.id, 5)

        assert exc_info.value.status_code == 400
        assert exc_info.value.details == {"available": 2, "requested": 5}
        assert "Only 2 item(s) available" in exc_info.value.message
        assert store.items[item.id].stock == 2
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_purchase_unknown_item(self, ledger, store):
        with pytest.raises(NotFoundError):
            await ledger.purchase(str(uuid.uuid4()), 1)
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_purchase_malformed_id(self, ledger, store):
        with pytest.raises(ValidationError):
            await ledger.purchase("not-an-id", 1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -1, "abc", 1.5, True])
    async def test_purchase_invalid_quantity(self, ledger, store, quantity):
        item = store.seed_item(stock=10)

        with pytest.raises(InvalidQuantityError) as exc_info:
            await ledger.purchase(item.id, quantity)

        assert exc_info.value.code == "INVALID_QUANTITY"
        assert store.items[item.id].stock == 10
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_purchase_null_quantity_means_one(self, ledger, store):
        item = store.seed_item(stock=3)

        result = await ledger.purchase(item.id, None)

        assert result.stock == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [MAX_QUANTITY + 1, 3_000_000_000, "3000000000", 1e20])
    async def test_purchase_quantity_above_column_max(self, ledger, store, quantity):
        item = store.seed_item(stock=10)

        with pytest.raises(InvalidQuantityError):
            await ledger.purchase(item.id, quantity)

        assert store.items[item.id].stock == 10
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_purchase_accepts_uppercase_id(self, ledger, store):
        item = store.seed_item(stock=3)

        result = await ledger.purchase(item.id.upper(), 1)

        assert result.id == item.id
        assert result.stock == 2

    @pytest.mark.asyncio
    async def test_concurrent_purchases_never_oversell(self, ledger, store):
        item = store.seed_item(stock=5)

        results = await asyncio.gather(
            *(ledger.purchase(item.id, 1) for _ in range(12)),
            return_exceptions=True
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 5
        assert all(isinstance(f, InsufficientStockError) for f in failures)
        assert store.items[item.id].stock == 0

    @pytest.mark.asyncio
    async def test_concurrent_mixed_quantities(self, ledger, store):
        item = store.seed_item(stock=10)
        quantities = [4, 3, 3, 2, 5, 1]

        results = await asyncio.gather(
            *(ledger.purchase(item.id, q) for q in quantities),
            return_exceptions=True
        )

        sold = sum(q for q, r in zip(quantities, results) if not isinstance(r, Exception))
        assert store.items[item.id].stock == 10 - sold
        assert store.items[item.id].stock >= 0

    @pytest.mark.asyncio
    async def test_restock_increments_exactly(self, ledger, store):
        item = store.seed_item(stock=1)

        result = await ledger.restock(item.id, 9)

        assert result.stock == 10
        assert store.items[item.id].stock == 10

    @pytest.mark.asyncio
    async def test_restock_accepts_numeric_string(self, ledger, store):
        item = store.seed_item(stock=0)

        result = await ledger.restock(item.id, "3")

        assert result.stock == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, -5, None, "", "many"])
    async def test_restock_invalid_quantity_never_writes(self, ledger, store, quantity):
        item = store.seed_item(stock=4)

        with pytest.raises(InvalidQuantityError):
            await ledger.restock(item.id, quantity)

        assert store.items[item.id].stock == 4
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_restock_quantity_above_column_max(self, ledger, store):
        item = store.seed_item(stock=0)

        with pytest.raises(InvalidQuantityError):
            await ledger.restock(item.id, 3_000_000_000)

        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_restock_that_would_overflow_stock(self, ledger, store):
        item = store.seed_item(stock=MAX_QUANTITY - 1)

        with pytest.raises(InvalidQuantityError) as exc_info:
            await ledger.restock(item.id, 2)

        assert exc_info.value.details["stock"] == MAX_QUANTITY - 1
        assert store.items[item.id].stock == MAX_QUANTITY - 1
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_restock_up_to_column_max(self, ledger, store):
        item = store.seed_item(stock=MAX_QUANTITY - 1)

        result = await ledger.restock(item.id, 1)

        assert result.stock == MAX_QUANTITY

    @pytest.mark.asyncio
    async def test_restock_unknown_item(self, ledger):
        with pytest.raises(NotFoundError):
            await ledger.restock(str(uuid.uuid4()), 2)

    @pytest.mark.asyncio
    async def test_outcomes_are_counted(self, ledger, store, metrics):
        item = store.seed_item(stock=1)
        await ledger.purchase(item.id, 1)
        with pytest.raises(InsufficientStockError):
            await ledger.purchase(item.id, 1)

        registry = metrics.registry
        assert registry.get_sample_value(
            "inventory_operations_total", {"operation": "purchase", "outcome": "success"}) == 1
        assert registry.get_sample_value(
            "inventory_operations_total", {"operation": "purchase", "outcome": "insufficient_stock"}) == 1
