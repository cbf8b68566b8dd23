"""
Shared fixtures for Store service tests.
"""

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from service_store.app.main import StoreService
from service_store.app.models import MAX_QUANTITY, Cart, CartLine, CatalogFilter, CatalogItem
from shared.config import ServiceConfig
from shared.test_helpers import MockTokenGenerator, TestDataFactory

TEST_SECRET = "test-secret"


class InMemoryStore:
    """Store double with the same surface as PostgreSQLStore.

    Each operation completes without yielding to the event loop between its
    check and its write, which gives the conditional decrement the same
    atomicity the SQL UPDATE has.
    """

    def __init__(self):
        self.items: Dict[str, CatalogItem] = {}
        self.carts: Dict[str, Cart] = {}
        self.connected = False
        self.connect_calls = 0
        self.close_calls = 0
        self.writes = 0

    async def connect(self, dsn: str):
        self.connect_calls += 1
        self.connected = True

    async def close(self):
        self.close_calls += 1
        self.connected = False

    def seed_item(self, **fields) -> CatalogItem:
        now = datetime.now(timezone.utc)
        item = CatalogItem(
            id=fields.pop("id", str(uuid.uuid4())),
            name=fields.pop("name", "Item"),
            price=fields.pop("price", 10.0),
            stock=fields.pop("stock", 0),
            created_at=now,
            updated_at=now,
            **fields
        )
        self.items[item.id] = item
        return item

    async def list_items(self, criteria: Optional[CatalogFilter] = None) -> List[CatalogItem]:
        criteria = criteria or CatalogFilter()
        result = []
        for item in self.items.values():
            if criteria.q and criteria.q.lower() not in item.name.lower():
                continue
            if criteria.category and item.category != criteria.category:
                continue
            if criteria.min_price is not None and item.price < criteria.min_price:
                continue
            if criteria.max_price is not None and item.price > criteria.max_price:
                continue
            result.append(replace(item))
        return result

    async def get_item(self, item_id: str) -> Optional[CatalogItem]:
        item = self.items.get(item_id)
        return replace(item) if item else None

    async def get_items(self, item_ids: Iterable[str]) -> Dict[str, CatalogItem]:
        return {item_id: replace(self.items[item_id]) for item_id in item_ids if item_id in self.items}

    async def existing_item_ids(self, item_ids: Iterable[str]) -> Set[str]:
        return {item_id for item_id in item_ids if item_id in self.items}

    async def create_item(self, owner_id: str, fields: Dict[str, Any]) -> CatalogItem:
        self.writes += 1
        return replace(self.seed_item(owner_id=owner_id, **dict(fields)))

    async def update_item(self, item_id: str, fields: Dict[str, Any]) -> Optional[CatalogItem]:
        item = self.items.get(item_id)
        if item is None:
            return None
        self.writes += 1
        for key, value in fields.items():
            setattr(item, key, value)
        return replace(item)

    async def delete_item(self, item_id: str) -> bool:
        if self.items.pop(item_id, None) is None:
            return False
        self.writes += 1
        for cart in self.carts.values():
            cart.items = [line for line in cart.items if line.item_id != item_id]
        return True

    async def decrement_stock_if_available(self, item_id: str, quantity: int) -> Optional[CatalogItem]:
        item = self.items.get(item_id)
        if item is None or item.stock < quantity:
            return None
        self.writes += 1
        item.stock -= quantity
        return replace(item)

    async def increment_stock(self, item_id: str, quantity: int) -> Optional[CatalogItem]:
        item = self.items.get(item_id)
        if item is None or item.stock + quantity > MAX_QUANTITY:
            return None
        self.writes += 1
        item.stock += quantity
        return replace(item)

    async def get_stock(self, item_id: str) -> Optional[int]:
        item = self.items.get(item_id)
        return item.stock if item else None

    async def get_cart(self, owner_id: str) -> Optional[Cart]:
        cart = self.carts.get(owner_id)
        if cart is None:
            return None
        return Cart(
            owner_id=owner_id,
            items=[CartLine(line.item_id, line.quantity) for line in cart.items],
            updated_at=cart.updated_at
        )

    async def save_cart(self, cart: Cart) -> Cart:
        self.writes += 1
        cart.updated_at = datetime.now(timezone.utc)
        self.carts[cart.owner_id] = Cart(
            owner_id=cart.owner_id,
            items=[CartLine(line.item_id, line.quantity) for line in cart.items],
            updated_at=cart.updated_at
        )
        return cart


@pytest.fixture
def store():
    """In-memory store."""
    return InMemoryStore()


@pytest.fixture
def config():
    """Service configuration without a database URL."""
    return ServiceConfig(service_name="store", port=5001, jwt_secret=TEST_SECRET, database_url=None)


@pytest.fixture
def service(config, store):
    """Store service backed by the in-memory store."""
    return StoreService(config=config, store=store)


@pytest.fixture
def client(service):
    """Test client; the store is not connected."""
    return TestClient(service.app)


@pytest.fixture
def ready_client(service):
    """Test client with the supervisor reporting a connected store."""
    with patch.object(service.supervisor, "is_ready", return_value=True):
        yield TestClient(service.app)


@pytest.fixture
def users():
    """Test users keyed by role name."""
    user, other, admin = TestDataFactory.create_test_users()
    return {"user": user, "other": other, "admin": admin}


@pytest.fixture
def tokens():
    """Token generator sharing the service secret."""
    return MockTokenGenerator(secret=TEST_SECRET)
