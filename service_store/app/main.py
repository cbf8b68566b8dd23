"""
Store service: catalog, cart and purchase API.
"""

from typing import Any, Dict, List, Optional, Tuple

import uvicorn
from fastapi import Body, Depends, Query, Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.retry import RetryConfig

from .auth.access_gate import AccessGate, require_admin, require_user
from .cart.aggregator import CartAggregator, normalize
from .catalog.service import CatalogService, parse_price, redact
from .inventory.ledger import InventoryLedger, coerce_quantity
from .models import (
    Cart, CartLine, CatalogFilter, CatalogItem, CatalogItemCreateRequest,
    CatalogItemUpdateRequest, Identity
)
from .persistence.postgres import PostgreSQLStore
from .supervision.gate import AvailabilityGate
from .supervision.server import SupervisedServer
from .supervision.supervisor import ConnectionSupervisor


DATA_API_PREFIXES = ("/catalog", "/cart")


class StoreService(BaseService):
    """Store service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, store=None):
        super().__init__("store", 5001, config=config)
        self._server = None

        self.store = store if store is not None else PostgreSQLStore(
            min_size=self.config.pool_min_size,
            max_size=self.config.pool_max_size,
            command_timeout=self.config.command_timeout
        )
        self.supervisor = ConnectionSupervisor(
            connect=self.store.connect,
            disconnect=self.store.close,
            retry_config=RetryConfig(
                base_delay=self.config.retry_base_delay,
                max_delay=self.config.retry_max_delay,
                jitter_max=self.config.retry_jitter_max
            ),
            metrics=self.metrics,
            on_shutdown=self._request_server_exit
        )
        self.access_gate = AccessGate(self.config.jwt_secret, self.config.jwt_algorithm)
        self.catalog = CatalogService(self.store)
        self.ledger = InventoryLedger(self.store, metrics=self.metrics)
        self.carts = CartAggregator(self.store, metrics=self.metrics)

        self._setup_store_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.store_service = self

    def _setup_middleware(self):
        """Gate the data API on store readiness, inside the timing middleware."""
        self.app.add_middleware(
            AvailabilityGate,
            readiness=lambda: self.supervisor.is_ready(),
            protected_prefixes=DATA_API_PREFIXES
        )
        super()._setup_middleware()

    async def on_startup(self):
        if not self.config.database_url:
            self.logger.warning(
                "STORE_DATABASE_URL is not set; data endpoints will answer 503 until configured"
            )
            return
        self.supervisor.start(self.config.database_url)

    async def on_shutdown(self):
        await self.supervisor.shutdown()

    def _request_server_exit(self):
        if self._server is not None:
            self._server.should_exit = True

    async def _check_dependencies(self) -> Dict[str, Any]:
        """Report store connection state."""
        return {"database": self.supervisor.describe()}

    def _setup_store_routes(self):
        """Set up store-specific routes."""

        async def current_user(request: Request) -> Identity:
            return require_user(self.access_gate, request)

        async def current_admin(request: Request) -> Identity:
            return require_admin(self.access_gate, request)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "store",
                "message": "Storefront API is running",
                "version": "1.0.0"
            }

        @self.app.get("/ready")
        async def readiness():
            """Readiness endpoint; 503 until the store is connected."""
            snapshot = self.supervisor.describe()
            status_code = 200 if snapshot["ready"] else 503
            return JSONResponse(status_code=status_code, content=snapshot)

        # Catalog

        @self.app.get("/catalog")
        async def list_catalog(request: Request):
            """List all catalog items; stock is shown to admins only."""
            items = await self.catalog.list_items()
            resolution = self.access_gate.resolve_request(request)
            return redact(items, resolution.is_admin)

        @self.app.get("/catalog/search")
        async def search_catalog(
            request: Request,
            q: Optional[str] = Query(default=None),
            category: Optional[str] = Query(default=None),
            min_price: Optional[str] = Query(default=None, alias="minPrice"),
            max_price: Optional[str] = Query(default=None, alias="maxPrice"),
        ):
            """Search catalog items by name, category and price range."""
            criteria = CatalogFilter(
                q=q or None,
                category=category or None,
                min_price=parse_price(min_price, "minPrice"),
                max_price=parse_price(max_price, "maxPrice")
            )
            items = await self.catalog.list_items(criteria)
            resolution = self.access_gate.resolve_request(request)
            return redact(items, resolution.is_admin)

        @self.app.post("/catalog", status_code=201)
        async def create_item(request: CatalogItemCreateRequest, user: Identity = Depends(current_user)):
            """Create a catalog item owned by the caller."""
            item = await self.catalog.create_item(user, request)
            self.metrics.record_business_event("catalog_item_created")
            return {"message": "Item added successfully", "item": self._item_payload(item)}

        @self.app.put("/catalog/{item_id}")
        async def update_item(item_id: str, request: CatalogItemUpdateRequest,
                              user: Identity = Depends(current_user)):
            """Update a catalog item; owner or admin only."""
            item = await self.catalog.update_item(user, item_id, request)
            return {"message": "Item updated successfully", "item": self._item_payload(item)}

        @self.app.post("/catalog/{item_id}/purchase")
        async def purchase_item(item_id: str, body: Optional[Dict[str, Any]] = Body(default=None),
                                user: Identity = Depends(current_user)):
            """Purchase units of an item; an absent or null quantity means 1."""
            quantity = (body or {}).get("quantity")
            if quantity is None:
                quantity = 1
            item = await self.ledger.purchase(item_id, quantity)
            self.metrics.record_business_event("purchase")
            return {
                "message": "Purchase successful",
                "item": self._item_payload(item),
                "purchased_quantity": coerce_quantity(quantity)
            }

        @self.app.post("/catalog/{item_id}/restock")
        async def restock_item(item_id: str, body: Optional[Dict[str, Any]] = Body(default=None),
                               admin: Identity = Depends(current_admin)):
            """Add stock to an item; admin only."""
            item = await self.ledger.restock(item_id, (body or {}).get("quantity"))
            self.metrics.record_business_event("restock")
            return {"message": "Restocked successfully", "item": self._item_payload(item)}

        @self.app.delete("/catalog/{item_id}")
        async def delete_item(item_id: str, admin: Identity = Depends(current_admin)):
            """Delete a catalog item; admin only."""
            await self.catalog.delete_item(item_id)
            return {"message": "Item deleted successfully"}

        # Cart

        @self.app.get("/cart")
        async def get_cart(user: Identity = Depends(current_user)):
            """Fetch the caller's cart with items resolved."""
            cart = await self.carts.get(user.id)
            return {"cart": await self._cart_payload(cart, user)}

        @self.app.post("/cart")
        async def add_to_cart(payload: Any = Body(default=None), user: Identity = Depends(current_user)):
            """Merge items into the caller's cart."""
            cart, created = await self.carts.add(user.id, normalize(payload))
            return JSONResponse(
                status_code=201 if created else 200,
                content={"cart": await self._cart_payload(cart, user)}
            )

        @self.app.put("/cart")
        async def replace_cart(payload: Any = Body(default=None), user: Identity = Depends(current_user)):
            """Replace the caller's cart items wholesale."""
            cart = await self.carts.replace(user.id, normalize(payload))
            return {"cart": await self._cart_payload(cart, user)}

        @self.app.delete("/cart/{item_id}")
        async def remove_from_cart(item_id: str, user: Identity = Depends(current_user)):
            """Remove a single item from the caller's cart."""
            cart = await self.carts.remove(user.id, item_id)
            return {"cart": await self._cart_payload(cart, user)}

    def _item_payload(self, item: CatalogItem) -> Dict[str, Any]:
        return item.to_public(include_stock=True)

    async def _cart_payload(self, cart: Cart, viewer: Identity) -> Dict[str, Any]:
        resolved: List[Tuple[CartLine, Optional[CatalogItem]]] = await self.carts.resolve(cart)
        return {
            "owner_id": cart.owner_id,
            "items": [
                {
                    "item_id": line.item_id,
                    "quantity": line.quantity,
                    "item": item.to_public(include_stock=viewer.is_admin) if item else None
                }
                for line, item in resolved
            ],
            "updated_at": cart.updated_at.isoformat() if cart.updated_at else None
        }

    def build_server(self) -> SupervisedServer:
        """Create the uvicorn server that the supervisor stops on shutdown."""
        self._server = SupervisedServer(
            uvicorn.Config(
                self.app,
                host=self.config.host,
                port=self.config.port,
                log_level=self.config.log_level.lower()
            ),
            self.supervisor
        )
        return self._server

    def run(self):
        """Run the service until a signal shuts the supervisor down."""
        self.build_server().run()


def create_app(config: Optional[ServiceConfig] = None, store=None):
    """Create FastAPI application."""
    service = StoreService(config=config, store=store)
    return service.app


if __name__ == "__main__":
    service = StoreService()
    service.run()
