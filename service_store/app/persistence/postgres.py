"""
PostgreSQL persistence layer for the Store service.
"""

import uuid
from contextlib import asynccontextmanager
from typing import Dict, Any, Optional, List, Iterable, Set

import asyncpg
from shared.logging import get_logger
from shared.errors import InternalError, ServiceUnavailableError
from ..models import MAX_QUANTITY, CatalogItem, CatalogFilter, Cart, CartLine


UPDATABLE_ITEM_FIELDS = ("name", "description", "category", "price", "image")


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so the text matches literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostgreSQLStore:
    """PostgreSQL persistence layer for catalog items and carts."""

    def __init__(self, min_size: int = 2, max_size: int = 10, command_timeout: float = 30.0):
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("store.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self, dsn: str):
        """Open the connection pool and bootstrap the schema.

        Raises on failure; the caller owns retrying.
        """
        pool = await asyncpg.create_pool(
            dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=self.command_timeout
        )
        try:
            async with pool.acquire() as conn:
                await self._create_tables(conn)
        except Exception:
            await pool.close()
            raise

        self.pool = pool
        self.logger.info("PostgreSQL store connected")

    async def close(self):
        """Close the connection pool."""
        if self.pool:
            pool, self.pool = self.pool, None
            await pool.close()
            self.logger.info("PostgreSQL store closed")

    async def _create_tables(self, conn):
        """Create database tables."""
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS catalog_items (
                id UUID PRIMARY KEY,
                name VARCHAR(255) NOT NULL,
                description TEXT,
                category VARCHAR(255),
                price NUMERIC(12, 2) NOT NULL CHECK (price >= 0),
                image TEXT,
                stock INTEGER NOT NULL DEFAULT 0 CHECK (stock >= 0),
                owner_id VARCHAR(255),
                created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
            );
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_catalog_items_category ON catalog_items(category);
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS carts (
                owner_id VARCHAR(255) PRIMARY KEY,
                updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
            );
        """)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS cart_items (
                owner_id VARCHAR(255) NOT NULL REFERENCES carts(owner_id) ON DELETE CASCADE,
                item_id UUID NOT NULL REFERENCES catalog_items(id) ON DELETE CASCADE,
                quantity INTEGER NOT NULL CHECK (quantity >= 1),
                position INTEGER NOT NULL,
                PRIMARY KEY (owner_id, item_id)
            );
        """)

    @asynccontextmanager
    async def _connection(self):
        """Acquire a pooled connection, mapping driver failures to InternalError."""
        if self.pool is None:
            raise ServiceUnavailableError("Database is not connected")
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            self.logger.error("Database operation failed", error=str(e))
            raise InternalError("Database operation failed") from e

    # Catalog

    async def list_items(self, criteria: Optional[CatalogFilter] = None) -> List[CatalogItem]:
        """List catalog items matching the criteria, oldest first."""
        clauses: List[str] = []
        args: List[Any] = []
        criteria = criteria or CatalogFilter()

        if criteria.q:
            args.append(f"%{escape_like(criteria.q)}%")
            clauses.append(f"name ILIKE ${len(args)} ESCAPE '\\'")
        if criteria.category:
            args.append(criteria.category)
            clauses.append(f"category = ${len(args)}")
        if criteria.min_price is not None:
            args.append(criteria.min_price)
            clauses.append(f"price >= ${len(args)}")
        if criteria.max_price is not None:
            args.append(criteria.max_price)
            clauses.append(f"price <= ${len(args)}")

        query = "SELECT * FROM catalog_items"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at ASC"

        async with self._connection() as conn:
            rows = await conn.fetch(query, *args)
        return [self._row_to_item(row) for row in rows]

    async def get_item(self, item_id: str) -> Optional[CatalogItem]:
        """Load a catalog item."""
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM catalog_items WHERE id = $1", uuid.UUID(item_id))
        return self._row_to_item(row) if row else None

    async def get_items(self, item_ids: Iterable[str]) -> Dict[str, CatalogItem]:
        """Load several catalog items keyed by id; missing ids are absent."""
        ids = [uuid.UUID(item_id) for item_id in item_ids]
        if not ids:
            return {}
        async with self._connection() as conn:
            rows = await conn.fetch("SELECT * FROM catalog_items WHERE id = ANY($1::uuid[])", ids)
        items = [self._row_to_item(row) for row in rows]
        return {item.id: item for item in items}

    async def existing_item_ids(self, item_ids: Iterable[str]) -> Set[str]:
        """Return the subset of ids that exist in the catalog."""
        ids = [uuid.UUID(item_id) for item_id in item_ids]
        if not ids:
            return set()
        async with self._connection() as conn:
            rows = await conn.fetch("SELECT id FROM catalog_items WHERE id = ANY($1::uuid[])", ids)
        return {str(row["id"]) for row in rows}

    async def create_item(self, owner_id: str, fields: Dict[str, Any]) -> CatalogItem:
        """Insert a catalog item owned by ``owner_id``."""
        async with self._connection() as conn:
            row = await conn.fetchrow("""
                INSERT INTO catalog_items (id, name, description, category, price, image, stock, owner_id)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING *
            """,
                uuid.uuid4(), fields["name"], fields.get("description"), fields.get("category"),
                fields["price"], fields.get("image"), fields.get("stock", 0), owner_id
            )
        item = self._row_to_item(row)
        self.logger.info("Catalog item created", item_id=item.id, owner_id=owner_id)
        return item

    async def update_item(self, item_id: str, fields: Dict[str, Any]) -> Optional[CatalogItem]:
        """Apply a partial update; returns None when the item does not exist."""
        changes = {k: v for k, v in fields.items() if k in UPDATABLE_ITEM_FIELDS}
        if not changes:
            return await self.get_item(item_id)

        assignments = [f"{column} = ${index}" for index, column in enumerate(changes, start=2)]
        query = (
            "UPDATE catalog_items SET " + ", ".join(assignments) +
            ", updated_at = NOW() WHERE id = $1 RETURNING *"
        )
        async with self._connection() as conn:
            row = await conn.fetchrow(query, uuid.UUID(item_id), *changes.values())
        return self._row_to_item(row) if row else None

    async def delete_item(self, item_id: str) -> bool:
        """Delete a catalog item."""
        async with self._connection() as conn:
            result = await conn.execute("DELETE FROM catalog_items WHERE id = $1", uuid.UUID(item_id))
        if result == "DELETE 1":
            self.logger.info("Catalog item deleted", item_id=item_id)
            return True
        return False

    # Inventory

    async def decrement_stock_if_available(self, item_id: str, quantity: int) -> Optional[CatalogItem]:
        """Atomically take ``quantity`` units if at least that many are in stock.

        Returns None when the row is missing or holds too little stock.
        """
        async with self._connection() as conn:
            row = await conn.fetchrow("""
                UPDATE catalog_items
                SET stock = stock - $2, updated_at = NOW()
                WHERE id = $1 AND stock >= $2
                RETURNING *
            """, uuid.UUID(item_id), quantity)
        return self._row_to_item(row) if row else None

    async def increment_stock(self, item_id: str, quantity: int) -> Optional[CatalogItem]:
        """Atomically add ``quantity`` units.

        Returns None when the item is missing or the new total would exceed
        the column maximum.
        """
        async with self._connection() as conn:
            row = await conn.fetchrow("""
                UPDATE catalog_items
                SET stock = stock + $2, updated_at = NOW()
                WHERE id = $1 AND stock <= $3 - $2
                RETURNING *
            """, uuid.UUID(item_id), quantity, MAX_QUANTITY)
        return self._row_to_item(row) if row else None

    async def get_stock(self, item_id: str) -> Optional[int]:
        """Read the current stock, or None when the item is missing."""
        async with self._connection() as conn:
            return await conn.fetchval("SELECT stock FROM catalog_items WHERE id = $1", uuid.UUID(item_id))

    # Carts

    async def get_cart(self, owner_id: str) -> Optional[Cart]:
        """Load a user's cart."""
        async with self._connection() as conn:
            cart_row = await conn.fetchrow("SELECT * FROM carts WHERE owner_id = $1", owner_id)
            if not cart_row:
                return None
            rows = await conn.fetch("""
                SELECT item_id, quantity FROM cart_items
                WHERE owner_id = $1
                ORDER BY position ASC
            """, owner_id)

        return Cart(
            owner_id=owner_id,
            items=[CartLine(item_id=str(row["item_id"]), quantity=row["quantity"]) for row in rows],
            updated_at=cart_row["updated_at"]
        )

    async def save_cart(self, cart: Cart) -> Cart:
        """Persist the cart's lines wholesale in one transaction."""
        async with self._connection() as conn:
            async with conn.transaction():
                cart_row = await conn.fetchrow("""
                    INSERT INTO carts (owner_id) VALUES ($1)
                    ON CONFLICT (owner_id) DO UPDATE SET updated_at = NOW()
                    RETURNING updated_at
                """, cart.owner_id)
                await conn.execute("DELETE FROM cart_items WHERE owner_id = $1", cart.owner_id)
                if cart.items:
                    await conn.executemany("""
                        INSERT INTO cart_items (owner_id, item_id, quantity, position)
                        VALUES ($1, $2, $3, $4)
                    """, [
                        (cart.owner_id, uuid.UUID(line.item_id), line.quantity, position)
                        for position, line in enumerate(cart.items)
                    ])

        cart.updated_at = cart_row["updated_at"]
        return cart

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception:
            return False

    def _row_to_item(self, row) -> CatalogItem:
        """Convert database row to CatalogItem."""
        return CatalogItem(
            id=str(row["id"]),
            name=row["name"],
            description=row["description"],
            category=row["category"],
            price=float(row["price"]),
            image=row["image"],
            stock=row["stock"],
            owner_id=row["owner_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"]
        )
