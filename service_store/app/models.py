"""
Data models for the Store service.
"""

import uuid
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


# Upper bound of the INTEGER stock and quantity columns
MAX_QUANTITY = 2 ** 31 - 1


class Role(str, Enum):
    """Caller privilege as seen by the store."""
    ANONYMOUS = "anonymous"
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, produced from verified token claims."""
    id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass
class CatalogItem:
    """Sellable catalog item."""
    id: str
    name: str
    price: float
    stock: int
    category: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_public(self, include_stock: bool) -> Dict[str, Any]:
        """Serialize for a response; ``stock`` is omitted entirely when hidden."""
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price": self.price,
            "image": self.image,
            "owner_id": self.owner_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_stock:
            data["stock"] = self.stock
        return data


@dataclass
class CartLine:
    """One line of a cart."""
    item_id: str
    quantity: int


@dataclass
class Cart:
    """A user's cart; at most one per owner."""
    owner_id: str
    items: List[CartLine] = field(default_factory=list)
    updated_at: Optional[datetime] = None

    def find(self, item_id: str) -> Optional[CartLine]:
        for line in self.items:
            if line.item_id == item_id:
                return line
        return None


@dataclass(frozen=True)
class CartEntry:
    """Normalized cart payload entry; ``item_id`` is None when unresolvable."""
    item_id: Optional[str]
    quantity: int


@dataclass
class CatalogFilter:
    """Search criteria for catalog listing."""
    q: Optional[str] = None
    category: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None


class CatalogItemCreateRequest(BaseModel):
    """Request model for creating a catalog item."""
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    price: float = Field(..., ge=0)
    image: Optional[str] = None
    stock: int = Field(default=0, ge=0, le=MAX_QUANTITY)


class CatalogItemUpdateRequest(BaseModel):
    """Request model for updating a catalog item; unset fields are left alone.

    Stock is not editable here; it only moves through purchase and restock.
    """
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    image: Optional[str] = None


def parse_item_id(value: Any) -> Optional[str]:
    """Return the canonical form of a catalog item key (a UUID), or None."""
    if not isinstance(value, str):
        return None
    try:
        return str(uuid.UUID(value))
    except ValueError:
        return None
