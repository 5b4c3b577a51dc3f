from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from app.core.dates import isoformat


@dataclass
class ProductRecord:
    id: int
    name: str
    unit_weight: float
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "unitWeight": self.unit_weight,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


@dataclass
class ReadingRecord:
    id: int
    product_name: str
    weight: float
    timestamp: datetime
    created_at: datetime
    action: Optional[str] = None
    device_item_id: Optional[int] = None
    device_ts: Optional[int] = None

    def to_dict(self) -> dict:
        payload = {
            "id": self.id,
            "productName": self.product_name,
            "weight": self.weight,
            "timestamp": isoformat(self.timestamp),
            "createdAt": isoformat(self.created_at),
        }
        if self.action is not None:
            payload["action"] = self.action
        if self.device_item_id is not None:
            payload["deviceItemId"] = self.device_item_id
        if self.device_ts is not None:
            payload["deviceTs"] = self.device_ts
        return payload


@dataclass
class ShelfItemRecord:
    """One row of the normalized item store."""

    shelf_id: int
    product_id: int
    quantity: int
    unit_weight: float
    total_weight: float

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "quantity": self.quantity,
            "unitWeight": self.unit_weight,
            "totalWeight": self.total_weight,
        }


@dataclass
class ShelfRecord:
    id: int
    name: str
    created_at: datetime
    updated_at: datetime
    items: list[dict] = field(default_factory=list)
    total_weight: float = 0.0
    max_capacity: Optional[float] = None
    location: Optional[str] = None
    is_active: bool = True

    @property
    def total_items(self) -> int:
        return sum(int(item.get("quantity", 0)) for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "items": [dict(item) for item in self.items],
            "totalWeight": self.total_weight,
            "totalItems": self.total_items,
            "maxCapacity": self.max_capacity,
            "location": self.location,
            "isActive": self.is_active,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def to_basic_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "totalWeight": self.total_weight,
            "productCount": len(self.items),
            "isActive": self.is_active,
            "updatedAt": isoformat(self.updated_at),
        }


__all__ = ["ProductRecord", "ReadingRecord", "ShelfItemRecord", "ShelfRecord"]
