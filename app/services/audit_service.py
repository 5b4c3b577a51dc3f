from dataclasses import dataclass, field
from typing import Optional

from app.config import Settings, get_settings
from app.core.errors import NotFoundError
from app.core.numbers import is_stored_int
from app.storage.base import LedgerStorage


@dataclass
class AuditReport:
    shelf_id: int
    shelf_name: str
    weight_consistent: bool
    item_count_consistent: bool
    stored_total_weight: float
    calculated_total_weight: float
    embedded_items: list = field(default_factory=list)
    normalized_items: list = field(default_factory=list)
    mismatched_products: list = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return self.weight_consistent and self.item_count_consistent and not self.mismatched_products

    def to_dict(self) -> dict:
        return {
            "shelfId": self.shelf_id,
            "shelfName": self.shelf_name,
            "consistent": self.consistent,
            "weightConsistent": self.weight_consistent,
            "itemCountConsistent": self.item_count_consistent,
            "storedTotalWeight": self.stored_total_weight,
            "calculatedTotalWeight": self.calculated_total_weight,
            "weightDifference": self.stored_total_weight - self.calculated_total_weight,
            "embeddedItemCount": len(self.embedded_items),
            "normalizedItemCount": len(self.normalized_items),
            "embeddedItems": self.embedded_items,
            "normalizedItems": self.normalized_items,
            "mismatchedProducts": self.mismatched_products,
        }


class ConsistencyAuditor:
    """Read-only comparison of a shelf's embedded summary against its item rows."""

    def __init__(self, storage: LedgerStorage, settings: Optional[Settings] = None):
        self._storage = storage
        self._tolerance = (settings or get_settings()).AUDIT_WEIGHT_TOLERANCE

    def audit(self, shelf_id: int) -> AuditReport:
        shelf = self._storage.get_shelf(shelf_id) if is_stored_int(shelf_id) else None
        if shelf is None:
            raise NotFoundError(f"Shelf {shelf_id} not found.")
        normalized = self._storage.list_shelf_items(shelf_id)

        calculated = sum(item.quantity * item.unit_weight for item in normalized)
        embedded_quantities = {item.get("productId"): item.get("quantity") for item in shelf.items}
        normalized_quantities = {item.product_id: item.quantity for item in normalized}
        mismatched = sorted(
            product_id
            for product_id in set(embedded_quantities) | set(normalized_quantities)
            if embedded_quantities.get(product_id) != normalized_quantities.get(product_id)
        )

        return AuditReport(
            shelf_id=shelf.id,
            shelf_name=shelf.name,
            weight_consistent=abs(calculated - shelf.total_weight) <= self._tolerance,
            item_count_consistent=len(shelf.items) == len(normalized),
            stored_total_weight=shelf.total_weight,
            calculated_total_weight=calculated,
            embedded_items=shelf.items,
            normalized_items=[item.to_dict() for item in normalized],
            mismatched_products=mismatched,
        )


__all__ = ["AuditReport", "ConsistencyAuditor"]
