"""
Shelf aggregate store.

Each shelf keeps its contents twice: one row per product in the normalized
item store, and an embedded summary (item list plus total weight) on the
shelf record. Every mutation writes the normalized rows first and then
rebuilds the summary from a fresh read of those rows, inside a single storage
transaction and under the shelf's lock. The total weight is always the sum of
``quantity * unit_weight`` over the rows, never a running total.
"""
import logging
import threading
from contextlib import contextmanager, nullcontext
from typing import Iterable, Optional

from app.core.constants import SHELF_NAME_MIN_LENGTH, SHELF_STATUSES
from app.core.dates import utcnow
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.numbers import MAX_STORED_INT, is_finite_number, is_int, is_stored_int
from app.services.product_service import ProductCatalog
from app.storage.base import LedgerStorage
from app.storage.records import ShelfItemRecord, ShelfRecord

logger = logging.getLogger(__name__)

_PATCH_FIELDS = ("name", "is_active", "location", "max_capacity", "items")


class _KeyedLocks:
    """Per-key locks; an entry lives only while some caller holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[int, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: int):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


def _clean_shelf_name(name) -> str:
    if not isinstance(name, str) or len(name.strip()) < SHELF_NAME_MIN_LENGTH:
        raise ValidationError(
            "Invalid shelf name.",
            [f"name must have at least {SHELF_NAME_MIN_LENGTH} characters"],
        )
    return name.strip()


def _clean_max_capacity(value) -> Optional[float]:
    if value is None:
        return None
    if not is_finite_number(value) or value < 0:
        raise ValidationError("Invalid max capacity.", ["maxCapacity must be a finite number >= 0"])
    return float(value)


def _clean_location(value) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Invalid location.", ["location must be a string"])
    return value.strip() or None


def _positive_quantity(quantity, field: str = "quantity") -> int:
    if not is_stored_int(quantity) or quantity <= 0:
        raise ValidationError("Invalid quantity.", [f"{field} must be a 64-bit integer > 0"])
    return quantity


def _checked_total(quantity: int) -> int:
    if quantity > MAX_STORED_INT:
        raise ValidationError("Invalid quantity.", [f"quantity must not exceed {MAX_STORED_INT}"])
    return quantity


def _merge_entries(entries: Optional[Iterable]) -> dict[int, int]:
    """Validate ``[{product_id, quantity}]`` and merge duplicate products."""
    merged: dict[int, int] = {}
    if entries is None:
        return merged
    errors = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            errors.append(f"items[{index}] must be an object")
            continue
        product_id = entry.get("product_id", entry.get("productId"))
        quantity = entry.get("quantity")
        if not is_stored_int(product_id):
            errors.append(f"items[{index}].productId must be an integer")
        if not is_stored_int(quantity) or quantity <= 0:
            errors.append(f"items[{index}].quantity must be a 64-bit integer > 0")
        if not errors:
            merged[product_id] = merged.get(product_id, 0) + quantity
    if errors:
        raise ValidationError("Invalid shelf items.", errors)
    for quantity in merged.values():
        _checked_total(quantity)
    return merged


class ShelfAggregateStore:
    def __init__(self, storage: LedgerStorage, catalog: ProductCatalog):
        self._storage = storage
        self._catalog = catalog
        self._shelf_locks = _KeyedLocks()
        # Serializes operations that can claim a shelf name.
        self._names_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get(self, shelf_id: int) -> ShelfRecord:
        shelf = self._storage.get_shelf(shelf_id) if is_stored_int(shelf_id) else None
        if shelf is None:
            raise NotFoundError(f"Shelf {shelf_id} not found.")
        return shelf

    def get_by_name(self, name: str) -> ShelfRecord:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Shelf name is required.", ["name must not be empty"])
        shelves = self._storage.find_shelves_by_name(name)
        if not shelves:
            raise NotFoundError(f"Shelf '{name.strip()}' not found.")
        active = [shelf for shelf in shelves if shelf.is_active]
        return (active or shelves)[0]

    def list_shelves(self, status: Optional[str] = None) -> list[ShelfRecord]:
        if status is not None and status not in SHELF_STATUSES:
            raise ValidationError("Invalid status filter.", ["status must be 'active' or 'inactive'"])
        is_active = None if status is None else status == "active"
        return self._storage.list_shelves(is_active=is_active)

    def search(
        self,
        *,
        name: Optional[str] = None,
        min_weight: Optional[float] = None,
        max_weight: Optional[float] = None,
    ) -> list[ShelfRecord]:
        if min_weight is not None and max_weight is not None and min_weight > max_weight:
            raise ValidationError("Invalid weight range.", ["minWeight must be <= maxWeight"])
        shelves = self._storage.list_shelves()
        if name:
            needle = name.strip().lower()
            shelves = [shelf for shelf in shelves if needle in shelf.name.lower()]
        if min_weight is not None:
            shelves = [shelf for shelf in shelves if shelf.total_weight >= min_weight]
        if max_weight is not None:
            shelves = [shelf for shelf in shelves if shelf.total_weight <= max_weight]
        return shelves

    def shelf_products(self, shelf_id: int) -> dict:
        shelf = self.get(shelf_id)
        return {
            "shelfId": shelf.id,
            "shelfName": shelf.name,
            "products": shelf.items,
            "totalItems": shelf.total_items,
            "totalWeight": shelf.total_weight,
        }

    def statistics(self) -> dict:
        shelves = self._storage.list_shelves()
        total_weight = sum(shelf.total_weight for shelf in shelves)
        return {
            "totalShelves": len(shelves),
            "activeShelves": sum(1 for shelf in shelves if shelf.is_active),
            "totalWeight": total_weight,
            "averageWeight": total_weight / len(shelves) if shelves else 0,
            "totalProducts": sum(len(shelf.items) for shelf in shelves),
            "totalItems": sum(shelf.total_items for shelf in shelves),
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create(
        self,
        name: str,
        initial_items: Optional[Iterable] = None,
        *,
        location: Optional[str] = None,
        max_capacity: Optional[float] = None,
    ) -> ShelfRecord:
        name = _clean_shelf_name(name)
        location = _clean_location(location)
        max_capacity = _clean_max_capacity(max_capacity)
        entries = _merge_entries(initial_items)

        with self._names_lock:
            self._ensure_name_available(name)
            with self._storage.transaction():
                products = {product_id: self._catalog.get(product_id) for product_id in entries}
                shelf = self._storage.insert_shelf(
                    name=name,
                    location=location,
                    max_capacity=max_capacity,
                )
                for product_id, quantity in entries.items():
                    unit_weight = products[product_id].unit_weight
                    self._storage.save_shelf_item(
                        ShelfItemRecord(
                            shelf_id=shelf.id,
                            product_id=product_id,
                            quantity=quantity,
                            unit_weight=unit_weight,
                            total_weight=quantity * unit_weight,
                        )
                    )
                shelf = self._sync_summary(shelf.id)

        logger.info(
            "Created shelf %s (%s) with %d item(s).",
            shelf.id,
            shelf.name,
            len(shelf.items),
            extra={"shelf_id": shelf.id},
        )
        return shelf

    def add_product(self, shelf_id: int, product_id: int, quantity: int) -> ShelfRecord:
        quantity = _positive_quantity(quantity)
        with self._shelf_locks.hold(shelf_id), self._storage.transaction():
            self.get(shelf_id)
            product = self._catalog.get(product_id)
            item = self._storage.get_shelf_item(shelf_id, product_id)
            if item is not None:
                item.quantity = _checked_total(item.quantity + quantity)
                item.total_weight = item.quantity * item.unit_weight
            else:
                item = ShelfItemRecord(
                    shelf_id=shelf_id,
                    product_id=product_id,
                    quantity=quantity,
                    unit_weight=product.unit_weight,
                    total_weight=quantity * product.unit_weight,
                )
            self._storage.save_shelf_item(item)
            return self._sync_summary(shelf_id)

    def remove_product(self, shelf_id: int, product_id: int) -> ShelfRecord:
        with self._shelf_locks.hold(shelf_id), self._storage.transaction():
            item = self._get_item(shelf_id, product_id)
            self._storage.delete_shelf_item(item.shelf_id, item.product_id)
            return self._sync_summary(shelf_id)

    def set_quantity(self, shelf_id: int, product_id: int, quantity: int) -> ShelfRecord:
        if not is_stored_int(quantity):
            raise ValidationError("Invalid quantity.", ["quantity must be an integer"])
        with self._shelf_locks.hold(shelf_id), self._storage.transaction():
            self._write_quantity(self._get_item(shelf_id, product_id), quantity)
            return self._sync_summary(shelf_id)

    def adjust_quantity(self, shelf_id: int, product_id: int, delta: int) -> ShelfRecord:
        """Apply a signed quantity change; positive deltas add, the rest decrement."""
        if not is_int(delta) or delta == 0:
            raise ValidationError("Invalid quantity change.", ["delta must be a non-zero integer"])
        if delta > 0:
            return self.add_product(shelf_id, product_id, delta)
        with self._shelf_locks.hold(shelf_id), self._storage.transaction():
            item = self._get_item(shelf_id, product_id)
            self._write_quantity(item, item.quantity + delta)
            return self._sync_summary(shelf_id)

    def update(self, shelf_id: int, patch: dict) -> ShelfRecord:
        unknown = sorted(set(patch) - set(_PATCH_FIELDS))
        if unknown:
            raise ValidationError("Unknown shelf fields.", [f"unsupported field: {key}" for key in unknown])

        fields = {}
        if "name" in patch:
            fields["name"] = _clean_shelf_name(patch["name"])
        if "location" in patch:
            fields["location"] = _clean_location(patch["location"])
        if "max_capacity" in patch:
            fields["max_capacity"] = _clean_max_capacity(patch["max_capacity"])
        if "is_active" in patch:
            if not isinstance(patch["is_active"], bool):
                raise ValidationError("Invalid status.", ["isActive must be a boolean"])
            fields["is_active"] = patch["is_active"]
        # A null item list means "leave the items alone", never "empty the shelf".
        entries = _merge_entries(patch["items"]) if patch.get("items") is not None else None

        claims_name = "name" in fields or fields.get("is_active") is True
        names_scope = self._names_lock if claims_name else nullcontext()
        with names_scope, self._shelf_locks.hold(shelf_id), self._storage.transaction():
            shelf = self.get(shelf_id)
            target_active = fields.get("is_active", shelf.is_active)
            renamed = "name" in fields and fields["name"].lower() != shelf.name.lower()
            reactivated = target_active and not shelf.is_active
            if target_active and (renamed or reactivated):
                self._ensure_name_available(fields.get("name", shelf.name), exclude_id=shelf_id)

            fields["updated_at"] = utcnow()
            self._storage.update_shelf(shelf_id, **fields)

            if entries is not None:
                products = {product_id: self._catalog.get(product_id) for product_id in entries}
                self._storage.delete_shelf_items(shelf_id)
                for product_id, quantity in entries.items():
                    unit_weight = products[product_id].unit_weight
                    self._storage.save_shelf_item(
                        ShelfItemRecord(
                            shelf_id=shelf_id,
                            product_id=product_id,
                            quantity=quantity,
                            unit_weight=unit_weight,
                            total_weight=quantity * unit_weight,
                        )
                    )
            return self._sync_summary(shelf_id)

    def delete(self, shelf_id: int) -> None:
        with self._shelf_locks.hold(shelf_id), self._storage.transaction():
            self.get(shelf_id)
            self._storage.delete_shelf(shelf_id)
        logger.info("Deleted shelf %s.", shelf_id, extra={"shelf_id": shelf_id})

    def resync(self, shelf_id: int) -> ShelfRecord:
        """Rebuild the embedded summary from the normalized item store."""
        with self._shelf_locks.hold(shelf_id), self._storage.transaction():
            before = self.get(shelf_id)
            shelf = self._sync_summary(shelf_id)
        if abs(before.total_weight - shelf.total_weight) > 1e-9 or len(before.items) != len(shelf.items):
            logger.warning(
                "Shelf %s summary repaired: total %.3f -> %.3f, items %d -> %d.",
                shelf_id,
                before.total_weight,
                shelf.total_weight,
                len(before.items),
                len(shelf.items),
                extra={"shelf_id": shelf_id},
            )
        return shelf

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _ensure_name_available(self, name: str, exclude_id: Optional[int] = None) -> None:
        for shelf in self._storage.find_shelves_by_name(name):
            if shelf.is_active and shelf.id != exclude_id:
                raise ConflictError(f"An active shelf named '{shelf.name}' already exists.")

    def _get_item(self, shelf_id: int, product_id: int) -> ShelfItemRecord:
        self.get(shelf_id)
        item = self._storage.get_shelf_item(shelf_id, product_id) if is_stored_int(product_id) else None
        if item is None:
            raise NotFoundError(f"Product {product_id} is not on shelf {shelf_id}.")
        return item

    def _write_quantity(self, item: ShelfItemRecord, quantity: int) -> None:
        if quantity <= 0:
            self._storage.delete_shelf_item(item.shelf_id, item.product_id)
            return
        item.quantity = quantity
        item.total_weight = quantity * item.unit_weight
        self._storage.save_shelf_item(item)

    def _sync_summary(self, shelf_id: int) -> ShelfRecord:
        items = self._storage.list_shelf_items(shelf_id)
        summary = []
        for item in items:
            product = self._storage.get_product(item.product_id)
            entry = item.to_dict()
            entry["productName"] = product.name if product else None
            summary.append(entry)
        total_weight = sum(item.quantity * item.unit_weight for item in items)
        shelf = self._storage.write_shelf_summary(
            shelf_id,
            items=summary,
            total_weight=total_weight,
            updated_at=utcnow(),
        )
        if shelf.max_capacity is not None and shelf.total_weight > shelf.max_capacity:
            logger.warning(
                "Shelf %s holds %.3f, above its capacity of %.3f.",
                shelf.id,
                shelf.total_weight,
                shelf.max_capacity,
                extra={"shelf_id": shelf.id},
            )
        return shelf


__all__ = ["ShelfAggregateStore"]
