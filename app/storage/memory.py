from __future__ import annotations

import copy
import itertools
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace

from app.core.dates import utcnow
from app.core.errors import ConflictError
from app.storage.base import LedgerStorage
from app.storage.records import ProductRecord, ReadingRecord, ShelfItemRecord, ShelfRecord

logger = logging.getLogger(__name__)


class MemoryStorage(LedgerStorage):
    """Process-local backend; a transaction holds the lock and restores a snapshot on error."""

    def __init__(self):
        self._lock = threading.RLock()
        self._local = threading.local()
        self._products: dict[int, ProductRecord] = {}
        self._readings: dict[int, ReadingRecord] = {}
        self._shelves: dict[int, ShelfRecord] = {}
        # shelf_id -> {product_id: item}; dicts keep insertion order.
        self._items: dict[int, dict[int, ShelfItemRecord]] = {}
        self._product_ids = itertools.count(1)
        self._reading_ids = itertools.count(1)
        self._last_reading_id = 0
        self._shelf_ids = itertools.count(1)

    @contextmanager
    def transaction(self):
        with self._lock:
            depth = getattr(self._local, "depth", 0)
            if depth:
                self._local.depth = depth + 1
                try:
                    yield self
                finally:
                    self._local.depth = depth
                return

            snapshot = self._snapshot()
            self._local.depth = 1
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                logger.debug("Memory transaction rolled back.")
                raise
            finally:
                self._local.depth = 0
                self._local.dropped_readings = None

    def _snapshot(self):
        # Readings are append-only apart from retention; a high-water mark plus
        # a log of deleted rows is enough to undo them.
        self._local.dropped_readings = []
        state = copy.deepcopy((self._products, self._shelves, self._items))
        return state, self._last_reading_id

    def _restore(self, snapshot) -> None:
        (self._products, self._shelves, self._items), reading_mark = snapshot
        for reading_id in [rid for rid in self._readings if rid > reading_mark]:
            del self._readings[reading_id]
        for reading in self._local.dropped_readings:
            if reading.id <= reading_mark:
                self._readings[reading.id] = reading
        self._local.dropped_readings = []

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------
    def get_product(self, product_id):
        with self._lock:
            product = self._products.get(product_id)
            return replace(product) if product else None

    def find_product_by_name(self, name):
        key = name.strip().lower()
        with self._lock:
            for product in self._products.values():
                if product.name.lower() == key:
                    return replace(product)
        return None

    def list_products(self):
        with self._lock:
            return [replace(product) for product in self._products.values()]

    def insert_product(self, name, unit_weight):
        with self._lock:
            if self.find_product_by_name(name) is not None:
                raise ConflictError(f"Product '{name}' already exists.")
            now = utcnow()
            product = ProductRecord(
                id=next(self._product_ids),
                name=name,
                unit_weight=float(unit_weight),
                created_at=now,
                updated_at=now,
            )
            self._products[product.id] = product
            return replace(product)

    def update_product(self, product_id, *, name=None, unit_weight=None):
        with self._lock:
            product = self._products.get(product_id)
            if product is None:
                return None
            if name is not None:
                other = self.find_product_by_name(name)
                if other is not None and other.id != product_id:
                    raise ConflictError(f"Product '{name}' already exists.")
                product.name = name
            if unit_weight is not None:
                product.unit_weight = float(unit_weight)
            product.updated_at = utcnow()
            return replace(product)

    def delete_product(self, product_id):
        with self._lock:
            return self._products.pop(product_id, None) is not None

    def count_items_for_product(self, product_id):
        with self._lock:
            return sum(1 for items in self._items.values() if product_id in items)

    # ------------------------------------------------------------------
    # Weight readings
    # ------------------------------------------------------------------
    def insert_reading(
        self,
        *,
        product_name,
        weight,
        timestamp,
        action=None,
        device_item_id=None,
        device_ts=None,
    ):
        with self._lock:
            reading = ReadingRecord(
                id=next(self._reading_ids),
                product_name=product_name,
                weight=float(weight),
                timestamp=timestamp,
                created_at=utcnow(),
                action=action,
                device_item_id=device_item_id,
                device_ts=device_ts,
            )
            self._readings[reading.id] = reading
            self._last_reading_id = reading.id
            return replace(reading)

    def get_reading(self, reading_id):
        with self._lock:
            reading = self._readings.get(reading_id)
            return replace(reading) if reading else None

    def _ordered_readings(self) -> list[ReadingRecord]:
        return sorted(
            self._readings.values(),
            key=lambda reading: (reading.timestamp, reading.id),
            reverse=True,
        )

    def list_readings(
        self,
        *,
        product_name=None,
        exact_name=False,
        start=None,
        end=None,
        limit=None,
        offset=0,
    ):
        with self._lock:
            readings = self._ordered_readings()
        if product_name:
            needle = product_name.strip().lower()
            if exact_name:
                readings = [r for r in readings if r.product_name.lower() == needle]
            else:
                readings = [r for r in readings if needle in r.product_name.lower()]
        if start is not None:
            readings = [r for r in readings if r.timestamp >= start]
        if end is not None:
            readings = [r for r in readings if r.timestamp <= end]
        if offset:
            readings = readings[offset:]
        if limit is not None:
            readings = readings[:limit]
        return [replace(reading) for reading in readings]

    def delete_oldest_readings(self, keep_count):
        with self._lock:
            stale = self._ordered_readings()[keep_count:]
            dropped = getattr(self._local, "dropped_readings", None)
            for reading in stale:
                del self._readings[reading.id]
                if dropped is not None:
                    dropped.append(reading)
            return len(stale)

    # ------------------------------------------------------------------
    # Shelves
    # ------------------------------------------------------------------
    @staticmethod
    def _copy_shelf(shelf: ShelfRecord) -> ShelfRecord:
        return replace(shelf, items=[dict(item) for item in shelf.items])

    def insert_shelf(self, *, name, location=None, max_capacity=None, is_active=True):
        with self._lock:
            now = utcnow()
            shelf = ShelfRecord(
                id=next(self._shelf_ids),
                name=name,
                created_at=now,
                updated_at=now,
                location=location,
                max_capacity=max_capacity,
                is_active=is_active,
            )
            self._shelves[shelf.id] = shelf
            self._items[shelf.id] = {}
            return self._copy_shelf(shelf)

    def get_shelf(self, shelf_id):
        with self._lock:
            shelf = self._shelves.get(shelf_id)
            return self._copy_shelf(shelf) if shelf else None

    def find_shelves_by_name(self, name):
        key = name.strip().lower()
        with self._lock:
            return [
                self._copy_shelf(shelf)
                for shelf in self._shelves.values()
                if shelf.name.lower() == key
            ]

    def list_shelves(self, *, is_active=None):
        with self._lock:
            return [
                self._copy_shelf(shelf)
                for shelf in self._shelves.values()
                if is_active is None or shelf.is_active == is_active
            ]

    def update_shelf(self, shelf_id, **fields):
        with self._lock:
            shelf = self._shelves.get(shelf_id)
            if shelf is None:
                return None
            for key in ("name", "location", "max_capacity", "is_active", "updated_at"):
                if key in fields:
                    setattr(shelf, key, fields[key])
            return self._copy_shelf(shelf)

    def delete_shelf(self, shelf_id):
        with self._lock:
            self._items.pop(shelf_id, None)
            return self._shelves.pop(shelf_id, None) is not None

    def write_shelf_summary(self, shelf_id, *, items, total_weight, updated_at):
        with self._lock:
            shelf = self._shelves[shelf_id]
            shelf.items = [dict(item) for item in items]
            shelf.total_weight = float(total_weight)
            shelf.updated_at = updated_at
            return self._copy_shelf(shelf)

    # ------------------------------------------------------------------
    # Normalized item store
    # ------------------------------------------------------------------
    def get_shelf_item(self, shelf_id, product_id):
        with self._lock:
            item = self._items.get(shelf_id, {}).get(product_id)
            return replace(item) if item else None

    def list_shelf_items(self, shelf_id):
        with self._lock:
            return [replace(item) for item in self._items.get(shelf_id, {}).values()]

    def save_shelf_item(self, item):
        with self._lock:
            self._items.setdefault(item.shelf_id, {})[item.product_id] = replace(item)
            return replace(item)

    def delete_shelf_item(self, shelf_id, product_id):
        with self._lock:
            return self._items.get(shelf_id, {}).pop(product_id, None) is not None

    def delete_shelf_items(self, shelf_id):
        with self._lock:
            removed = len(self._items.get(shelf_id, {}))
            self._items[shelf_id] = {}
            return removed


__all__ = ["MemoryStorage"]
