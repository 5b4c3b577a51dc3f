"""
Storage port for the ledger.

Every component receives one ``LedgerStorage`` at construction time. The
in-memory and SQL backends implement the same contract; the services never
check which one they were given.

Calls made inside ``transaction()`` share one unit of work: they either all
commit or all roll back. Calls made outside a transaction commit on their own.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Optional

from app.storage.records import ProductRecord, ReadingRecord, ShelfItemRecord, ShelfRecord


class LedgerStorage(ABC):
    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Open (or join) a unit of work."""

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------
    @abstractmethod
    def get_product(self, product_id: int) -> Optional[ProductRecord]: ...

    @abstractmethod
    def find_product_by_name(self, name: str) -> Optional[ProductRecord]:
        """Case-insensitive exact match."""

    @abstractmethod
    def list_products(self) -> list[ProductRecord]: ...

    @abstractmethod
    def insert_product(self, name: str, unit_weight: float) -> ProductRecord:
        """Raise ``ConflictError`` when the name is already taken."""

    @abstractmethod
    def update_product(
        self,
        product_id: int,
        *,
        name: Optional[str] = None,
        unit_weight: Optional[float] = None,
    ) -> Optional[ProductRecord]: ...

    @abstractmethod
    def delete_product(self, product_id: int) -> bool: ...

    @abstractmethod
    def count_items_for_product(self, product_id: int) -> int: ...

    # ------------------------------------------------------------------
    # Weight readings
    # ------------------------------------------------------------------
    @abstractmethod
    def insert_reading(
        self,
        *,
        product_name: str,
        weight: float,
        timestamp: datetime,
        action: Optional[str] = None,
        device_item_id: Optional[int] = None,
        device_ts: Optional[int] = None,
    ) -> ReadingRecord: ...

    @abstractmethod
    def get_reading(self, reading_id: int) -> Optional[ReadingRecord]: ...

    @abstractmethod
    def list_readings(
        self,
        *,
        product_name: Optional[str] = None,
        exact_name: bool = False,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[ReadingRecord]:
        """Newest first. ``product_name`` is a case-insensitive substring unless ``exact_name``."""

    @abstractmethod
    def delete_oldest_readings(self, keep_count: int) -> int:
        """Keep the ``keep_count`` most recent readings, return how many were removed."""

    # ------------------------------------------------------------------
    # Shelves (embedded summary lives on the shelf record)
    # ------------------------------------------------------------------
    @abstractmethod
    def insert_shelf(
        self,
        *,
        name: str,
        location: Optional[str] = None,
        max_capacity: Optional[float] = None,
        is_active: bool = True,
    ) -> ShelfRecord: ...

    @abstractmethod
    def get_shelf(self, shelf_id: int) -> Optional[ShelfRecord]: ...

    @abstractmethod
    def find_shelves_by_name(self, name: str) -> list[ShelfRecord]:
        """Case-insensitive exact match, active and inactive shelves alike."""

    @abstractmethod
    def list_shelves(self, *, is_active: Optional[bool] = None) -> list[ShelfRecord]: ...

    @abstractmethod
    def update_shelf(self, shelf_id: int, **fields) -> Optional[ShelfRecord]:
        """Accepts ``name``, ``location``, ``max_capacity``, ``is_active``, ``updated_at``."""

    @abstractmethod
    def delete_shelf(self, shelf_id: int) -> bool: ...

    @abstractmethod
    def write_shelf_summary(
        self,
        shelf_id: int,
        *,
        items: list[dict],
        total_weight: float,
        updated_at: datetime,
    ) -> ShelfRecord: ...

    # ------------------------------------------------------------------
    # Normalized item store
    # ------------------------------------------------------------------
    @abstractmethod
    def get_shelf_item(self, shelf_id: int, product_id: int) -> Optional[ShelfItemRecord]: ...

    @abstractmethod
    def list_shelf_items(self, shelf_id: int) -> list[ShelfItemRecord]:
        """Items in insertion order."""

    @abstractmethod
    def save_shelf_item(self, item: ShelfItemRecord) -> ShelfItemRecord:
        """Insert or overwrite the row for ``(shelf_id, product_id)``."""

    @abstractmethod
    def delete_shelf_item(self, shelf_id: int, product_id: int) -> bool: ...

    @abstractmethod
    def delete_shelf_items(self, shelf_id: int) -> int: ...


__all__ = ["LedgerStorage"]
