from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.dates import as_utc
from app.core.errors import ConflictError, PersistenceError
from app.models.product import Product
from app.models.shelf import Shelf
from app.models.shelf_item import ShelfItem
from app.models.weight_reading import WeightReading
from app.storage.base import LedgerStorage
from app.storage.records import ProductRecord, ReadingRecord, ShelfItemRecord, ShelfRecord

logger = logging.getLogger(__name__)


def _product_record(row: Product) -> ProductRecord:
    return ProductRecord(
        id=row.id,
        name=row.name,
        unit_weight=float(row.unit_weight),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _reading_record(row: WeightReading) -> ReadingRecord:
    return ReadingRecord(
        id=row.id,
        product_name=row.product_name,
        weight=float(row.weight),
        timestamp=as_utc(row.timestamp),
        created_at=as_utc(row.created_at),
        action=row.action,
        device_item_id=row.device_item_id,
        device_ts=row.device_ts,
    )


def _shelf_record(row: Shelf) -> ShelfRecord:
    return ShelfRecord(
        id=row.id,
        name=row.name,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        items=[dict(item) for item in (row.items or [])],
        total_weight=float(row.total_weight or 0),
        max_capacity=row.max_capacity,
        location=row.location,
        is_active=bool(row.is_active),
    )


def _item_record(row: ShelfItem) -> ShelfItemRecord:
    return ShelfItemRecord(
        shelf_id=row.shelf_id,
        product_id=row.product_id,
        quantity=int(row.quantity),
        unit_weight=float(row.unit_weight),
        total_weight=float(row.total_item_weight),
    )


class SqlStorage(LedgerStorage):
    """
    Relational backend.

    A transaction binds one ``Session`` to the calling thread; every storage
    call made by that thread inside the block reuses it, so the normalized item
    write and the embedded summary rewrite commit together.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from app.database.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory
        self._local = threading.local()

    @contextmanager
    def transaction(self):
        current = getattr(self._local, "session", None)
        if current is not None:
            yield self
            return

        session: Session = self._session_factory()
        self._local.session = session
        try:
            yield self
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Storage transaction failed.")
            raise PersistenceError(f"Storage failure: {exc}") from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            self._local.session = None
            session.close()

    @contextmanager
    def _session(self):
        with self.transaction():
            session = self._local.session
            try:
                yield session
            except SQLAlchemyError as exc:
                logger.exception("Storage call failed.")
                raise PersistenceError(f"Storage failure: {exc}") from exc

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------
    def get_product(self, product_id):
        with self._session() as session:
            row = session.get(Product, product_id)
            return _product_record(row) if row else None

    def find_product_by_name(self, name):
        with self._session() as session:
            row = (
                session.execute(select(Product).where(Product.name_key == name.strip().lower()))
                .scalars()
                .first()
            )
            return _product_record(row) if row else None

    def list_products(self):
        with self._session() as session:
            rows = session.execute(select(Product).order_by(Product.id)).scalars().all()
            return [_product_record(row) for row in rows]

    def insert_product(self, name, unit_weight):
        with self._session() as session:
            row = Product(
                name=name,
                name_key=name.strip().lower(),
                unit_weight=float(unit_weight),
            )
            try:
                with session.begin_nested():
                    session.add(row)
                    session.flush()
            except IntegrityError:
                raise ConflictError(f"Product '{name}' already exists.") from None
            return _product_record(row)

    def update_product(self, product_id, *, name=None, unit_weight=None):
        with self._session() as session:
            row = session.get(Product, product_id)
            if row is None:
                return None
            try:
                with session.begin_nested():
                    if name is not None:
                        row.name = name
                        row.name_key = name.strip().lower()
                    if unit_weight is not None:
                        row.unit_weight = float(unit_weight)
                    row.updated_at = datetime.now(timezone.utc)
                    session.flush()
            except IntegrityError:
                raise ConflictError(f"Product '{name}' already exists.") from None
            return _product_record(row)

    def delete_product(self, product_id):
        with self._session() as session:
            result = session.execute(delete(Product).where(Product.id == product_id))
            return result.rowcount > 0

    def count_items_for_product(self, product_id):
        with self._session() as session:
            return session.execute(
                select(func.count(ShelfItem.id)).where(ShelfItem.product_id == product_id)
            ).scalar_one()

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
        with self._session() as session:
            row = WeightReading(
                product_name=product_name,
                weight=float(weight),
                timestamp=timestamp,
                action=action,
                device_item_id=device_item_id,
                device_ts=device_ts,
            )
            session.add(row)
            session.flush()
            return _reading_record(row)

    def get_reading(self, reading_id):
        with self._session() as session:
            row = session.get(WeightReading, reading_id)
            return _reading_record(row) if row else None

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
        stmt = select(WeightReading)
        if product_name:
            needle = product_name.strip().lower()
            if exact_name:
                stmt = stmt.where(func.lower(WeightReading.product_name) == needle)
            else:
                stmt = stmt.where(func.lower(WeightReading.product_name).contains(needle, autoescape=True))
        if start is not None:
            stmt = stmt.where(WeightReading.timestamp >= start)
        if end is not None:
            stmt = stmt.where(WeightReading.timestamp <= end)
        stmt = stmt.order_by(WeightReading.timestamp.desc(), WeightReading.id.desc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session() as session:
            return [_reading_record(row) for row in session.execute(stmt).scalars().all()]

    def delete_oldest_readings(self, keep_count):
        with self._session() as session:
            stale_ids = (
                session.execute(
                    select(WeightReading.id)
                    .order_by(WeightReading.timestamp.desc(), WeightReading.id.desc())
                    .offset(keep_count)
                )
                .scalars()
                .all()
            )
            if not stale_ids:
                return 0
            session.execute(delete(WeightReading).where(WeightReading.id.in_(stale_ids)))
            return len(stale_ids)

    # ------------------------------------------------------------------
    # Shelves
    # ------------------------------------------------------------------
    def insert_shelf(self, *, name, location=None, max_capacity=None, is_active=True):
        with self._session() as session:
            row = Shelf(
                name=name,
                name_key=name.strip().lower(),
                items=[],
                total_weight=0.0,
                location=location,
                max_capacity=max_capacity,
                is_active=is_active,
            )
            session.add(row)
            session.flush()
            return _shelf_record(row)

    def get_shelf(self, shelf_id):
        with self._session() as session:
            row = session.get(Shelf, shelf_id)
            return _shelf_record(row) if row else None

    def find_shelves_by_name(self, name):
        with self._session() as session:
            rows = (
                session.execute(
                    select(Shelf).where(Shelf.name_key == name.strip().lower()).order_by(Shelf.id)
                )
                .scalars()
                .all()
            )
            return [_shelf_record(row) for row in rows]

    def list_shelves(self, *, is_active=None):
        stmt = select(Shelf).order_by(Shelf.id)
        if is_active is not None:
            stmt = stmt.where(Shelf.is_active.is_(is_active))
        with self._session() as session:
            return [_shelf_record(row) for row in session.execute(stmt).scalars().all()]

    def update_shelf(self, shelf_id, **fields):
        with self._session() as session:
            row = session.get(Shelf, shelf_id)
            if row is None:
                return None
            if "name" in fields:
                row.name = fields["name"]
                row.name_key = fields["name"].strip().lower()
            for key in ("location", "max_capacity", "is_active", "updated_at"):
                if key in fields:
                    setattr(row, key, fields[key])
            session.flush()
            return _shelf_record(row)

    def delete_shelf(self, shelf_id):
        with self._session() as session:
            session.execute(delete(ShelfItem).where(ShelfItem.shelf_id == shelf_id))
            result = session.execute(delete(Shelf).where(Shelf.id == shelf_id))
            return result.rowcount > 0

    def write_shelf_summary(self, shelf_id, *, items, total_weight, updated_at):
        with self._session() as session:
            row = session.get(Shelf, shelf_id)
            if row is None:
                raise PersistenceError(f"Shelf {shelf_id} vanished during summary rewrite.")
            # Assign a fresh list so the JSON column is flagged dirty.
            row.items = [dict(item) for item in items]
            row.total_weight = float(total_weight)
            row.updated_at = updated_at
            session.flush()
            return _shelf_record(row)

    # ------------------------------------------------------------------
    # Normalized item store
    # ------------------------------------------------------------------
    @staticmethod
    def _item_row(session, shelf_id, product_id) -> Optional[ShelfItem]:
        return (
            session.execute(
                select(ShelfItem).where(
                    ShelfItem.shelf_id == shelf_id,
                    ShelfItem.product_id == product_id,
                )
            )
            .scalars()
            .first()
        )

    def get_shelf_item(self, shelf_id, product_id):
        with self._session() as session:
            row = self._item_row(session, shelf_id, product_id)
            return _item_record(row) if row else None

    def list_shelf_items(self, shelf_id):
        with self._session() as session:
            rows = (
                session.execute(
                    select(ShelfItem).where(ShelfItem.shelf_id == shelf_id).order_by(ShelfItem.id)
                )
                .scalars()
                .all()
            )
            return [_item_record(row) for row in rows]

    def save_shelf_item(self, item):
        with self._session() as session:
            row = self._item_row(session, item.shelf_id, item.product_id)
            if row is None:
                row = ShelfItem(shelf_id=item.shelf_id, product_id=item.product_id)
                session.add(row)
            row.quantity = int(item.quantity)
            row.unit_weight = float(item.unit_weight)
            row.total_item_weight = float(item.total_weight)
            session.flush()
            return _item_record(row)

    def delete_shelf_item(self, shelf_id, product_id):
        with self._session() as session:
            result = session.execute(
                delete(ShelfItem).where(
                    ShelfItem.shelf_id == shelf_id,
                    ShelfItem.product_id == product_id,
                )
            )
            return result.rowcount > 0

    def delete_shelf_items(self, shelf_id):
        with self._session() as session:
            result = session.execute(delete(ShelfItem).where(ShelfItem.shelf_id == shelf_id))
            return result.rowcount


__all__ = ["SqlStorage"]
