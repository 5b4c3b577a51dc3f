import os
import tempfile
import threading
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy.orm import sessionmaker

from app.core.dates import utcnow
from app.core.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from app.database.engine import build_engine
from app.database.session import init_schema
from app.services import build_services
from app.services.movement_normalizer import Movement, normalize_payload
from app.storage.sql import SqlStorage


class SqlStorageTest(unittest.TestCase):
    def setUp(self):
        self.engine = build_engine("sqlite://")
        init_schema(bind=self.engine)
        session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self.storage = SqlStorage(session_factory)
        self.services = build_services(self.storage)

    def tearDown(self):
        self.engine.dispose()

    def test_product_name_unique(self):
        self.services.catalog.create("Cerveja", 347.0)
        with self.assertRaises(ConflictError):
            self.services.catalog.create("cerveja", 1.0)
        product, created = self.services.catalog.get_or_create("CERVEJA", 2.0)
        self.assertFalse(created)
        self.assertEqual(product.unit_weight, 347.0)

    def test_batch_payload_end_to_end(self):
        payload = {
            "acao": "COLOCADOS",
            "quantidade": 3,
            "produtos": [
                {"nome": "cerveja", "peso": 347.0, "id": 0},
                {"nome": "cerveja", "peso": 347.3, "id": 1},
                {"nome": "2MA", "peso": 90.5, "id": 3},
            ],
            "ts": 188787,
        }
        result = self.services.readings.record_batch(normalize_payload(payload))
        self.assertEqual(result["successCount"], 3)
        self.assertEqual(len(self.services.catalog.list_products()), 2)
        readings = self.services.readings.list_readings()
        self.assertEqual(len(readings), 3)
        self.assertEqual({r.device_item_id for r in readings}, {0, 1, 3})
        self.assertTrue(all(r.timestamp.tzinfo is not None for r in readings))

    def test_reading_time_filters(self):
        base = datetime(2024, 5, 1, tzinfo=timezone.utc)
        for hours in range(3):
            self.storage.insert_reading(
                product_name="agua",
                weight=float(hours),
                timestamp=base + timedelta(hours=hours),
            )
        window = self.services.readings.between(base + timedelta(minutes=30), base + timedelta(hours=3))
        self.assertEqual([r.weight for r in window], [2.0, 1.0])

    def test_shelf_dual_write(self):
        beer = self.services.catalog.create("Cerveja", 347.3)
        water = self.services.catalog.create("Agua", 0.1)
        shelves = self.services.shelves
        shelf = shelves.create("A1", [{"productId": beer.id, "quantity": 3}])
        shelves.add_product(shelf.id, beer.id, 2)
        for _ in range(3):
            shelves.add_product(shelf.id, water.id, 1)

        shelf = shelves.get(shelf.id)
        items = self.storage.list_shelf_items(shelf.id)
        self.assertEqual({item.product_id: item.quantity for item in items}, {beer.id: 5, water.id: 3})
        expected = sum(item.quantity * item.unit_weight for item in items)
        self.assertAlmostEqual(shelf.total_weight, expected, delta=1e-9)
        self.assertEqual(len(shelf.items), 2)

        shelf = shelves.set_quantity(shelf.id, water.id, 0)
        self.assertEqual([item["productId"] for item in shelf.items], [beer.id])
        self.assertTrue(self.services.auditor.audit(shelf.id).consistent)

    def test_failed_update_rolls_back(self):
        beer = self.services.catalog.create("Cerveja", 347.3)
        shelf = self.services.shelves.create("A1", [{"productId": beer.id, "quantity": 2}])
        with self.assertRaises(NotFoundError):
            self.services.shelves.update(
                shelf.id,
                {"name": "A2", "items": [{"productId": 999, "quantity": 1}]},
            )
        unchanged = self.services.shelves.get(shelf.id)
        self.assertEqual(unchanged.name, "A1")
        self.assertEqual(len(self.storage.list_shelf_items(shelf.id)), 1)

    def test_audit_and_resync(self):
        beer = self.services.catalog.create("Cerveja", 350.0)
        shelf = self.services.shelves.create("A1", [{"productId": beer.id, "quantity": 2}])
        self.storage.write_shelf_summary(shelf.id, items=[], total_weight=5.0, updated_at=utcnow())

        report = self.services.auditor.audit(shelf.id)
        self.assertFalse(report.weight_consistent)
        self.assertEqual(report.calculated_total_weight, 700.0)

        self.services.shelves.resync(shelf.id)
        self.assertTrue(self.services.auditor.audit(shelf.id).consistent)

    def test_delete_shelf_removes_items(self):
        beer = self.services.catalog.create("Cerveja", 350.0)
        shelf = self.services.shelves.create("A1", [{"productId": beer.id, "quantity": 2}])
        self.services.shelves.delete(shelf.id)
        self.assertIsNone(self.storage.get_shelf(shelf.id))
        self.assertEqual(self.storage.count_items_for_product(beer.id), 0)
        self.services.catalog.delete(beer.id)

    def test_cleanup(self):
        base = datetime(2024, 5, 1, tzinfo=timezone.utc)
        for index in range(103):
            self.storage.insert_reading(
                product_name="agua",
                weight=float(index),
                timestamp=base + timedelta(seconds=index),
            )
        self.assertEqual(self.services.readings.cleanup(100), 3)
        self.assertEqual(len(self.storage.list_readings()), 100)


    def test_rename_to_active_name_conflicts(self):
        shelves = self.services.shelves
        shelves.create("Front")
        back = shelves.create("Back")
        with self.assertRaises(ConflictError):
            shelves.update(back.id, {"name": "front"})
        self.assertEqual(shelves.get(back.id).name, "Back")

    def test_summary_write_failure_rolls_back_item(self):
        beer = self.services.catalog.create("Cerveja", 347.3)
        shelf = self.services.shelves.create("A1", [{"productId": beer.id, "quantity": 2}])
        with patch.object(self.storage, "write_shelf_summary", side_effect=PersistenceError("disk full")):
            with self.assertRaises(PersistenceError):
                self.services.shelves.add_product(shelf.id, beer.id, 3)
        self.assertEqual(self.storage.get_shelf_item(shelf.id, beer.id).quantity, 2)
        self.assertEqual(self.services.shelves.get(shelf.id).items[0]["quantity"], 2)
        self.assertTrue(self.services.auditor.audit(shelf.id).consistent)

    def test_out_of_range_integers_never_reach_sqlite(self):
        with self.assertRaises(ValidationError):
            normalize_payload({"nome": "cerveja", "peso": 335.1, "acao": "RETIRADO", "ts": 2**64})
        with self.assertRaises(ValidationError):
            self.services.readings.record(
                Movement(product_name="cerveja", weight=1.0, action=None, timestamp=utcnow(), device_ts=2**64)
            )
        with self.assertRaises(NotFoundError):
            self.services.readings.get(2**64)
        with self.assertRaises(NotFoundError):
            self.services.shelves.get(2**64)
        self.assertEqual(self.storage.list_readings(), [])


class SqlFileStorageTest(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        path = os.path.join(self.tmpdir.name, "ledger.db")
        self.engine = build_engine(f"sqlite:///{path}")
        init_schema(bind=self.engine)
        session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self.storage = SqlStorage(session_factory)
        self.services = build_services(self.storage)

    def tearDown(self):
        self.engine.dispose()
        self.tmpdir.cleanup()

    def test_parallel_adds_on_separate_shelves(self):
        water = self.services.catalog.create("Agua", 0.1)
        workers = 8
        rounds = 5
        shelves = [self.services.shelves.create(f"Shelf {index}") for index in range(workers)]
        barrier = threading.Barrier(workers)
        errors = []

        def worker(shelf_id):
            barrier.wait()
            try:
                for _ in range(rounds):
                    self.services.shelves.add_product(shelf_id, water.id, 1)
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(shelf.id,)) for shelf in shelves]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        for shelf in shelves:
            with self.subTest(shelf=shelf.name):
                self.assertEqual(self.storage.get_shelf_item(shelf.id, water.id).quantity, rounds)
                self.assertTrue(self.services.auditor.audit(shelf.id).consistent)



if __name__ == "__main__":
    unittest.main()
