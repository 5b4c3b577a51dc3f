import threading
import unittest
from unittest.mock import patch

from app.core.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from app.services import build_services
from app.storage.memory import MemoryStorage


class ShelfAggregateStoreTest(unittest.TestCase):
    def setUp(self):
        self.services = build_services(MemoryStorage())
        self.storage = self.services.storage
        self.shelves = self.services.shelves
        self.beer = self.services.catalog.create("Cerveja", 347.3)
        self.water = self.services.catalog.create("Agua", 0.1)

    def assertSummaryMatchesItems(self, shelf_id):
        shelf = self.shelves.get(shelf_id)
        items = self.storage.list_shelf_items(shelf_id)
        expected = sum(item.quantity * item.unit_weight for item in items)
        self.assertAlmostEqual(shelf.total_weight, expected, delta=1e-9)
        self.assertEqual(len(shelf.items), len(items))
        product_ids = [item.product_id for item in items]
        self.assertEqual(len(product_ids), len(set(product_ids)))
        return shelf

    def test_create_with_initial_items(self):
        shelf = self.shelves.create(
            "A1",
            [
                {"productId": self.beer.id, "quantity": 3},
                {"product_id": self.water.id, "quantity": 7},
                {"productId": self.beer.id, "quantity": 2},
            ],
            location="Aisle 1",
            max_capacity=5000,
        )
        self.assertEqual(shelf.name, "A1")
        self.assertEqual(shelf.location, "Aisle 1")
        self.assertEqual(shelf.max_capacity, 5000.0)
        quantities = {item["productId"]: item["quantity"] for item in shelf.items}
        self.assertEqual(quantities, {self.beer.id: 5, self.water.id: 7})
        self.assertEqual(shelf.total_items, 12)
        self.assertSummaryMatchesItems(shelf.id)

    def test_create_validation(self):
        with self.assertRaises(ValidationError):
            self.shelves.create("A")
        with self.assertRaises(ValidationError):
            self.shelves.create("A1", [{"productId": self.beer.id, "quantity": 0}])
        with self.assertRaises(ValidationError):
            self.shelves.create("A1", max_capacity=-1)
        with self.assertRaises(NotFoundError):
            self.shelves.create("A1", [{"productId": 999, "quantity": 1}])
        self.assertEqual(self.shelves.list_shelves(), [])

    def test_active_name_conflict(self):
        self.shelves.create("Front")
        with self.assertRaises(ConflictError):
            self.shelves.create("front")

    def test_inactive_shelf_releases_name(self):
        first = self.shelves.create("Front")
        self.shelves.update(first.id, {"is_active": False})
        second = self.shelves.create("Front")
        self.assertNotEqual(first.id, second.id)
        with self.assertRaises(ConflictError):
            self.shelves.update(first.id, {"is_active": True})
        self.assertEqual(self.shelves.get_by_name("FRONT").id, second.id)

    def test_add_product_merges(self):
        shelf = self.shelves.create("A1")
        self.shelves.add_product(shelf.id, self.beer.id, 3)
        shelf = self.shelves.add_product(shelf.id, self.beer.id, 2)
        self.assertEqual(len(shelf.items), 1)
        self.assertEqual(shelf.items[0]["quantity"], 5)
        self.assertEqual(shelf.items[0]["productName"], "Cerveja")
        self.assertEqual(self.storage.get_shelf_item(shelf.id, self.beer.id).quantity, 5)
        self.assertSummaryMatchesItems(shelf.id)

    def test_total_weight_is_recomputed_not_accumulated(self):
        shelf = self.shelves.create("A1")
        for _ in range(10):
            self.shelves.add_product(shelf.id, self.water.id, 1)
        shelf = self.assertSummaryMatchesItems(shelf.id)
        item = self.storage.get_shelf_item(shelf.id, self.water.id)
        self.assertEqual(shelf.total_weight, item.quantity * item.unit_weight)

    def test_add_product_validation(self):
        shelf = self.shelves.create("A1")
        for quantity in (0, -1, 1.5, True):
            with self.subTest(quantity=quantity):
                with self.assertRaises(ValidationError):
                    self.shelves.add_product(shelf.id, self.beer.id, quantity)
        with self.assertRaises(NotFoundError):
            self.shelves.add_product(999, self.beer.id, 1)
        with self.assertRaises(NotFoundError):
            self.shelves.add_product(shelf.id, 999, 1)

    def test_set_quantity_to_zero_removes_item(self):
        shelf = self.shelves.create("A1", [{"productId": self.beer.id, "quantity": 4}])
        shelf = self.shelves.set_quantity(shelf.id, self.beer.id, 2)
        self.assertEqual(shelf.items[0]["quantity"], 2)
        shelf = self.shelves.set_quantity(shelf.id, self.beer.id, 0)
        self.assertEqual(shelf.items, [])
        self.assertEqual(shelf.total_weight, 0)
        self.assertIsNone(self.storage.get_shelf_item(shelf.id, self.beer.id))
        with self.assertRaises(NotFoundError):
            self.shelves.set_quantity(shelf.id, self.beer.id, 1)

    def test_remove_product(self):
        shelf = self.shelves.create(
            "A1",
            [{"productId": self.beer.id, "quantity": 1}, {"productId": self.water.id, "quantity": 1}],
        )
        shelf = self.shelves.remove_product(shelf.id, self.beer.id)
        self.assertEqual([item["productId"] for item in shelf.items], [self.water.id])
        self.assertSummaryMatchesItems(shelf.id)
        with self.assertRaises(NotFoundError):
            self.shelves.remove_product(shelf.id, self.beer.id)

    def test_adjust_quantity(self):
        shelf = self.shelves.create("A1")
        self.shelves.adjust_quantity(shelf.id, self.beer.id, 1)
        shelf = self.shelves.adjust_quantity(shelf.id, self.beer.id, -1)
        self.assertEqual(shelf.items, [])
        with self.assertRaises(NotFoundError):
            self.shelves.adjust_quantity(shelf.id, self.beer.id, -1)

    def test_update_replaces_items(self):
        shelf = self.shelves.create("A1", [{"productId": self.beer.id, "quantity": 2}])
        shelf = self.shelves.update(
            shelf.id,
            {"name": "A2", "location": "Back", "items": [{"productId": self.water.id, "quantity": 3}]},
        )
        self.assertEqual(shelf.name, "A2")
        self.assertEqual(shelf.location, "Back")
        self.assertEqual([item["productId"] for item in shelf.items], [self.water.id])
        self.assertSummaryMatchesItems(shelf.id)

    def test_update_rejects_unknown_fields(self):
        shelf = self.shelves.create("A1")
        with self.assertRaises(ValidationError):
            self.shelves.update(shelf.id, {"total_weight": 10})

    def test_failed_update_rolls_back(self):
        shelf = self.shelves.create("A1", [{"productId": self.beer.id, "quantity": 2}])
        with self.assertRaises(NotFoundError):
            self.shelves.update(shelf.id, {"name": "A2", "items": [{"productId": 999, "quantity": 1}]})
        unchanged = self.shelves.get(shelf.id)
        self.assertEqual(unchanged.name, "A1")
        self.assertEqual(unchanged.items[0]["quantity"], 2)

    def test_update_with_null_items_keeps_items(self):
        shelf = self.shelves.create("A1", [{"productId": self.beer.id, "quantity": 3}])
        shelf = self.shelves.update(shelf.id, {"items": None, "location": "Back"})
        self.assertEqual(shelf.location, "Back")
        self.assertEqual(shelf.items[0]["quantity"], 3)
        self.assertEqual(self.storage.get_shelf_item(shelf.id, self.beer.id).quantity, 3)
        self.assertSummaryMatchesItems(shelf.id)

    def test_rename_to_active_name_conflicts(self):
        self.shelves.create("Front")
        back = self.shelves.create("Back")
        with self.assertRaises(ConflictError):
            self.shelves.update(back.id, {"name": "FRONT"})
        self.assertEqual(self.shelves.get(back.id).name, "Back")
        renamed = self.shelves.update(back.id, {"name": "back"})
        self.assertEqual(renamed.name, "back")

    def test_summary_write_failure_rolls_back_item(self):
        shelf = self.shelves.create("A1", [{"productId": self.beer.id, "quantity": 2}])
        with patch.object(self.storage, "write_shelf_summary", side_effect=PersistenceError("disk full")):
            with self.assertRaises(PersistenceError):
                self.shelves.add_product(shelf.id, self.beer.id, 3)
        self.assertEqual(self.storage.get_shelf_item(shelf.id, self.beer.id).quantity, 2)
        shelf = self.assertSummaryMatchesItems(shelf.id)
        self.assertEqual(shelf.items[0]["quantity"], 2)
        self.assertTrue(self.services.auditor.audit(shelf.id).consistent)

    def test_out_of_range_ids_and_quantities(self):
        shelf = self.shelves.create("A1", [{"productId": self.beer.id, "quantity": 1}])
        with self.assertRaises(NotFoundError):
            self.shelves.get(2**64)
        for call in (
            lambda: self.shelves.remove_product(shelf.id, 2**64),
            lambda: self.shelves.set_quantity(shelf.id, 2**64, 1),
            lambda: self.shelves.adjust_quantity(shelf.id, 2**64, -1),
        ):
            with self.assertRaises(NotFoundError):
                call()
        with self.assertRaises(ValidationError):
            self.shelves.add_product(shelf.id, self.beer.id, 2**64)
        with self.assertRaises(ValidationError):
            self.shelves.add_product(shelf.id, self.beer.id, 2**63 - 1)
        self.assertEqual(self.storage.get_shelf_item(shelf.id, self.beer.id).quantity, 1)
        with self.assertRaises(ValidationError):
            self.shelves.create("A2", max_capacity=10**400)

    def test_rollback_keeps_earlier_readings(self):
        kept = self.services.readings.record_manual("Agua", 0.1)
        with self.assertRaises(RuntimeError):
            with self.storage.transaction():
                self.storage.insert_reading(product_name="Agua", weight=0.2, timestamp=kept.timestamp)
                self.storage.delete_oldest_readings(0)
                self.storage.insert_product("Leite", 1.0)
                raise RuntimeError("abort")
        self.assertEqual([r.id for r in self.storage.list_readings()], [kept.id])
        self.assertIsNone(self.storage.find_product_by_name("Leite"))
        later = self.services.readings.record_manual("Agua", 0.3)
        self.assertGreater(later.id, kept.id + 1)

    def test_shelf_locks_are_released(self):
        shelf = self.shelves.create("A1")
        self.shelves.add_product(shelf.id, self.beer.id, 1)
        with self.assertRaises(NotFoundError):
            self.shelves.remove_product(shelf.id, self.water.id)
        self.shelves.delete(shelf.id)
        self.assertEqual(len(self.shelves._shelf_locks), 0)

    def test_delete(self):
        shelf = self.shelves.create("A1", [{"productId": self.beer.id, "quantity": 2}])
        self.shelves.delete(shelf.id)
        with self.assertRaises(NotFoundError):
            self.shelves.get(shelf.id)
        self.assertEqual(self.storage.list_shelf_items(shelf.id), [])

    def test_search_and_statistics(self):
        light = self.shelves.create("Light shelf", [{"productId": self.water.id, "quantity": 10}])
        heavy = self.shelves.create("Heavy shelf", [{"productId": self.beer.id, "quantity": 10}])
        self.assertEqual([s.id for s in self.shelves.search(name="heavy")], [heavy.id])
        self.assertEqual([s.id for s in self.shelves.search(max_weight=100)], [light.id])
        self.assertEqual(len(self.shelves.search(min_weight=0)), 2)
        with self.assertRaises(ValidationError):
            self.shelves.search(min_weight=10, max_weight=1)

        stats = self.shelves.statistics()
        self.assertEqual(stats["totalShelves"], 2)
        self.assertEqual(stats["activeShelves"], 2)
        self.assertEqual(stats["totalItems"], 20)
        self.assertAlmostEqual(stats["totalWeight"], 10 * 0.1 + 10 * 347.3)

    def test_list_by_status(self):
        active = self.shelves.create("A1")
        inactive = self.shelves.create("B1")
        self.shelves.update(inactive.id, {"is_active": False})
        self.assertEqual([s.id for s in self.shelves.list_shelves("active")], [active.id])
        self.assertEqual([s.id for s in self.shelves.list_shelves("inactive")], [inactive.id])
        with self.assertRaises(ValidationError):
            self.shelves.list_shelves("archived")

    def test_concurrent_adds_on_one_shelf(self):
        shelf = self.shelves.create("A1")
        workers = 10
        barrier = threading.Barrier(workers)
        errors = []

        def worker():
            barrier.wait()
            try:
                self.shelves.add_product(shelf.id, self.water.id, 1)
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        shelf = self.assertSummaryMatchesItems(shelf.id)
        self.assertEqual(shelf.items[0]["quantity"], workers)

    def test_concurrent_creates_with_same_name(self):
        workers = 6
        barrier = threading.Barrier(workers)
        conflicts = []

        def worker():
            barrier.wait()
            try:
                self.shelves.create("Front")
            except ConflictError as exc:
                conflicts.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(conflicts), workers - 1)
        self.assertEqual(len(self.shelves.list_shelves()), 1)


if __name__ == "__main__":
    unittest.main()
