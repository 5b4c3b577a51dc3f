import threading
import unittest

from app.core.constants import DEFAULT_PRODUCTS
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.services.product_service import ProductCatalog
from app.services.shelf_service import ShelfAggregateStore
from app.storage.memory import MemoryStorage


class ProductCatalogTest(unittest.TestCase):
    def setUp(self):
        self.storage = MemoryStorage()
        self.catalog = ProductCatalog(self.storage)

    def test_create_and_lookup(self):
        product = self.catalog.create("  Cerveja ", 350)
        self.assertEqual(product.name, "Cerveja")
        self.assertEqual(product.unit_weight, 350.0)
        self.assertEqual(self.catalog.get(product.id).name, "Cerveja")
        self.assertEqual(self.catalog.get_by_name("cerveja").id, product.id)
        self.assertEqual(len(self.catalog.list_products()), 1)

    def test_name_is_unique_case_insensitive(self):
        self.catalog.create("Cerveja", 350)
        with self.assertRaises(ConflictError):
            self.catalog.create("CERVEJA", 100)

    def test_invalid_input(self):
        cases = [("", 10), ("x" * 101, 10), ("ok", -1), ("ok", "10"), ("ok", float("inf")), ("ok", True)]
        for name, unit_weight in cases:
            with self.subTest(name=name, unit_weight=unit_weight):
                with self.assertRaises(ValidationError):
                    self.catalog.create(name, unit_weight)

    def test_get_missing(self):
        with self.assertRaises(NotFoundError):
            self.catalog.get(99)
        with self.assertRaises(NotFoundError):
            self.catalog.get_by_name("ghost")

    def test_get_or_create(self):
        product, created = self.catalog.get_or_create("cerveja", 335.1)
        self.assertTrue(created)
        again, created_again = self.catalog.get_or_create("Cerveja", 999)
        self.assertFalse(created_again)
        self.assertEqual(again.id, product.id)
        self.assertEqual(again.unit_weight, 335.1)

    def test_concurrent_get_or_create_yields_one_product(self):
        barrier = threading.Barrier(8)
        results = []
        errors = []

        def worker():
            barrier.wait()
            try:
                results.append(self.catalog.get_or_create("cerveja", 335.1)[0].id)
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(len(set(results)), 1)
        self.assertEqual(len(self.catalog.list_products()), 1)

    def test_update(self):
        product = self.catalog.create("Cerveja", 350)
        updated = self.catalog.update(product.id, unit_weight=355.5)
        self.assertEqual(updated.unit_weight, 355.5)
        self.assertEqual(updated.name, "Cerveja")
        with self.assertRaises(ValidationError):
            self.catalog.update(product.id)
        with self.assertRaises(NotFoundError):
            self.catalog.update(42, name="Other")

    def test_rename_conflict(self):
        self.catalog.create("Cerveja", 350)
        water = self.catalog.create("Agua", 500)
        with self.assertRaises(ConflictError):
            self.catalog.update(water.id, name="cerveja")

    def test_delete_refused_while_stocked(self):
        product = self.catalog.create("Cerveja", 350)
        shelves = ShelfAggregateStore(self.storage, self.catalog)
        shelf = shelves.create("A1", [{"productId": product.id, "quantity": 1}])
        with self.assertRaises(ConflictError):
            self.catalog.delete(product.id)
        shelves.remove_product(shelf.id, product.id)
        self.catalog.delete(product.id)
        with self.assertRaises(NotFoundError):
            self.catalog.get(product.id)

    def test_seed_defaults_is_idempotent(self):
        self.assertEqual(self.catalog.seed_defaults(), len(DEFAULT_PRODUCTS))
        self.assertEqual(self.catalog.seed_defaults(), 0)
        names = {product.name for product in self.catalog.list_products()}
        self.assertEqual(names, {name for name, _ in DEFAULT_PRODUCTS})


if __name__ == "__main__":
    unittest.main()
