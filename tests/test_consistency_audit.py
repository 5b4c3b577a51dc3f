import unittest

from app.core.dates import utcnow
from app.core.errors import NotFoundError
from app.services import build_services
from app.storage.memory import MemoryStorage


class ConsistencyAuditTest(unittest.TestCase):
    def setUp(self):
        self.services = build_services(MemoryStorage())
        self.storage = self.services.storage
        beer = self.services.catalog.create("Cerveja", 350.0)
        water = self.services.catalog.create("Agua", 500.0)
        self.shelf = self.services.shelves.create(
            "A1",
            [{"productId": beer.id, "quantity": 2}, {"productId": water.id, "quantity": 1}],
        )
        self.beer, self.water = beer, water

    def test_fresh_shelf_is_consistent(self):
        report = self.services.auditor.audit(self.shelf.id)
        self.assertTrue(report.consistent)
        self.assertTrue(report.weight_consistent)
        self.assertTrue(report.item_count_consistent)
        self.assertEqual(report.calculated_total_weight, 1200.0)
        self.assertEqual(report.mismatched_products, [])

    def test_detects_forced_weight_desync(self):
        self.storage.write_shelf_summary(
            self.shelf.id,
            items=self.shelf.items,
            total_weight=999.0,
            updated_at=utcnow(),
        )
        report = self.services.auditor.audit(self.shelf.id).to_dict()
        self.assertFalse(report["consistent"])
        self.assertFalse(report["weightConsistent"])
        self.assertTrue(report["itemCountConsistent"])
        self.assertEqual(report["storedTotalWeight"], 999.0)
        self.assertEqual(report["calculatedTotalWeight"], 1200.0)
        self.assertEqual(report["weightDifference"], -201.0)

    def test_detects_item_desync(self):
        self.storage.write_shelf_summary(
            self.shelf.id,
            items=[item for item in self.shelf.items if item["productId"] == self.beer.id],
            total_weight=1200.0,
            updated_at=utcnow(),
        )
        report = self.services.auditor.audit(self.shelf.id)
        self.assertTrue(report.weight_consistent)
        self.assertFalse(report.item_count_consistent)
        self.assertEqual(report.mismatched_products, [self.water.id])

    def test_resync_repairs_summary(self):
        self.storage.write_shelf_summary(self.shelf.id, items=[], total_weight=0.0, updated_at=utcnow())
        self.assertFalse(self.services.auditor.audit(self.shelf.id).consistent)

        with self.assertLogs("app.services.shelf_service", level="WARNING"):
            repaired = self.services.shelves.resync(self.shelf.id)
        self.assertEqual(repaired.total_weight, 1200.0)
        self.assertTrue(self.services.auditor.audit(self.shelf.id).consistent)

    def test_audit_does_not_modify(self):
        self.storage.write_shelf_summary(self.shelf.id, items=[], total_weight=1.0, updated_at=utcnow())
        self.services.auditor.audit(self.shelf.id)
        self.assertEqual(self.services.shelves.get(self.shelf.id).total_weight, 1.0)

    def test_missing_shelf(self):
        with self.assertRaises(NotFoundError):
            self.services.auditor.audit(404)


if __name__ == "__main__":
    unittest.main()
