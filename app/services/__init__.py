from dataclasses import dataclass
from typing import Optional

from app.config import Settings, get_settings
from app.services.audit_service import ConsistencyAuditor
from app.services.device_service import DeviceIngestion
from app.services.product_service import ProductCatalog
from app.services.reading_service import ReadingLedger
from app.services.shelf_service import ShelfAggregateStore
from app.storage.base import LedgerStorage


@dataclass
class LedgerServices:
    storage: LedgerStorage
    catalog: ProductCatalog
    readings: ReadingLedger
    shelves: ShelfAggregateStore
    auditor: ConsistencyAuditor
    device: DeviceIngestion


def build_services(storage: LedgerStorage, settings: Optional[Settings] = None) -> LedgerServices:
    settings = settings or get_settings()
    catalog = ProductCatalog(storage)
    readings = ReadingLedger(storage, catalog, settings)
    shelves = ShelfAggregateStore(storage, catalog)
    return LedgerServices(
        storage=storage,
        catalog=catalog,
        readings=readings,
        shelves=shelves,
        auditor=ConsistencyAuditor(storage, settings),
        device=DeviceIngestion(readings, shelves, catalog),
    )


__all__ = [
    "ConsistencyAuditor",
    "DeviceIngestion",
    "LedgerServices",
    "ProductCatalog",
    "ReadingLedger",
    "ShelfAggregateStore",
    "build_services",
]
