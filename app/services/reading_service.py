import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from app.config import Settings, get_settings
from app.core.constants import (
    DEFAULT_LATEST_READINGS,
    DEFAULT_STATISTICS_DAYS,
    MAX_STATISTICS_DAYS,
    SINGLE_ACTIONS,
)
from app.core.dates import as_utc, isoformat, utcnow
from app.core.errors import LedgerError, NotFoundError, PersistenceError, ValidationError
from app.core.numbers import is_finite_number, is_stored_int
from app.services.movement_normalizer import Movement
from app.services.product_service import ProductCatalog
from app.storage.base import LedgerStorage
from app.storage.records import ReadingRecord

logger = logging.getLogger(__name__)


class ReadingLedger:
    """Append-only history of weight observations."""

    def __init__(
        self,
        storage: LedgerStorage,
        catalog: ProductCatalog,
        settings: Optional[Settings] = None,
    ):
        self._storage = storage
        self._catalog = catalog
        self._settings = settings or get_settings()

    def _validate(self, movement: Movement) -> None:
        errors = []
        name = movement.product_name
        if not isinstance(name, str) or not name.strip():
            errors.append("productName must be a non-empty string")
        weight = movement.weight
        if not is_finite_number(weight):
            errors.append("weight must be a finite number")
        elif weight < 0:
            errors.append("weight must be >= 0")
        elif weight > self._settings.MAX_READING_WEIGHT:
            errors.append(f"weight must be <= {self._settings.MAX_READING_WEIGHT:g} (scale limit)")
        for field, value in (("deviceTs", movement.device_ts), ("deviceItemId", movement.device_item_id)):
            if value is not None and not is_stored_int(value):
                errors.append(f"{field} must be a 64-bit integer")
        if errors:
            raise ValidationError("Invalid movement.", errors)

    def record(self, movement: Movement) -> ReadingRecord:
        self._validate(movement)
        product_name = movement.product_name.strip()
        self._catalog.get_or_create(product_name, movement.weight)
        reading = self._storage.insert_reading(
            product_name=product_name,
            weight=float(movement.weight),
            timestamp=as_utc(movement.timestamp) or utcnow(),
            action=movement.action.value if movement.action is not None else None,
            device_item_id=movement.device_item_id,
            device_ts=movement.device_ts,
        )
        logger.debug(
            "Recorded reading %s for %s (%.3f).",
            reading.id,
            product_name,
            reading.weight,
            extra={"reading_id": reading.id, "product_name": product_name, "device_item_id": reading.device_item_id},
        )
        return reading

    def record_manual(self, product_name: str, weight: float, action: Optional[str] = None) -> ReadingRecord:
        """Record a reading entered outside the device feed."""
        resolved = None
        if action is not None:
            resolved = SINGLE_ACTIONS.get(str(action).strip().upper())
            if resolved is None:
                raise ValidationError(
                    "Invalid action.",
                    [f"action must be one of: {', '.join(sorted(SINGLE_ACTIONS))}"],
                )
        return self.record(
            Movement(
                product_name=product_name,
                weight=weight,
                action=resolved,
                timestamp=utcnow(),
            )
        )

    def record_batch(self, movements: Iterable[Movement]) -> dict:
        movements = list(movements)
        recorded = []
        errors = []
        for index, movement in enumerate(movements):
            try:
                reading = self.record(movement)
            except PersistenceError:
                raise
            except LedgerError as exc:
                errors.append(
                    {
                        "index": index,
                        "movement": movement.to_dict(),
                        "error": exc.message,
                        "details": exc.details,
                    }
                )
                continue
            recorded.append(reading)

        if errors:
            logger.info("Recorded %d of %d movements.", len(recorded), len(movements))
        return {
            "recorded": recorded,
            "errors": errors,
            "totalMovements": len(movements),
            "successCount": len(recorded),
            "errorCount": len(errors),
        }

    def get(self, reading_id: int) -> ReadingRecord:
        reading = self._storage.get_reading(reading_id) if is_stored_int(reading_id) else None
        if reading is None:
            raise NotFoundError(f"Reading {reading_id} not found.")
        return reading

    def list_readings(
        self,
        *,
        product_name: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[ReadingRecord]:
        errors = []
        if product_name is not None and not product_name.strip():
            errors.append("productName must not be empty")
        if limit is not None and not 1 <= limit <= 1000:
            errors.append("limit must be between 1 and 1000")
        if offset < 0:
            errors.append("offset must be >= 0")
        start, end = as_utc(start), as_utc(end)
        if start is not None and end is not None and start >= end:
            errors.append("start must be before end")
        if errors:
            raise ValidationError("Invalid reading filters.", errors)
        return self._storage.list_readings(
            product_name=product_name,
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )

    def latest_for_product(self, product_name: str, limit: int = DEFAULT_LATEST_READINGS) -> list[ReadingRecord]:
        if not product_name or not product_name.strip():
            raise ValidationError("Product name is required.", ["productName must not be empty"])
        if limit < 1:
            raise ValidationError("Invalid limit.", ["limit must be >= 1"])
        return self._storage.list_readings(
            product_name=product_name.strip(),
            exact_name=True,
            limit=limit,
        )

    def between(self, start: datetime, end: datetime) -> list[ReadingRecord]:
        start, end = as_utc(start), as_utc(end)
        errors = []
        if start is None or end is None:
            errors.append("start and end are required")
        elif start >= end:
            errors.append("start must be before end")
        elif end - start > timedelta(days=self._settings.READINGS_MAX_RANGE_DAYS):
            errors.append(f"range must not exceed {self._settings.READINGS_MAX_RANGE_DAYS} days")
        if errors:
            raise ValidationError("Invalid date range.", errors)
        return self._storage.list_readings(start=start, end=end)

    def statistics(self, product_name: Optional[str] = None, days: int = DEFAULT_STATISTICS_DAYS) -> dict:
        if not 1 <= days <= MAX_STATISTICS_DAYS:
            raise ValidationError("Invalid period.", [f"days must be between 1 and {MAX_STATISTICS_DAYS}"])
        end = utcnow()
        start = end - timedelta(days=days)
        readings = self._storage.list_readings(product_name=product_name, start=start, end=end)
        weights = [reading.weight for reading in readings]
        period = {"startDate": isoformat(start), "endDate": isoformat(end), "days": days}
        if not weights:
            return {
                "totalReadings": 0,
                "averageWeight": 0,
                "minWeight": 0,
                "maxWeight": 0,
                "productName": product_name,
                "period": period,
            }
        return {
            "totalReadings": len(weights),
            "averageWeight": round(sum(weights) / len(weights), 2),
            "minWeight": min(weights),
            "maxWeight": max(weights),
            "productName": product_name,
            "period": period,
        }

    def cleanup(self, keep_count: Optional[int] = None) -> int:
        settings = self._settings
        if keep_count is None:
            keep_count = settings.READINGS_KEEP_DEFAULT
        if not settings.READINGS_KEEP_MIN <= keep_count <= settings.READINGS_KEEP_MAX:
            raise ValidationError(
                "Invalid retention size.",
                [f"keepCount must be between {settings.READINGS_KEEP_MIN} and {settings.READINGS_KEEP_MAX}"],
            )
        removed = self._storage.delete_oldest_readings(keep_count)
        logger.info("Reading cleanup removed %d reading(s), kept %d.", removed, keep_count)
        return removed


__all__ = ["ReadingLedger"]
