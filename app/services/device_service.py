import logging
from typing import Optional

from app.core.constants import MovementAction
from app.core.errors import LedgerError, PersistenceError, ValidationError
from app.services.movement_normalizer import normalize_payload, payload_kind
from app.services.product_service import ProductCatalog
from app.services.reading_service import ReadingLedger
from app.services.shelf_service import ShelfAggregateStore

logger = logging.getLogger(__name__)

_ENDPOINT = "POST /device/weight-movement"


class DeviceIngestion:
    """Entry point for payloads posted by the scale."""

    def __init__(
        self,
        readings: ReadingLedger,
        shelves: ShelfAggregateStore,
        catalog: ProductCatalog,
    ):
        self._readings = readings
        self._shelves = shelves
        self._catalog = catalog

    def receive(self, payload, shelf_id: Optional[int] = None) -> dict:
        movements = normalize_payload(payload)
        if shelf_id is not None:
            # Fail before recording anything when the target shelf is unknown.
            self._shelves.get(shelf_id)

        registered = self._readings.record_batch(movements)
        result = {
            "type": payload_kind(payload),
            "totalItems": len(movements),
            "movements": [movement.to_dict() for movement in movements],
            "registered": {
                **registered,
                "recorded": [reading.to_dict() for reading in registered["recorded"]],
            },
        }
        if shelf_id is not None:
            result["shelf"] = self._apply_to_shelf(shelf_id, registered["recorded"])
        logger.info(
            "Device payload: %d movement(s), %d recorded, %d rejected.",
            len(movements),
            registered["successCount"],
            registered["errorCount"],
            extra={"shelf_id": shelf_id},
        )
        return result

    def _apply_to_shelf(self, shelf_id: int, readings) -> dict:
        applied = 0
        errors = []
        shelf = None
        for reading in readings:
            product = self._catalog.get_by_name(reading.product_name)
            delta = 1 if reading.action == MovementAction.PLACED.value else -1
            try:
                shelf = self._shelves.adjust_quantity(shelf_id, product.id, delta)
            except PersistenceError:
                raise
            except LedgerError as exc:
                errors.append({"readingId": reading.id, "productId": product.id, "error": exc.message})
                continue
            applied += 1
        if shelf is None:
            shelf = self._shelves.get(shelf_id)
        return {
            "shelfId": shelf_id,
            "applied": applied,
            "errors": errors,
            "totalWeight": shelf.total_weight,
        }

    @staticmethod
    def health_ping(payload) -> dict:
        if not isinstance(payload, dict) or payload.get("teste") is not True:
            raise ValidationError(
                "Invalid health check payload.",
                ['expected {"teste": true, "timestamp": <number>}'],
            )
        logger.info("Device health check received (timestamp=%s).", payload.get("timestamp"))
        return {"received": True, "timestamp": payload.get("timestamp")}

    @staticmethod
    def communication_info() -> dict:
        return {
            "communication": {
                "direction": "device -> API",
                "description": "The scale posts weight movements to the API.",
            },
            "supportedActions": ["RETIRADO", "COLOCADO", "RETIRADOS", "COLOCADOS", "REMOVED", "PLACED"],
            "dataFormats": {
                "single": {
                    "description": "One product placed on or removed from the scale.",
                    "example": {"nome": "cerveja", "peso": 335.1, "acao": "RETIRADO", "ts": 214022},
                },
                "multiple": {
                    "description": "Several products moved at once.",
                    "example": {
                        "acao": "COLOCADOS",
                        "quantidade": 3,
                        "produtos": [
                            {"nome": "cerveja", "peso": 347.0, "id": 0},
                            {"nome": "cerveja", "peso": 347.3, "id": 1},
                            {"nome": "2MA", "peso": 90.5, "id": 3},
                        ],
                        "ts": 188787,
                    },
                },
            },
            "endpoint": _ENDPOINT,
        }


__all__ = ["DeviceIngestion"]
