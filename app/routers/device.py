from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from app.core.results import ok
from app.dependencies import get_services
from app.services import LedgerServices

router = APIRouter(prefix="/device", tags=["Device"])


@router.post("/weight-movement")
def receive_weight_movement(
    payload: Any = Body(None),
    shelf_id: Optional[int] = Query(None, description="Apply the movements to this shelf"),
    services: LedgerServices = Depends(get_services),
):
    result = services.device.receive(payload, shelf_id=shelf_id)
    return ok(result, message="Movement received.")


@router.get("/info")
def device_info(services: LedgerServices = Depends(get_services)):
    return ok(services.device.communication_info())


@router.post("/health")
def device_health(payload: Any = Body(None), services: LedgerServices = Depends(get_services)):
    return ok(services.device.health_ping(payload), message="Device connection OK.")


__all__ = ["router"]
