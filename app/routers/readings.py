from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.constants import DEFAULT_LATEST_READINGS, DEFAULT_STATISTICS_DAYS
from app.core.results import ok
from app.dependencies import get_services
from app.schemas.reading import ReadingCreate
from app.services import LedgerServices

router = APIRouter(prefix="/readings", tags=["Readings"])


def _dump(readings) -> list:
    return [reading.to_dict() for reading in readings]


@router.get("")
def list_readings(
    product_name: Optional[str] = Query(None, alias="productName", description="Substring match"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    services: LedgerServices = Depends(get_services),
):
    readings = services.readings.list_readings(
        product_name=product_name,
        start=start_date,
        end=end_date,
        limit=limit,
        offset=offset,
    )
    return ok(_dump(readings), count=len(readings))


@router.post("", status_code=201)
def create_reading(payload: ReadingCreate, services: LedgerServices = Depends(get_services)):
    reading = services.readings.record_manual(payload.product_name, payload.weight, payload.action)
    return ok(reading.to_dict(), message="Reading recorded.")


@router.get("/latest/{product_name}")
def latest_readings(
    product_name: str,
    limit: int = Query(DEFAULT_LATEST_READINGS),
    services: LedgerServices = Depends(get_services),
):
    readings = services.readings.latest_for_product(product_name, limit=limit)
    return ok(_dump(readings), count=len(readings))


@router.get("/range")
def readings_in_range(
    start_date: datetime = Query(..., alias="startDate"),
    end_date: datetime = Query(..., alias="endDate"),
    services: LedgerServices = Depends(get_services),
):
    readings = services.readings.between(start_date, end_date)
    return ok(_dump(readings), count=len(readings))


@router.get("/statistics")
def reading_statistics(
    product_name: Optional[str] = Query(None, alias="productName"),
    days: int = Query(DEFAULT_STATISTICS_DAYS),
    services: LedgerServices = Depends(get_services),
):
    return ok(services.readings.statistics(product_name=product_name, days=days))


@router.delete("/cleanup")
def cleanup_readings(
    keep_count: Optional[int] = Query(None, alias="keepCount"),
    services: LedgerServices = Depends(get_services),
):
    removed = services.readings.cleanup(keep_count)
    return ok({"removed": removed}, message=f"Removed {removed} old reading(s).")


@router.get("/{reading_id}")
def get_reading(reading_id: int, services: LedgerServices = Depends(get_services)):
    return ok(services.readings.get(reading_id).to_dict())


__all__ = ["router"]
