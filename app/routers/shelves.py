from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.results import ok
from app.dependencies import get_services
from app.schemas.shelf import QuantityUpdate, ShelfCreate, ShelfProductAdd, ShelfUpdate
from app.services import LedgerServices

router = APIRouter(prefix="/shelves", tags=["Shelves"])


@router.get("")
def list_shelves(
    status: Optional[str] = Query(None, description="active | inactive"),
    services: LedgerServices = Depends(get_services),
):
    shelves = services.shelves.list_shelves(status)
    return ok([shelf.to_basic_dict() for shelf in shelves], count=len(shelves))


@router.post("", status_code=201)
def create_shelf(payload: ShelfCreate, services: LedgerServices = Depends(get_services)):
    shelf = services.shelves.create(
        payload.name,
        [item.model_dump() for item in payload.items],
        location=payload.location,
        max_capacity=payload.max_capacity,
    )
    return ok(shelf.to_dict(), message="Shelf created.")


@router.get("/search")
def search_shelves(
    name: Optional[str] = Query(None),
    min_weight: Optional[float] = Query(None, alias="minWeight"),
    max_weight: Optional[float] = Query(None, alias="maxWeight"),
    services: LedgerServices = Depends(get_services),
):
    shelves = services.shelves.search(name=name, min_weight=min_weight, max_weight=max_weight)
    return ok([shelf.to_basic_dict() for shelf in shelves], count=len(shelves))


@router.get("/statistics")
def shelf_statistics(services: LedgerServices = Depends(get_services)):
    return ok(services.shelves.statistics())


@router.get("/by-name/{name}")
def get_shelf_by_name(name: str, services: LedgerServices = Depends(get_services)):
    return ok(services.shelves.get_by_name(name).to_dict())


@router.get("/{shelf_id}")
def get_shelf(shelf_id: int, services: LedgerServices = Depends(get_services)):
    return ok(services.shelves.get(shelf_id).to_dict())


@router.patch("/{shelf_id}")
def update_shelf(
    shelf_id: int,
    payload: ShelfUpdate,
    services: LedgerServices = Depends(get_services),
):
    shelf = services.shelves.update(shelf_id, payload.to_patch())
    return ok(shelf.to_dict(), message="Shelf updated.")


@router.delete("/{shelf_id}")
def delete_shelf(shelf_id: int, services: LedgerServices = Depends(get_services)):
    services.shelves.delete(shelf_id)
    return ok({"id": shelf_id}, message="Shelf deleted.")


@router.get("/{shelf_id}/products")
def shelf_products(shelf_id: int, services: LedgerServices = Depends(get_services)):
    return ok(services.shelves.shelf_products(shelf_id))


@router.post("/{shelf_id}/products")
def add_shelf_product(
    shelf_id: int,
    payload: ShelfProductAdd,
    services: LedgerServices = Depends(get_services),
):
    shelf = services.shelves.add_product(shelf_id, payload.product_id, payload.quantity)
    return ok(shelf.to_dict(), message="Product added to shelf.")


@router.put("/{shelf_id}/products/{product_id}")
def set_shelf_product_quantity(
    shelf_id: int,
    product_id: int,
    payload: QuantityUpdate,
    services: LedgerServices = Depends(get_services),
):
    shelf = services.shelves.set_quantity(shelf_id, product_id, payload.quantity)
    return ok(shelf.to_dict(), message="Quantity updated.")


@router.delete("/{shelf_id}/products/{product_id}")
def remove_shelf_product(
    shelf_id: int,
    product_id: int,
    services: LedgerServices = Depends(get_services),
):
    shelf = services.shelves.remove_product(shelf_id, product_id)
    return ok(shelf.to_dict(), message="Product removed from shelf.")


@router.get("/{shelf_id}/audit")
def audit_shelf(shelf_id: int, services: LedgerServices = Depends(get_services)):
    return ok(services.auditor.audit(shelf_id).to_dict())


@router.post("/{shelf_id}/resync")
def resync_shelf(shelf_id: int, services: LedgerServices = Depends(get_services)):
    return ok(services.shelves.resync(shelf_id).to_dict(), message="Shelf summary rebuilt.")


__all__ = ["router"]
