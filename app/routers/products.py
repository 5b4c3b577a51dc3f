from fastapi import APIRouter, Depends

from app.core.results import ok
from app.dependencies import get_services
from app.schemas.product import ProductCreate, ProductUpdate
from app.services import LedgerServices

router = APIRouter(prefix="/products", tags=["Products"])


@router.get("")
def list_products(services: LedgerServices = Depends(get_services)):
    products = services.catalog.list_products()
    return ok([product.to_dict() for product in products], count=len(products))


@router.post("", status_code=201)
def create_product(payload: ProductCreate, services: LedgerServices = Depends(get_services)):
    product = services.catalog.create(payload.name, payload.unit_weight)
    return ok(product.to_dict(), message="Product created.")


@router.get("/by-name/{name}")
def get_product_by_name(name: str, services: LedgerServices = Depends(get_services)):
    return ok(services.catalog.get_by_name(name).to_dict())


@router.get("/{product_id}")
def get_product(product_id: int, services: LedgerServices = Depends(get_services)):
    return ok(services.catalog.get(product_id).to_dict())


@router.patch("/{product_id}")
def update_product(
    product_id: int,
    payload: ProductUpdate,
    services: LedgerServices = Depends(get_services),
):
    product = services.catalog.update(
        product_id,
        name=payload.name,
        unit_weight=payload.unit_weight,
    )
    return ok(product.to_dict(), message="Product updated.")


@router.delete("/{product_id}")
def delete_product(product_id: int, services: LedgerServices = Depends(get_services)):
    services.catalog.delete(product_id)
    return ok({"id": product_id}, message="Product deleted.")


__all__ = ["router"]
