import logging
from typing import Optional

from app.core.constants import DEFAULT_PRODUCTS
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.numbers import is_finite_number, is_stored_int
from app.storage.base import LedgerStorage
from app.storage.records import ProductRecord

logger = logging.getLogger(__name__)

_PRODUCT_NAME_MAX_LENGTH = 100


def _clean_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Product name is required.", ["name must be a non-empty string"])
    cleaned = name.strip()
    if len(cleaned) > _PRODUCT_NAME_MAX_LENGTH:
        raise ValidationError(
            "Product name is too long.",
            [f"name must be at most {_PRODUCT_NAME_MAX_LENGTH} characters"],
        )
    return cleaned


def _clean_unit_weight(unit_weight) -> float:
    if isinstance(unit_weight, bool) or not isinstance(unit_weight, (int, float)):
        raise ValidationError("Unit weight must be a number.", ["unitWeight must be a number"])
    if not is_finite_number(unit_weight) or unit_weight < 0:
        raise ValidationError(
            "Unit weight must be a finite number >= 0.",
            ["unitWeight must be a finite number >= 0"],
        )
    return float(unit_weight)


class ProductCatalog:
    """Unit-weight registry for named products."""

    def __init__(self, storage: LedgerStorage):
        self._storage = storage

    def get(self, product_id: int) -> ProductRecord:
        product = self._storage.get_product(product_id) if is_stored_int(product_id) else None
        if product is None:
            raise NotFoundError(f"Product {product_id} not found.")
        return product

    def find_by_name(self, name: str) -> Optional[ProductRecord]:
        return self._storage.find_product_by_name(_clean_name(name))

    def get_by_name(self, name: str) -> ProductRecord:
        product = self.find_by_name(name)
        if product is None:
            raise NotFoundError(f"Product '{name}' not found.")
        return product

    def list_products(self) -> list[ProductRecord]:
        return self._storage.list_products()

    def create(self, name: str, unit_weight: float) -> ProductRecord:
        product = self._storage.insert_product(_clean_name(name), _clean_unit_weight(unit_weight))
        logger.info("Created product %s (%s, unit weight %.3f).", product.id, product.name, product.unit_weight)
        return product

    def get_or_create(self, name: str, unit_weight: float) -> tuple[ProductRecord, bool]:
        """
        Resolve a product by name, creating it when absent.

        Concurrent callers race on the unique name; the loser sees a
        ``ConflictError`` from storage and re-fetches the winner's row.
        """
        cleaned = _clean_name(name)
        existing = self._storage.find_product_by_name(cleaned)
        if existing is not None:
            return existing, False
        try:
            product = self._storage.insert_product(cleaned, _clean_unit_weight(unit_weight))
        except ConflictError:
            existing = self._storage.find_product_by_name(cleaned)
            if existing is None:
                raise
            return existing, False
        logger.warning(
            "Auto-created product %s (%s) using observed weight %.3f as unit weight.",
            product.id,
            product.name,
            product.unit_weight,
            extra={"product_id": product.id, "product_name": product.name},
        )
        return product, True

    def seed_defaults(self) -> int:
        created = 0
        for name, unit_weight in DEFAULT_PRODUCTS:
            if self._storage.find_product_by_name(name) is not None:
                continue
            try:
                self.create(name, unit_weight)
            except ConflictError:
                continue
            created += 1
        return created

    def update(
        self,
        product_id: int,
        *,
        name: Optional[str] = None,
        unit_weight: Optional[float] = None,
    ) -> ProductRecord:
        if name is None and unit_weight is None:
            raise ValidationError("Nothing to update.", ["provide name and/or unitWeight"])
        product = self._storage.update_product(
            product_id,
            name=_clean_name(name) if name is not None else None,
            unit_weight=_clean_unit_weight(unit_weight) if unit_weight is not None else None,
        )
        if product is None:
            raise NotFoundError(f"Product {product_id} not found.")
        return product

    def delete(self, product_id: int) -> None:
        self.get(product_id)
        if self._storage.count_items_for_product(product_id):
            raise ConflictError(f"Product {product_id} is still stocked on a shelf.")
        self._storage.delete_product(product_id)
        logger.info("Deleted product %s.", product_id, extra={"product_id": product_id})


__all__ = ["ProductCatalog"]
