import importlib

from app.models.product import Product
from app.models.shelf import Shelf
from app.models.shelf_item import ShelfItem
from app.models.weight_reading import WeightReading


def import_all_models() -> None:
    for module_name in (
        "app.models.product",
        "app.models.shelf",
        "app.models.shelf_item",
        "app.models.weight_reading",
    ):
        importlib.import_module(module_name)


__all__ = [
    "Product",
    "Shelf",
    "ShelfItem",
    "WeightReading",
    "import_all_models",
]
