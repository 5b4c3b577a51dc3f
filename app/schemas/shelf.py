from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ShelfItemInput(BaseModel):
    product_id: int = Field(validation_alias=AliasChoices("productId", "product_id"))
    quantity: int

    model_config = ConfigDict(populate_by_name=True)


class ShelfCreate(BaseModel):
    name: str
    items: List[ShelfItemInput] = Field(default_factory=list)
    location: Optional[str] = None
    max_capacity: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("maxCapacity", "max_capacity"),
    )

    model_config = ConfigDict(populate_by_name=True)


class ShelfUpdate(BaseModel):
    """Partial update; only the fields present in the request are applied."""

    name: Optional[str] = None
    items: Optional[List[ShelfItemInput]] = None
    location: Optional[str] = None
    max_capacity: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("maxCapacity", "max_capacity"),
    )
    is_active: Optional[bool] = Field(
        default=None,
        validation_alias=AliasChoices("isActive", "is_active"),
    )

    model_config = ConfigDict(populate_by_name=True)

    def to_patch(self) -> dict:
        patch = self.model_dump(exclude_unset=True)
        if patch.get("is_active", False) is None:
            patch.pop("is_active")
        for key in ("name", "items"):
            if key in patch and patch[key] is None:
                patch.pop(key)
        return patch


class ShelfProductAdd(BaseModel):
    product_id: int = Field(validation_alias=AliasChoices("productId", "product_id"))
    quantity: int = 1

    model_config = ConfigDict(populate_by_name=True)


class QuantityUpdate(BaseModel):
    quantity: int
