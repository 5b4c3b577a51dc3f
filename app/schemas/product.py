from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ProductCreate(BaseModel):
    name: str
    unit_weight: float = Field(validation_alias=AliasChoices("unitWeight", "unit_weight"))

    model_config = ConfigDict(populate_by_name=True)


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    unit_weight: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("unitWeight", "unit_weight"),
    )

    model_config = ConfigDict(populate_by_name=True)
