from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ReadingCreate(BaseModel):
    product_name: str = Field(validation_alias=AliasChoices("productName", "product_name"))
    weight: float
    action: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)
