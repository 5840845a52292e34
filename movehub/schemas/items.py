import enum
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


ITEM_CATEGORIES = [
    "Furniture",
    "Electronics",
    "Appliances",
    "Kitchenware",
    "Clothing",
    "Books & Documents",
    "Artwork & Decorations",
    "Sports Equipment",
    "Tools & Hardware",
    "Personal Items",
    "Fragile Items",
    "Other",
]


class ItemCondition(str, enum.Enum):
    excellent = "excellent"
    good = "good"
    fair = "fair"
    poor = "poor"
    damaged = "damaged"


class ImageType(str, enum.Enum):
    main = "main"
    detail = "detail"
    damage = "damage"


def _check_category(v):
    if v is not None and v not in ITEM_CATEGORIES:
        raise ValueError(f"category must be one of: {', '.join(ITEM_CATEGORIES)}")
    return v


class ItemBase(BaseModel):
    material: Optional[str] = None
    item_value: Optional[float] = Field(default=None, ge=0)
    dimensions: Optional[str] = None
    weight_estimate: Optional[float] = Field(default=None, ge=0)
    handling_instructions: Optional[str] = None
    delivery_location_id: Optional[uuid.UUID] = None

    @field_validator("material", "dimensions", "handling_instructions", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class ItemCreate(ItemBase):
    item_name: str = Field(min_length=1)
    category: str
    quantity: int = Field(default=1, ge=1)
    condition: ItemCondition
    fragile: bool = False
    ai_confidence_score: Optional[float] = Field(default=None, ge=0, le=1)
    manual_verification: bool = False
    # Photo captured with the item, as a data URL
    image_data: Optional[str] = Field(default=None, alias="imageData")
    image_type: ImageType = ImageType.main

    @field_validator("category")
    @classmethod
    def known_category(cls, v):
        return _check_category(v)

    class Config:
        populate_by_name = True


class ItemUpdate(ItemBase):
    item_name: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    condition: Optional[ItemCondition] = None
    fragile: Optional[bool] = None
    manual_verification: Optional[bool] = None

    @field_validator("category")
    @classmethod
    def known_category(cls, v):
        return _check_category(v)


class ItemResponse(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    delivery_location_id: Optional[uuid.UUID] = None
    room_id: Optional[uuid.UUID] = None
    item_name: str
    category: str
    quantity: int
    condition: str
    material: Optional[str] = None
    item_value: Optional[float] = None
    dimensions: Optional[str] = None
    weight_estimate: Optional[float] = None
    handling_instructions: Optional[str] = None
    fragile: bool = False
    ai_confidence_score: Optional[float] = None
    manual_verification: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    image_count: int = 0

    class Config:
        from_attributes = True
