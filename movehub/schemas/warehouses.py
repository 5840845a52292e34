import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class WarehouseCreate(BaseModel):
    name: str = Field(min_length=1)
    address: Optional[str] = None
    contact_person: Optional[str] = Field(default=None, alias="contact_name")
    contact_phone: Optional[str] = None

    @field_validator("address", "contact_person", "contact_phone", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    class Config:
        populate_by_name = True


class WarehouseResponse(BaseModel):
    id: uuid.UUID
    name: str
    address: Optional[str] = None
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
