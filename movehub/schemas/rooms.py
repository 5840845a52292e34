import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class RoomCreate(BaseModel):
    # Presence is checked by the route so a missing name answers 400 like other domain errors
    room_name: Optional[str] = None
    room_type: Optional[str] = None
    floor_level: Optional[str] = None

    @field_validator("room_name", "room_type", "floor_level", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class RoomResponse(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    room_name: str
    room_type: str
    floor_level: Optional[str] = None
    is_completed: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    item_count: int = 0

    class Config:
        from_attributes = True
