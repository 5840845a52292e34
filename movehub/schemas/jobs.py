import datetime as dt
import enum
import uuid
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class JobType(str, enum.Enum):
    direct_move = "direct_move"
    multi_location = "multi_location"
    warehouse_storage = "warehouse_storage"


class LocationType(str, enum.Enum):
    pickup = "pickup"
    delivery = "delivery"


class DecisionAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"


class LocationInput(BaseModel):
    location_type: LocationType = Field(alias="type")
    address: str = Field(min_length=1)
    city: Optional[str] = None
    state: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    date: Optional[dt.date] = None
    special_instructions: Optional[str] = None
    sequence_order: Optional[int] = None

    @field_validator("city", "state", "contact_name", "contact_phone", "contact_email", "special_instructions", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    class Config:
        populate_by_name = True


class JobFields(BaseModel):
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    job_type: JobType = JobType.direct_move
    warehouse_holding: bool = False
    selected_warehouse_id: Optional[uuid.UUID] = None
    estimated_storage_start_date: Optional[dt.date] = None
    estimated_storage_end_date: Optional[dt.date] = None
    move_date: Optional[dt.date] = None
    truck_vehicle_no: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("client_phone", "client_email", "truck_vehicle_no", "notes", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class JobCreate(JobFields):
    client_name: str = Field(min_length=1)
    locations: List[LocationInput] = []
    submit_for_review: bool = False


class JobUpdate(JobFields):
    client_name: Optional[str] = None
    job_type: Optional[JobType] = None
    warehouse_holding: Optional[bool] = None
    # When given, replaces every location of the job
    locations: Optional[List[LocationInput]] = None


class ApprovalRequest(BaseModel):
    action: DecisionAction
    rejection_reason: Optional[str] = None


class LocationResponse(BaseModel):
    id: uuid.UUID
    location_type: str
    address: str
    city: Optional[str] = None
    state: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    date: Optional[dt.date] = None
    special_instructions: Optional[str] = None
    sequence_order: int = 0

    class Config:
        from_attributes = True


class JobResponse(BaseModel):
    id: uuid.UUID
    job_number: str
    client_name: str
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    job_type: str
    warehouse_holding: bool = False
    selected_warehouse_id: Optional[uuid.UUID] = None
    estimated_storage_start_date: Optional[dt.date] = None
    estimated_storage_end_date: Optional[dt.date] = None
    move_date: Optional[dt.date] = None
    truck_vehicle_no: Optional[str] = None
    notes: Optional[str] = None
    status: str
    created_by: uuid.UUID
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[dt.datetime] = None
    rejection_reason: Optional[str] = None
    submitted_at: Optional[dt.datetime] = None
    completed_at: Optional[dt.datetime] = None
    cancelled_at: Optional[dt.datetime] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True
