import enum
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class ReportType(str, enum.Enum):
    completion = "completion"
    insurance = "insurance"
    delivery = "delivery"
    picking = "picking"


class JobData(BaseModel):
    # Required fields are checked by the generator so a missing one is a report failure
    id: Optional[str] = None
    job_number: Optional[str] = None
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    pickup_location: Optional[str] = None
    delivery_location: Optional[str] = None
    status: str = "draft"
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_estimated_value: Optional[float] = None

    @field_validator("id", mode="before")
    @classmethod
    def id_to_str(cls, v):
        return None if v is None else str(v)


class ItemData(BaseModel):
    id: Optional[str] = None
    job_id: Optional[str] = None
    item_name: str
    category: str = "Other"
    quantity: int = Field(default=1, ge=1)
    condition: str = "good"
    item_value: Optional[float] = None
    dimensions: Optional[str] = None
    weight_estimate: Optional[float] = None
    handling_instructions: Optional[str] = None
    fragile: bool = False
    ai_confidence_score: Optional[float] = None
    manual_verification: bool = False
    created_at: Optional[datetime] = None
    image_count: Optional[int] = None

    @field_validator("id", "job_id", mode="before")
    @classmethod
    def ids_to_str(cls, v):
        return None if v is None else str(v)


class Signatures(BaseModel):
    # Base64 image data URLs captured on the device
    customer: Optional[str] = None
    staff: Optional[str] = None


class ReportData(BaseModel):
    job: Optional[JobData] = None
    items: Optional[List[ItemData]] = None
    report_type: str = Field(default=ReportType.completion.value, alias="reportType")
    generated_by: Optional[str] = Field(default=None, alias="generatedBy")
    generated_at: Optional[datetime] = Field(default=None, alias="generatedAt")
    signatures: Optional[Signatures] = None

    class Config:
        populate_by_name = True


class GenerateReportRequest(BaseModel):
    report_data: Optional[ReportData] = Field(default=None, alias="reportData")

    class Config:
        populate_by_name = True


class EmailConfig(BaseModel):
    recipients: List[str] = []
    subject: str = ""
    message: str = ""


class EmailReportRequest(BaseModel):
    report_data: Optional[ReportData] = Field(default=None, alias="reportData")
    email_config: Optional[EmailConfig] = Field(default=None, alias="emailConfig")

    class Config:
        populate_by_name = True


class EmailReportResponse(BaseModel):
    success: bool
    message: str
    emails_sent: int = Field(alias="emailsSent")
    filename: str

    class Config:
        populate_by_name = True
