from typing import Optional

from pydantic import BaseModel, Field


class ItemGuess(BaseModel):
    item_name: str = Field(alias="itemName")
    category: str = "Other"
    condition: str = "good"
    quantity: int = 1
    estimated_weight: Optional[str] = Field(default=None, alias="estimatedWeight")
    dimensions: Optional[str] = None
    estimated_value: Optional[float] = Field(default=None, alias="estimatedValue")
    handling_instructions: Optional[str] = Field(default=None, alias="handlingInstructions")
    is_fragile: bool = Field(default=False, alias="isFragile")
    confidence_score: float = Field(default=0.0, alias="confidenceScore")
    suggested_description: Optional[str] = Field(default=None, alias="suggestedDescription")

    class Config:
        populate_by_name = True
