from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum


class ConsumptionStatus(str, Enum):
    unbilled = "non_facturee"
    billed = "facturee"


class ConsumptionCreate(BaseModel):
    resident_id: str
    house_id: str
    previous_index: float = Field(..., ge=0)
    current_index: float = Field(..., ge=0)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    comment: Optional[str] = Field(default=None, max_length=500)


class ConsumptionUpdate(BaseModel):
    previous_index: Optional[float] = Field(None, ge=0)
    current_index: Optional[float] = Field(None, ge=0)
    comment: Optional[str] = Field(None, max_length=500)
