from pydantic import BaseModel, Field
from typing import Optional


class HouseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    address: Optional[str] = Field(default=None, max_length=255)
    tariff_kwh: Optional[float] = Field(default=None, gt=0)  # Tarif par défaut si absent


class HouseUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    address: Optional[str] = Field(None, max_length=255)
    tariff_kwh: Optional[float] = Field(None, gt=0)
