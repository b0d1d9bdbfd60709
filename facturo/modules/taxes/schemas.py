from pydantic import BaseModel, Field, ConfigDict
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class TaxRateBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    percent: Decimal = Field(..., ge=0, le=100, description="Porcentaje entre 0 y 100")
    is_default: bool = False
    is_active: bool = True


class TaxRateCreate(TaxRateBase):
    pass


class TaxRateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    percent: Optional[Decimal] = Field(None, ge=0, le=100)
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class TaxRateOut(TaxRateBase):
    id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TaxRateList(BaseModel):
    tax_rates: List[TaxRateOut]
    total: int
