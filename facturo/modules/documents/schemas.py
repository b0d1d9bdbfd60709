from pydantic import BaseModel, Field, ConfigDict, field_validator
from decimal import Decimal
from typing import Optional
from uuid import UUID


class LineItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    quantity: Decimal = Field(..., gt=0, description="Cantidad debe ser mayor a 0")
    price: Decimal = Field(..., gt=0, description="Precio unitario sin impuestos")
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    tax_rate_id: Optional[UUID] = None
    order: Optional[int] = Field(None, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("El nombre del ítem es obligatorio")
        return v.strip()


class LineItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    quantity: Optional[Decimal] = Field(None, gt=0)
    price: Optional[Decimal] = Field(None, gt=0)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    tax_rate_id: Optional[UUID] = None
    order: Optional[int] = Field(None, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if v is not None and not v.strip():
            raise ValueError("El nombre del ítem es obligatorio")
        return v.strip() if v is not None else v


class LineItemOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    quantity: Decimal
    price: Decimal
    discount_amount: Decimal
    tax_rate_id: Optional[UUID] = None
    tax_rate_percent: Decimal
    order: int
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class DocumentTaxRateIn(BaseModel):
    tax_rate_id: UUID
    include_item_tax: bool = False


class DocumentTaxRateOut(BaseModel):
    id: UUID
    tax_rate_id: Optional[UUID] = None
    tax_rate_percent: Decimal
    include_item_tax: bool
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)
