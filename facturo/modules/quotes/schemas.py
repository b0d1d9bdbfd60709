from pydantic import BaseModel, Field, ConfigDict, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime
from facturo.modules.quotes.models import QuoteStatus
from facturo.modules.documents.schemas import (
    LineItemCreate, LineItemOut, DocumentTaxRateIn, DocumentTaxRateOut
)


class QuoteCreate(BaseModel):
    client_id: UUID
    number_series_id: Optional[UUID] = None
    status: QuoteStatus = QuoteStatus.DRAFT
    date_created: date = Field(default_factory=date.today)
    date_expires: Optional[date] = Field(None, description="Por defecto: hoy + días configurados")
    notes: Optional[str] = None
    password: Optional[str] = Field(None, max_length=100)
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    items: List[LineItemCreate] = Field(..., min_length=1, description="Debe incluir al menos un item")
    tax_rates: List[DocumentTaxRateIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_dates(self):
        if self.date_expires and self.date_created and self.date_expires < self.date_created:
            raise ValueError("La fecha de expiración no puede ser anterior a la fecha de emisión")
        if self.status not in (QuoteStatus.DRAFT, QuoteStatus.SENT):
            raise ValueError("Una cotización solo puede crearse como borrador o enviada")
        return self


class QuoteUpdate(BaseModel):
    client_id: Optional[UUID] = None
    number_series_id: Optional[UUID] = None
    date_created: Optional[date] = None
    date_expires: Optional[date] = None
    notes: Optional[str] = None
    password: Optional[str] = Field(None, max_length=100)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    discount_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    items: Optional[List[LineItemCreate]] = Field(None, min_length=1)
    tax_rates: Optional[List[DocumentTaxRateIn]] = None


class QuoteFilters(BaseModel):
    status: Optional[str] = None
    client_id: Optional[UUID] = None
    search: Optional[str] = None


class QuoteSummary(BaseModel):
    id: UUID
    number: Optional[str] = None
    client_id: UUID
    client_name: Optional[str] = None
    status: QuoteStatus
    effective_status: str
    date_created: date
    date_expires: date
    total: Decimal
    invoice_id: Optional[UUID] = None
    is_converted: bool
    is_expired: bool

    model_config = ConfigDict(from_attributes=True)


class QuoteOut(QuoteSummary):
    url_key: str
    user_id: Optional[UUID] = None
    number_series_id: UUID
    notes: Optional[str] = None
    subtotal: Decimal
    item_tax_total: Decimal
    tax_total: Decimal
    discount_amount: Decimal
    discount_percent: Decimal
    items: List[LineItemOut] = []
    tax_rates: List[DocumentTaxRateOut] = []
    date_modified: datetime
    created_at: datetime


class QuoteList(BaseModel):
    quotes: List[QuoteSummary]
    total: int
    limit: int
    offset: int


class QuoteCopy(BaseModel):
    client_id: Optional[UUID] = Field(None, description="Por defecto el mismo cliente")
    number_series_id: Optional[UUID] = None


class QuoteConvert(BaseModel):
    number_series_id: Optional[UUID] = Field(None, description="Serie de facturas; por defecto la de la empresa")
