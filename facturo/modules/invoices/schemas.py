from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime
from facturo.modules.invoices.models import InvoiceStatus
from facturo.modules.documents.schemas import (
    LineItemCreate, LineItemOut, DocumentTaxRateIn, DocumentTaxRateOut
)


class InvoiceCreate(BaseModel):
    client_id: UUID
    number_series_id: Optional[UUID] = None
    status: InvoiceStatus = InvoiceStatus.DRAFT
    date_created: date = Field(default_factory=date.today)
    date_due: Optional[date] = Field(None, description="Por defecto: hoy + días configurados")
    terms: Optional[str] = None
    password: Optional[str] = Field(None, max_length=100)
    payment_method_id: Optional[UUID] = None
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    items: List[LineItemCreate] = Field(..., min_length=1, description="Debe incluir al menos un item")
    tax_rates: List[DocumentTaxRateIn] = Field(default_factory=list)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        # El estado pagado lo decide el ledger de pagos
        if v == InvoiceStatus.PAID:
            raise ValueError("Una factura no puede crearse como pagada")
        return v

    @model_validator(mode="after")
    def validate_due_date(self):
        if self.date_due and self.date_created and self.date_due < self.date_created:
            raise ValueError("La fecha de vencimiento no puede ser anterior a la fecha de emisión")
        return self


class InvoiceUpdate(BaseModel):
    """
    Actualización de una factura.

    Si se envían items o tax_rates se reemplazan por completo.
    """
    client_id: Optional[UUID] = None
    number_series_id: Optional[UUID] = None
    date_created: Optional[date] = None
    date_due: Optional[date] = None
    terms: Optional[str] = None
    password: Optional[str] = Field(None, max_length=100)
    payment_method_id: Optional[UUID] = None
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    discount_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    items: Optional[List[LineItemCreate]] = Field(None, min_length=1)
    tax_rates: Optional[List[DocumentTaxRateIn]] = None

    @model_validator(mode="after")
    def validate_due_date(self):
        if self.date_due and self.date_created and self.date_due < self.date_created:
            raise ValueError("La fecha de vencimiento no puede ser anterior a la fecha de emisión")
        return self


class InvoiceFilters(BaseModel):
    status: Optional[InvoiceStatus] = None
    client_id: Optional[UUID] = None
    overdue: Optional[bool] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    search: Optional[str] = None


class InvoiceSummary(BaseModel):
    id: UUID
    number: Optional[str] = None
    client_id: UUID
    client_name: Optional[str] = None
    status: InvoiceStatus
    sign: int
    date_created: date
    date_due: date
    total: Decimal
    paid: Decimal
    balance: Decimal
    is_overdue: bool
    days_overdue: int

    model_config = ConfigDict(from_attributes=True)


class InvoiceOut(InvoiceSummary):
    url_key: str
    user_id: Optional[UUID] = None
    number_series_id: UUID
    payment_method_id: Optional[UUID] = None
    credit_invoice_parent_id: Optional[UUID] = None
    quote_id: Optional[UUID] = None
    terms: Optional[str] = None
    is_read_only: bool
    subtotal: Decimal
    item_tax_total: Decimal
    tax_total: Decimal
    discount_amount: Decimal
    discount_percent: Decimal
    items: List[LineItemOut] = []
    tax_rates: List[DocumentTaxRateOut] = []
    date_modified: datetime
    created_at: datetime


class InvoiceList(BaseModel):
    invoices: List[InvoiceSummary]
    total: int
    limit: int
    offset: int


class CreditInvoiceCreate(BaseModel):
    terms: Optional[str] = Field(None, description="Por defecto se conservan los términos de la factura original")


class InvoiceCopy(BaseModel):
    client_id: Optional[UUID] = Field(None, description="Por defecto el mismo cliente")
    number_series_id: Optional[UUID] = None
