from pydantic import BaseModel, Field, ConfigDict
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date as date_type, datetime
from facturo.modules.invoices.models import InvoiceStatus


class PaymentMethodCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    is_active: bool = True


class PaymentMethodOut(BaseModel):
    id: UUID
    name: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class PaymentMethodList(BaseModel):
    payment_methods: List[PaymentMethodOut]
    total: int


class PaymentCreate(BaseModel):
    invoice_id: UUID
    amount: Decimal = Field(..., gt=0, description="Monto del pago, mayor a 0")
    date: date_type = Field(default_factory=date_type.today)
    payment_method_id: Optional[UUID] = None
    note: Optional[str] = None


class PaymentUpdate(BaseModel):
    """La factura de un pago no se puede cambiar"""
    amount: Optional[Decimal] = Field(None, gt=0)
    date: Optional[date_type] = None
    payment_method_id: Optional[UUID] = None
    note: Optional[str] = None


class PaymentFilters(BaseModel):
    invoice_id: Optional[UUID] = None
    payment_method_id: Optional[UUID] = None
    date_from: Optional[date_type] = None
    date_to: Optional[date_type] = None


class InvoiceBalance(BaseModel):
    """Estado de la factura tras aplicar el ledger"""
    id: UUID
    number: Optional[str] = None
    status: InvoiceStatus
    total: Decimal
    paid: Decimal
    balance: Decimal

    model_config = ConfigDict(from_attributes=True)


class PaymentOut(BaseModel):
    id: UUID
    invoice_id: UUID
    payment_method_id: Optional[UUID] = None
    amount: Decimal
    date: date_type
    note: Optional[str] = None
    created_at: datetime
    invoice: Optional[InvoiceBalance] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentList(BaseModel):
    payments: List[PaymentOut]
    total: int
    limit: int
    offset: int
