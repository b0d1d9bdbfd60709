from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Optional
from uuid import UUID
from enum import Enum


class SettingCategory(str, Enum):
    GENERAL = "general"
    INVOICE = "invoice"
    QUOTE = "quote"
    PAYMENT = "payment"
    ADVANCED = "advanced"


class BillingSettings(BaseModel):
    """
    Configuración de facturación de la empresa.

    Se construye a partir de la tabla clave/valor y se pasa explícitamente a
    los servicios; ningún cálculo lee la configuración de forma global.
    """
    model_config = ConfigDict(frozen=True)

    invoices_due_after: int = Field(30, ge=0, description="Días hasta el vencimiento de una factura")
    quotes_expire_after: int = Field(15, ge=0, description="Días hasta la expiración de una cotización")
    generate_invoice_number_for_draft: bool = True
    generate_quote_number_for_draft: bool = True
    default_invoice_tax_rate: Optional[UUID] = None
    enable_invoice_deletion: bool = False
    read_only_on_send: bool = False


# Categoría de cada clave conocida
SETTING_CATEGORIES = {
    "invoices_due_after": SettingCategory.INVOICE,
    "quotes_expire_after": SettingCategory.QUOTE,
    "generate_invoice_number_for_draft": SettingCategory.INVOICE,
    "generate_quote_number_for_draft": SettingCategory.QUOTE,
    "default_invoice_tax_rate": SettingCategory.INVOICE,
    "enable_invoice_deletion": SettingCategory.ADVANCED,
    "read_only_on_send": SettingCategory.INVOICE,
}


class SettingUpdate(BaseModel):
    key: str = Field(..., min_length=1, max_length=100)
    value: Any = None
    category: Optional[SettingCategory] = None


class SettingOut(BaseModel):
    key: str
    value: Any = None
    category: str

    model_config = ConfigDict(from_attributes=True)
