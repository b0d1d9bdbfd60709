from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date

from facturo.database.database import get_db
from facturo.modules.auth.dependencies import AuthDependencies
from facturo.modules.auth.schemas import AuthContext
from facturo.modules.documents.schemas import LineItemCreate, LineItemUpdate
from facturo.modules.invoices.models import InvoiceStatus
from facturo.modules.invoices.service import InvoiceService
from facturo.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceOut, InvoiceList, InvoiceFilters, InvoiceCopy, CreditInvoiceCreate
)
from facturo.modules.payments.schemas import PaymentList
from facturo.modules.payments.service import PaymentService

invoices_router = APIRouter(prefix="/invoices", tags=["Invoices"])

WRITE_ROLES = ["owner", "admin", "seller"]


@invoices_router.get("/", response_model=InvoiceList)
def list_invoices(
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status", description="Filtrar por estado"),
    client_id: Optional[UUID] = Query(None, description="Filtrar por cliente"),
    overdue: Optional[bool] = Query(None, description="Solo facturas vencidas"),
    date_from: Optional[date] = Query(None, description="Fecha desde"),
    date_to: Optional[date] = Query(None, description="Fecha hasta"),
    search: Optional[str] = Query(None, description="Buscar por número, términos o cliente"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Listar facturas con filtros"""
    filters = InvoiceFilters(
        status=status_filter,
        client_id=client_id,
        overdue=overdue,
        date_from=date_from,
        date_to=date_to,
        search=search
    )
    return InvoiceService(db).get_invoices(auth_context.tenant_id, filters, limit, offset)


@invoices_router.post("/", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    """
    Crear factura

    - Si no se indica serie se usa la serie por defecto de facturas
    - El vencimiento por defecto es la fecha de emisión más los días configurados
    - Sin impuestos globales se aplica el impuesto por defecto configurado
    """
    return InvoiceService(db).create_invoice(invoice_data, auth_context.tenant_id, auth_context.user_id)


@invoices_router.get("/{invoice_id}", response_model=InvoiceOut)
def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return InvoiceService(db).get_invoice_by_id(invoice_id, auth_context.tenant_id)


@invoices_router.patch("/{invoice_id}", response_model=InvoiceOut)
def update_invoice(
    invoice_id: UUID,
    data: InvoiceUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    """Actualizar factura (falla si es de solo lectura)"""
    return InvoiceService(db).update_invoice(invoice_id, data, auth_context.tenant_id)


@invoices_router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    """Eliminar factura, si la empresa tiene habilitada la eliminación"""
    InvoiceService(db).delete_invoice(invoice_id, auth_context.tenant_id)


@invoices_router.post("/{invoice_id}/send", response_model=InvoiceOut)
def send_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    """
    Marcar factura como enviada

    El envío del correo lo hace otro servicio; aquí solo cambia el estado.
    """
    return InvoiceService(db).mark_as_sent(invoice_id, auth_context.tenant_id)


@invoices_router.post("/{invoice_id}/copy", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def copy_invoice(
    invoice_id: UUID,
    data: Optional[InvoiceCopy] = None,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    return InvoiceService(db).copy_invoice(invoice_id, auth_context.tenant_id, auth_context.user_id, data)


@invoices_router.post("/{invoice_id}/credit", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def create_credit_invoice(
    invoice_id: UUID,
    data: Optional[CreditInvoiceCreate] = None,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    """Crear nota crédito de la factura"""
    return InvoiceService(db).create_credit_invoice(invoice_id, auth_context.tenant_id, auth_context.user_id, data)


@invoices_router.post("/{invoice_id}/items", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def add_invoice_item(
    invoice_id: UUID,
    item_data: LineItemCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    return InvoiceService(db).add_item(invoice_id, item_data, auth_context.tenant_id)


@invoices_router.patch("/{invoice_id}/items/{item_id}", response_model=InvoiceOut)
def update_invoice_item(
    invoice_id: UUID,
    item_id: UUID,
    item_data: LineItemUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    return InvoiceService(db).update_item(invoice_id, item_id, item_data, auth_context.tenant_id)


@invoices_router.delete("/{invoice_id}/items/{item_id}", response_model=InvoiceOut)
def delete_invoice_item(
    invoice_id: UUID,
    item_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    return InvoiceService(db).delete_item(invoice_id, item_id, auth_context.tenant_id)


@invoices_router.get("/{invoice_id}/payments", response_model=PaymentList)
def get_invoice_payments(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Pagos registrados en la factura"""
    return PaymentService(db).get_invoice_payments(invoice_id, auth_context.tenant_id)
