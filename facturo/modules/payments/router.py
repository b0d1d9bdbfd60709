from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date

from facturo.database.database import get_db
from facturo.modules.auth.dependencies import AuthDependencies
from facturo.modules.auth.schemas import AuthContext
from facturo.modules.payments.service import PaymentService
from facturo.modules.payments.schemas import (
    PaymentCreate, PaymentUpdate, PaymentOut, PaymentList, PaymentFilters, InvoiceBalance,
    PaymentMethodCreate, PaymentMethodOut, PaymentMethodList
)

payments_router = APIRouter(prefix="/payments", tags=["Payments"])

PAYMENT_ROLES = ["owner", "admin", "seller", "accountant"]


# Métodos de pago (antes de /{payment_id} para que no colisionen las rutas)

@payments_router.get("/methods", response_model=PaymentMethodList)
def list_payment_methods(
    only_active: bool = Query(False),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return PaymentService(db).get_payment_methods(auth_context.tenant_id, only_active)


@payments_router.post("/methods", response_model=PaymentMethodOut, status_code=status.HTTP_201_CREATED)
def create_payment_method(
    data: PaymentMethodCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    return PaymentService(db).create_payment_method(data, auth_context.tenant_id)


@payments_router.get("/", response_model=PaymentList)
def list_payments(
    invoice_id: Optional[UUID] = Query(None, description="Filtrar por factura"),
    payment_method_id: Optional[UUID] = Query(None, description="Filtrar por método de pago"),
    date_from: Optional[date] = Query(None, description="Fecha desde"),
    date_to: Optional[date] = Query(None, description="Fecha hasta"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    filters = PaymentFilters(
        invoice_id=invoice_id,
        payment_method_id=payment_method_id,
        date_from=date_from,
        date_to=date_to
    )
    return PaymentService(db).get_payments(auth_context.tenant_id, filters, limit, offset)


@payments_router.post("/", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def record_payment(
    payment_data: PaymentCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(PAYMENT_ROLES))
):
    """
    Registrar un pago

    La respuesta incluye el saldo y estado de la factura ya recalculados.
    """
    return PaymentService(db).record_payment(payment_data, auth_context.tenant_id)


@payments_router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(
    payment_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return PaymentService(db).get_payment_by_id(payment_id, auth_context.tenant_id)


@payments_router.patch("/{payment_id}", response_model=PaymentOut)
def edit_payment(
    payment_id: UUID,
    payment_data: PaymentUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(PAYMENT_ROLES))
):
    return PaymentService(db).edit_payment(payment_id, payment_data, auth_context.tenant_id)


@payments_router.delete("/{payment_id}", response_model=Optional[InvoiceBalance])
def delete_payment(
    payment_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    """Eliminar un pago; devuelve la factura con el saldo recalculado"""
    return PaymentService(db).delete_payment(payment_id, auth_context.tenant_id)
