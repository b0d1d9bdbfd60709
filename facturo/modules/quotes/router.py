from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from facturo.database.database import get_db
from facturo.modules.auth.dependencies import AuthDependencies
from facturo.modules.auth.schemas import AuthContext
from facturo.modules.invoices.schemas import InvoiceOut
from facturo.modules.quotes.service import QuoteService
from facturo.modules.quotes.schemas import (
    QuoteCreate, QuoteUpdate, QuoteOut, QuoteList, QuoteFilters, QuoteCopy, QuoteConvert
)

quotes_router = APIRouter(prefix="/quotes", tags=["Quotes"])

WRITE_ROLES = ["owner", "admin", "seller"]


@quotes_router.get("/", response_model=QuoteList)
def list_quotes(
    status_filter: Optional[str] = Query(None, alias="status", description="Estado, incluido 'converted'"),
    client_id: Optional[UUID] = Query(None, description="Filtrar por cliente"),
    search: Optional[str] = Query(None, description="Buscar por número, notas o cliente"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    filters = QuoteFilters(status=status_filter, client_id=client_id, search=search)
    return QuoteService(db).get_quotes(auth_context.tenant_id, filters, limit, offset)


@quotes_router.post("/", response_model=QuoteOut, status_code=status.HTTP_201_CREATED)
def create_quote(
    quote_data: QuoteCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    return QuoteService(db).create_quote(quote_data, auth_context.tenant_id, auth_context.user_id)


@quotes_router.get("/{quote_id}", response_model=QuoteOut)
def get_quote(
    quote_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return QuoteService(db).get_quote_by_id(quote_id, auth_context.tenant_id)


@quotes_router.patch("/{quote_id}", response_model=QuoteOut)
def update_quote(
    quote_id: UUID,
    data: QuoteUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    """Actualizar cotización (falla si ya fue convertida)"""
    return QuoteService(db).update_quote(quote_id, data, auth_context.tenant_id)


@quotes_router.delete("/{quote_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_quote(
    quote_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    QuoteService(db).delete_quote(quote_id, auth_context.tenant_id)


@quotes_router.post("/{quote_id}/send", response_model=QuoteOut)
def send_quote(
    quote_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    return QuoteService(db).mark_as_sent(quote_id, auth_context.tenant_id)


@quotes_router.post("/{quote_id}/approve", response_model=QuoteOut)
def approve_quote(
    quote_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    service = QuoteService(db)
    return service.approve_quote(service.get_quote_by_id(quote_id, auth_context.tenant_id))


@quotes_router.post("/{quote_id}/reject", response_model=QuoteOut)
def reject_quote(
    quote_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    service = QuoteService(db)
    return service.reject_quote(service.get_quote_by_id(quote_id, auth_context.tenant_id))


@quotes_router.post("/{quote_id}/cancel", response_model=QuoteOut)
def cancel_quote(
    quote_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    return QuoteService(db).cancel_quote(quote_id, auth_context.tenant_id)


@quotes_router.post("/{quote_id}/copy", response_model=QuoteOut, status_code=status.HTTP_201_CREATED)
def copy_quote(
    quote_id: UUID,
    data: Optional[QuoteCopy] = None,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    return QuoteService(db).copy_quote(quote_id, auth_context.tenant_id, auth_context.user_id, data)


@quotes_router.post("/{quote_id}/convert", response_model=InvoiceOut, status_code=status.HTTP_201_CREATED)
def convert_quote(
    quote_id: UUID,
    data: Optional[QuoteConvert] = None,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    """
    Convertir cotización en factura

    Falla con 409 si la cotización ya tiene factura.
    """
    return QuoteService(db).convert_to_invoice(quote_id, auth_context.tenant_id, auth_context.user_id, data)
