from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from facturo.database.database import get_db
from facturo.modules.guest.service import GuestService
from facturo.modules.invoices.schemas import InvoiceOut
from facturo.modules.quotes.schemas import QuoteOut

# Rutas públicas: no requieren token ni empresa
guest_router = APIRouter(prefix="/guest", tags=["Guest"])


@guest_router.get("/invoices/{url_key}", response_model=InvoiceOut)
def view_invoice(
    url_key: str,
    password: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Ver una factura enviada; la marca como vista"""
    return GuestService(db).view_invoice(url_key, password)


@guest_router.get("/quotes/{url_key}", response_model=QuoteOut)
def view_quote(
    url_key: str,
    password: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    return GuestService(db).view_quote(url_key, password)


@guest_router.post("/quotes/{url_key}/approve", response_model=QuoteOut)
def approve_quote(
    url_key: str,
    password: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    return GuestService(db).approve_quote(url_key, password)


@guest_router.post("/quotes/{url_key}/reject", response_model=QuoteOut)
def reject_quote(
    url_key: str,
    password: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    return GuestService(db).reject_quote(url_key, password)
