"""
Acceso de invitado a documentos por su url_key.

Los borradores nunca se exponen. Ver una factura o cotización enviada la
marca como vista. La contraseña se compara en texto plano contra la
guardada en el documento.
"""
from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from facturo.common.exceptions import NotFoundError
from facturo.modules.invoices.models import Invoice, InvoiceStatus
from facturo.modules.invoices.service import InvoiceService
from facturo.modules.quotes.models import Quote, QuoteStatus
from facturo.modules.quotes.service import QuoteService, ANSWERABLE_STATUSES

logger = logging.getLogger(__name__)

GUEST_INVOICE_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.VIEWED, InvoiceStatus.PAID)
GUEST_QUOTE_STATUSES = (QuoteStatus.SENT, QuoteStatus.VIEWED, QuoteStatus.APPROVED, QuoteStatus.REJECTED)


class GuestService:
    def __init__(self, db: Session):
        self.db = db
        self.invoice_service = InvoiceService(db)
        self.quote_service = QuoteService(db)

    @staticmethod
    def _check_password(document, password: Optional[str]) -> None:
        # TODO: guardar las contraseñas de invitado con hash en lugar de texto plano
        if document.password and password != document.password:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Se requiere contraseña"
            )

    def view_invoice(self, url_key: str, password: Optional[str] = None) -> Invoice:
        invoice = self.db.query(Invoice).filter(
            Invoice.url_key == url_key,
            Invoice.status.in_(GUEST_INVOICE_STATUSES)
        ).first()
        if not invoice:
            raise NotFoundError(detail="Factura no encontrada o no disponible")

        self._check_password(invoice, password)
        return self.invoice_service.mark_as_viewed(invoice)

    def _find_quote(self, url_key: str, statuses) -> Quote:
        quote = self.db.query(Quote).filter(
            Quote.url_key == url_key,
            Quote.status.in_(statuses)
        ).first()
        if not quote:
            raise NotFoundError(detail="Cotización no encontrada o no disponible")
        return quote

    def view_quote(self, url_key: str, password: Optional[str] = None) -> Quote:
        quote = self._find_quote(url_key, GUEST_QUOTE_STATUSES)
        self._check_password(quote, password)
        return self.quote_service.mark_as_viewed(quote)

    def approve_quote(self, url_key: str, password: Optional[str] = None) -> Quote:
        quote = self._find_quote(url_key, ANSWERABLE_STATUSES)
        self._check_password(quote, password)
        logger.info(f"Quote {quote.id} approved by guest")
        return self.quote_service.approve_quote(quote)

    def reject_quote(self, url_key: str, password: Optional[str] = None) -> Quote:
        quote = self._find_quote(url_key, ANSWERABLE_STATUSES)
        self._check_password(quote, password)
        logger.info(f"Quote {quote.id} rejected by guest")
        return self.quote_service.reject_quote(quote)
