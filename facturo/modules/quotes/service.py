from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload, joinedload
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_, desc, update
from sqlalchemy.orm.attributes import set_committed_value
from typing import Optional
from uuid import UUID
from datetime import date
import logging

from facturo.common.exceptions import ConflictError, NotFoundError, ValidationError
from facturo.modules.clients.models import Client
from facturo.modules.clients.service import ClientService
from facturo.modules.documents import service as documents
from facturo.modules.invoices.models import Invoice, InvoiceItem, InvoiceTaxRate, InvoiceStatus
from facturo.modules.number_series.models import DocumentType
from facturo.modules.number_series.service import NumberSeriesService
from facturo.modules.quotes.models import Quote, QuoteItem, QuoteTaxRate, QuoteStatus, CONVERTED
from facturo.modules.quotes.schemas import QuoteCreate, QuoteUpdate, QuoteFilters, QuoteCopy, QuoteConvert
from facturo.modules.settings.schemas import BillingSettings
from facturo.modules.settings.service import SettingsService
from facturo.modules.taxes.service import TaxService

logger = logging.getLogger(__name__)

# Estados desde los que el cliente puede responder la cotización
ANSWERABLE_STATUSES = (QuoteStatus.SENT, QuoteStatus.VIEWED)
CANCELLABLE_STATUSES = (QuoteStatus.DRAFT, QuoteStatus.SENT, QuoteStatus.VIEWED)


class QuoteService:
    def __init__(self, db: Session):
        self.db = db
        self.series_service = NumberSeriesService(db)
        self.tax_service = TaxService(db)
        self.client_service = ClientService(db)

    def _billing(self, tenant_id: UUID, billing: Optional[BillingSettings]) -> BillingSettings:
        return billing if billing is not None else SettingsService(self.db).get_billing_settings(tenant_id)

    def _ensure_not_converted(self, quote: Quote) -> None:
        if quote.is_converted:
            raise ConflictError(detail="La cotización ya fue convertida en factura y no puede modificarse")

    def create_quote(
        self,
        quote_data: QuoteCreate,
        tenant_id: UUID,
        user_id: Optional[UUID] = None,
        billing: Optional[BillingSettings] = None
    ) -> Quote:
        """Crear nueva cotización"""
        billing = self._billing(tenant_id, billing)
        try:
            client = self.client_service.require_client(quote_data.client_id, tenant_id)
            series = self.series_service.select_series(
                tenant_id, DocumentType.QUOTATION, quote_data.number_series_id
            )
            tax_map = self.tax_service.resolve_tax_rates(
                documents.referenced_tax_rate_ids(quote_data.items, quote_data.tax_rates), tenant_id
            )

            quote = Quote(
                tenant_id=tenant_id,
                client_id=client.id,
                user_id=user_id,
                number_series_id=series.id,
                status=quote_data.status,
                date_created=quote_data.date_created,
                date_expires=quote_data.date_expires or documents.offset_date(
                    billing.quotes_expire_after, quote_data.date_created
                ),
                notes=quote_data.notes,
                password=quote_data.password,
                discount_amount=quote_data.discount_amount,
                discount_percent=quote_data.discount_percent,
            )
            quote.items = documents.build_items(quote_data.items, tax_map, QuoteItem)
            quote.tax_rates = documents.build_tax_rates(quote_data.tax_rates, tax_map, QuoteTaxRate)
            documents.recalculate(quote)

            is_draft = quote.status == QuoteStatus.DRAFT
            if documents.needs_number_on_create(is_draft, billing.generate_quote_number_for_draft):
                quote.number = self.series_service.allocate(series)

            self.db.add(quote)
            self.db.commit()
            self.db.refresh(quote)

            logger.info(f"Quote {quote.id} ({quote.number or 'sin número'}) created for tenant {tenant_id}")
            return quote

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Integrity error creating quote: {e}")
            raise ConflictError(detail="El número de cotización ya existe en la serie")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating quote: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando cotización: {str(e)}"
            )

    def get_quotes(self, tenant_id: UUID, filters: QuoteFilters, limit: int = 100, offset: int = 0) -> dict:
        """
        Obtener lista de cotizaciones

        El filtro de estado acepta también 'converted' (cotizaciones con factura).
        """
        query = self.db.query(Quote).options(
            joinedload(Quote.client)
        ).filter(Quote.tenant_id == tenant_id)

        if filters.status == CONVERTED:
            query = query.filter(Quote.invoice_id.isnot(None))
        elif filters.status:
            try:
                quote_status = QuoteStatus(filters.status)
            except ValueError:
                raise ValidationError(detail=f"Estado de cotización inválido: {filters.status}")
            query = query.filter(Quote.status == quote_status, Quote.invoice_id.is_(None))

        if filters.client_id:
            query = query.filter(Quote.client_id == filters.client_id)

        if filters.search:
            query = query.join(Client, Client.id == Quote.client_id).filter(or_(
                Quote.number.ilike(f"%{filters.search}%"),
                Quote.notes.ilike(f"%{filters.search}%"),
                Client.name.ilike(f"%{filters.search}%"),
                Client.company.ilike(f"%{filters.search}%"),
            ))

        total = query.count()
        quotes = query.order_by(desc(Quote.date_created), desc(Quote.created_at)).offset(offset).limit(limit).all()
        return {"quotes": quotes, "total": total, "limit": limit, "offset": offset}

    def get_quote_by_id(self, quote_id: UUID, tenant_id: UUID) -> Quote:
        quote = self.db.query(Quote).options(
            selectinload(Quote.items),
            selectinload(Quote.tax_rates),
            joinedload(Quote.client)
        ).filter(
            Quote.id == quote_id,
            Quote.tenant_id == tenant_id
        ).first()
        if not quote:
            raise NotFoundError(detail="Cotización no encontrada")
        return quote

    def get_quote_by_url_key(self, url_key: str) -> Quote:
        quote = self.db.query(Quote).filter(Quote.url_key == url_key).first()
        if not quote:
            raise NotFoundError(detail="Cotización no encontrada")
        return quote

    def update_quote(self, quote_id: UUID, data: QuoteUpdate, tenant_id: UUID) -> Quote:
        """
        Actualizar cotización

        Una cotización convertida en factura ya no se puede modificar.
        """
        quote = self.get_quote_by_id(quote_id, tenant_id)
        self._ensure_not_converted(quote)

        changes = data.model_dump(exclude_unset=True, exclude={"items", "tax_rates"})

        client_id = changes.pop("client_id", None)
        if client_id is not None:
            quote.client_id = self.client_service.require_client(client_id, tenant_id).id

        series_id = changes.pop("number_series_id", None)
        if series_id is not None and series_id != quote.number_series_id:
            if quote.number:
                raise ConflictError(detail="No se puede cambiar la serie de una cotización que ya tiene número")
            quote.number_series_id = self.series_service.select_series(
                tenant_id, DocumentType.QUOTATION, series_id
            ).id

        for field, value in changes.items():
            if field in ("date_created", "date_expires", "discount_amount", "discount_percent") and value is None:
                continue
            setattr(quote, field, value)

        if quote.date_expires < quote.date_created:
            raise ValidationError(detail="La fecha de expiración no puede ser anterior a la fecha de emisión")

        if data.items is not None or data.tax_rates is not None:
            tax_map = self.tax_service.resolve_tax_rates(
                documents.referenced_tax_rate_ids(data.items or [], data.tax_rates or []), tenant_id
            )
            if data.items is not None:
                quote.items = documents.build_items(data.items, tax_map, QuoteItem)
            if data.tax_rates is not None:
                quote.tax_rates = documents.build_tax_rates(data.tax_rates, tax_map, QuoteTaxRate)

        documents.recalculate(quote)
        self.db.commit()
        self.db.refresh(quote)
        return quote

    def delete_quote(self, quote_id: UUID, tenant_id: UUID) -> None:
        quote = self.get_quote_by_id(quote_id, tenant_id)
        if quote.is_converted:
            raise ConflictError(detail="No se puede eliminar una cotización convertida en factura")
        self.db.delete(quote)
        self.db.commit()
        logger.info(f"Quote {quote_id} deleted for tenant {tenant_id}")

    # --- Estados ---

    def mark_as_sent(self, quote_id: UUID, tenant_id: UUID) -> Quote:
        """Desde borrador asigna número si falta; en otro estado no cambia nada"""
        quote = self.get_quote_by_id(quote_id, tenant_id)
        if quote.status != QuoteStatus.DRAFT:
            return quote

        if not quote.number:
            quote.number = self.series_service.allocate(quote.number_series)
        quote.status = QuoteStatus.SENT
        self.db.commit()
        self.db.refresh(quote)
        logger.info(f"Quote {quote.id} marked as sent with number {quote.number}")
        return quote

    def mark_as_viewed(self, quote: Quote) -> Quote:
        """Transición enviada -> vista, disparada solo por el acceso de invitado"""
        if quote.status == QuoteStatus.SENT:
            quote.status = QuoteStatus.VIEWED
            self.db.commit()
            self.db.refresh(quote)
        return quote

    def _answer(self, quote: Quote, new_status: QuoteStatus) -> Quote:
        self._ensure_not_converted(quote)
        if quote.status not in ANSWERABLE_STATUSES:
            raise ConflictError(
                detail=f"Solo se pueden aprobar o rechazar cotizaciones enviadas o vistas (estado actual: {quote.status.value})"
            )
        quote.status = new_status
        self.db.commit()
        self.db.refresh(quote)
        logger.info(f"Quote {quote.id} {new_status.value}")
        return quote

    def approve_quote(self, quote: Quote) -> Quote:
        return self._answer(quote, QuoteStatus.APPROVED)

    def reject_quote(self, quote: Quote) -> Quote:
        return self._answer(quote, QuoteStatus.REJECTED)

    def cancel_quote(self, quote_id: UUID, tenant_id: UUID) -> Quote:
        quote = self.get_quote_by_id(quote_id, tenant_id)
        self._ensure_not_converted(quote)
        if quote.status not in CANCELLABLE_STATUSES:
            raise ConflictError(detail=f"No se puede cancelar una cotización en estado {quote.status.value}")
        quote.status = QuoteStatus.CANCELLED
        self.db.commit()
        self.db.refresh(quote)
        return quote

    # --- Derivados ---

    def copy_quote(
        self,
        quote_id: UUID,
        tenant_id: UUID,
        user_id: Optional[UUID] = None,
        data: Optional[QuoteCopy] = None,
        billing: Optional[BillingSettings] = None
    ) -> Quote:
        """Copiar cotización como borrador nuevo, con expiración desde hoy"""
        billing = self._billing(tenant_id, billing)
        data = data or QuoteCopy()
        source = self.get_quote_by_id(quote_id, tenant_id)

        try:
            client_id = source.client_id
            if data.client_id is not None:
                client_id = self.client_service.require_client(data.client_id, tenant_id).id

            series = source.number_series
            if data.number_series_id is not None:
                series = self.series_service.select_series(tenant_id, DocumentType.QUOTATION, data.number_series_id)

            today = date.today()
            quote = Quote(
                tenant_id=tenant_id,
                client_id=client_id,
                user_id=user_id,
                number_series_id=series.id,
                status=QuoteStatus.DRAFT,
                date_created=today,
                date_expires=documents.offset_date(billing.quotes_expire_after, today),
                notes=source.notes,
                discount_amount=source.discount_amount,
                discount_percent=source.discount_percent,
            )
            quote.items = documents.copy_items(source.items, QuoteItem)
            quote.tax_rates = documents.copy_tax_rates(source.tax_rates, QuoteTaxRate)
            documents.recalculate(quote)

            if billing.generate_quote_number_for_draft:
                quote.number = self.series_service.allocate(series)

            self.db.add(quote)
            self.db.commit()
            self.db.refresh(quote)

            logger.info(f"Quote {source.id} copied to {quote.id}")
            return quote

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error copying quote {quote_id}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error copiando cotización: {str(e)}"
            )

    def convert_to_invoice(
        self,
        quote_id: UUID,
        tenant_id: UUID,
        user_id: Optional[UUID] = None,
        data: Optional[QuoteConvert] = None,
        billing: Optional[BillingSettings] = None
    ) -> Invoice:
        """
        Convertir cotización en factura

        La serie de la factura es independiente de la de la cotización. La
        factura nace como borrador con número, sin pagos y con vencimiento
        desde hoy. En la misma transacción la cotización queda aprobada y
        enlazada a la factura: se guardan ambas o ninguna.
        """
        billing = self._billing(tenant_id, billing)
        data = data or QuoteConvert()
        quote = self.get_quote_by_id(quote_id, tenant_id)

        if quote.is_converted:
            raise ConflictError(detail="La cotización ya fue convertida en factura")
        if quote.status in (QuoteStatus.REJECTED, QuoteStatus.CANCELLED):
            raise ConflictError(detail=f"No se puede convertir una cotización en estado {quote.status.value}")

        try:
            series = self.series_service.select_series(tenant_id, DocumentType.INVOICE, data.number_series_id)

            today = date.today()
            invoice = Invoice(
                tenant_id=tenant_id,
                client_id=quote.client_id,
                user_id=user_id,
                number_series_id=series.id,
                quote_id=quote.id,
                status=InvoiceStatus.DRAFT,
                date_created=today,
                date_due=documents.offset_date(billing.invoices_due_after, today),
                discount_amount=quote.discount_amount,
                discount_percent=quote.discount_percent,
                sign=1,
                is_read_only=False,
            )
            invoice.items = documents.copy_items(quote.items, InvoiceItem)
            invoice.tax_rates = documents.copy_tax_rates(quote.tax_rates, InvoiceTaxRate)
            documents.recalculate(invoice, sign=1)
            invoice.paid = 0
            invoice.balance = invoice.total
            invoice.number = self.series_service.allocate(series)

            self.db.add(invoice)
            self.db.flush()

            # Solo enlaza si ninguna otra conversión lo hizo antes
            result = self.db.execute(
                update(Quote)
                .where(Quote.id == quote.id, Quote.invoice_id.is_(None))
                .values(invoice_id=invoice.id, status=QuoteStatus.APPROVED)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(detail="La cotización ya fue convertida en factura")
            set_committed_value(quote, "invoice_id", invoice.id)
            set_committed_value(quote, "status", QuoteStatus.APPROVED)

            self.db.commit()
            self.db.refresh(invoice)

            logger.info(f"Quote {quote.id} converted to invoice {invoice.id} ({invoice.number})")
            return invoice

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error converting quote {quote_id} to invoice; nothing was saved: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error convirtiendo cotización: {str(e)}"
            )
