from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload, joinedload
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_, desc
from typing import Optional
from uuid import UUID
from datetime import date
import logging

from facturo.common.exceptions import ConflictError, NotFoundError, ValidationError
from facturo.modules.clients.models import Client
from facturo.modules.clients.service import ClientService
from facturo.modules.documents import service as documents
from facturo.modules.documents.schemas import LineItemCreate, LineItemUpdate, DocumentTaxRateIn
from facturo.modules.invoices.models import Invoice, InvoiceItem, InvoiceTaxRate, InvoiceStatus
from facturo.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceFilters, InvoiceCopy, CreditInvoiceCreate
)
from facturo.modules.number_series.models import DocumentType
from facturo.modules.number_series.service import NumberSeriesService
from facturo.modules.payments.ledger import PaymentLedger
from facturo.modules.payments.models import PaymentMethod
from facturo.modules.settings.schemas import BillingSettings
from facturo.modules.settings.service import SettingsService
from facturo.modules.taxes.service import TaxService
from facturo.modules.taxes.calculator import to_decimal

logger = logging.getLogger(__name__)


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db
        self.series_service = NumberSeriesService(db)
        self.tax_service = TaxService(db)
        self.client_service = ClientService(db)
        self.ledger = PaymentLedger(db)

    def _billing(self, tenant_id: UUID, billing: Optional[BillingSettings]) -> BillingSettings:
        return billing if billing is not None else SettingsService(self.db).get_billing_settings(tenant_id)

    def _validate_payment_method(self, payment_method_id: Optional[UUID], tenant_id: UUID) -> Optional[UUID]:
        if payment_method_id is None:
            return None
        method = self.db.query(PaymentMethod).filter(
            PaymentMethod.id == payment_method_id,
            PaymentMethod.tenant_id == tenant_id
        ).first()
        if not method:
            raise ValidationError(detail="El método de pago no existe o no pertenece a esta empresa")
        return method.id

    def _default_tax_rates(self, billing: BillingSettings, tenant_id: UUID) -> list:
        """Impuesto global por defecto de la empresa, si está configurado y sigue existiendo"""
        if billing.default_invoice_tax_rate is None:
            return []
        try:
            self.tax_service.resolve_tax_rates([billing.default_invoice_tax_rate], tenant_id)
        except ValidationError:
            logger.warning(
                f"Default invoice tax rate {billing.default_invoice_tax_rate} not found for tenant {tenant_id}"
            )
            return []
        return [DocumentTaxRateIn(tax_rate_id=billing.default_invoice_tax_rate)]

    def _ensure_editable(self, invoice: Invoice) -> None:
        if invoice.is_read_only:
            raise ConflictError(detail="La factura es de solo lectura y no puede modificarse")

    @staticmethod
    def _apply_credit_sign(invoice: Invoice, items) -> None:
        """En una nota crédito cantidades y descuentos de ítems van en negativo"""
        if not invoice.is_credit_note:
            return
        for item in items:
            item.quantity = -abs(to_decimal(item.quantity))
            item.discount_amount = -abs(to_decimal(item.discount_amount))

    def create_invoice(
        self,
        invoice_data: InvoiceCreate,
        tenant_id: UUID,
        user_id: Optional[UUID] = None,
        billing: Optional[BillingSettings] = None
    ) -> Invoice:
        """
        Crear nueva factura

        El número se asigna al crear si la empresa numera borradores o si la
        factura no se crea como borrador; en otro caso se asigna al enviarla.
        """
        billing = self._billing(tenant_id, billing)
        try:
            client = self.client_service.require_client(invoice_data.client_id, tenant_id)
            series = self.series_service.select_series(
                tenant_id, DocumentType.INVOICE, invoice_data.number_series_id
            )
            payment_method_id = self._validate_payment_method(invoice_data.payment_method_id, tenant_id)

            tax_rates_data = invoice_data.tax_rates or self._default_tax_rates(billing, tenant_id)
            tax_map = self.tax_service.resolve_tax_rates(
                documents.referenced_tax_rate_ids(invoice_data.items, tax_rates_data), tenant_id
            )

            invoice = Invoice(
                tenant_id=tenant_id,
                client_id=client.id,
                user_id=user_id,
                number_series_id=series.id,
                payment_method_id=payment_method_id,
                status=invoice_data.status,
                date_created=invoice_data.date_created,
                date_due=invoice_data.date_due or documents.offset_date(
                    billing.invoices_due_after, invoice_data.date_created
                ),
                terms=invoice_data.terms,
                password=invoice_data.password,
                discount_amount=invoice_data.discount_amount,
                discount_percent=invoice_data.discount_percent,
                sign=1,
                is_read_only=False,
            )
            invoice.items = documents.build_items(invoice_data.items, tax_map, InvoiceItem)
            invoice.tax_rates = documents.build_tax_rates(tax_rates_data, tax_map, InvoiceTaxRate)
            documents.recalculate(invoice, sign=1)
            invoice.paid = 0
            invoice.balance = invoice.total

            is_draft = invoice.status == InvoiceStatus.DRAFT
            if documents.needs_number_on_create(is_draft, billing.generate_invoice_number_for_draft):
                invoice.number = self.series_service.allocate(series)
            if not is_draft and billing.read_only_on_send:
                invoice.is_read_only = True

            self.db.add(invoice)
            self.ledger.apply(invoice)
            self.db.commit()
            self.db.refresh(invoice)

            logger.info(f"Invoice {invoice.id} ({invoice.number or 'sin número'}) created for tenant {tenant_id}")
            return invoice

        except HTTPException:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.error(f"Integrity error creating invoice: {e}")
            raise ConflictError(detail="El número de factura ya existe en la serie")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating invoice: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando factura: {str(e)}"
            )

    def get_invoices(self, tenant_id: UUID, filters: InvoiceFilters, limit: int = 100, offset: int = 0) -> dict:
        """Obtener lista de facturas con filtros"""
        query = self.db.query(Invoice).options(
            joinedload(Invoice.client)
        ).filter(Invoice.tenant_id == tenant_id)

        if filters.status:
            query = query.filter(Invoice.status == filters.status)

        if filters.client_id:
            query = query.filter(Invoice.client_id == filters.client_id)

        if filters.overdue:
            query = query.filter(
                Invoice.status.in_([InvoiceStatus.SENT, InvoiceStatus.VIEWED]),
                Invoice.date_due < date.today()
            )

        if filters.date_from:
            query = query.filter(Invoice.date_created >= filters.date_from)

        if filters.date_to:
            query = query.filter(Invoice.date_created <= filters.date_to)

        if filters.search:
            query = query.join(Client, Client.id == Invoice.client_id).filter(or_(
                Invoice.number.ilike(f"%{filters.search}%"),
                Invoice.terms.ilike(f"%{filters.search}%"),
                Client.name.ilike(f"%{filters.search}%"),
                Client.company.ilike(f"%{filters.search}%"),
            ))

        total = query.count()
        invoices = query.order_by(
            desc(Invoice.date_created), desc(Invoice.created_at)
        ).offset(offset).limit(limit).all()

        return {"invoices": invoices, "total": total, "limit": limit, "offset": offset}

    def get_invoice_by_id(self, invoice_id: UUID, tenant_id: UUID) -> Invoice:
        """Obtener factura por ID con ítems e impuestos"""
        invoice = self.db.query(Invoice).options(
            selectinload(Invoice.items),
            selectinload(Invoice.tax_rates),
            joinedload(Invoice.client)
        ).filter(
            Invoice.id == invoice_id,
            Invoice.tenant_id == tenant_id
        ).first()

        if not invoice:
            raise NotFoundError(detail="Factura no encontrada")

        return invoice

    def get_invoice_by_url_key(self, url_key: str) -> Invoice:
        invoice = self.db.query(Invoice).filter(Invoice.url_key == url_key).first()
        if not invoice:
            raise NotFoundError(detail="Factura no encontrada")
        return invoice

    # --- Actualización ---

    def _apply_update(
        self,
        invoice_id: UUID,
        data: InvoiceUpdate,
        tenant_id: UUID
    ) -> Invoice:
        invoice = self.get_invoice_by_id(invoice_id, tenant_id)
        self._ensure_editable(invoice)

        changes = data.model_dump(exclude_unset=True, exclude={"items", "tax_rates"})

        if changes.get("client_id") is not None:
            invoice.client_id = self.client_service.require_client(changes.pop("client_id"), tenant_id).id
        else:
            changes.pop("client_id", None)

        series_id = changes.pop("number_series_id", None)
        if series_id is not None and series_id != invoice.number_series_id:
            if invoice.number:
                raise ConflictError(detail="No se puede cambiar la serie de una factura que ya tiene número")
            invoice.number_series_id = self.series_service.select_series(
                tenant_id, DocumentType.INVOICE, series_id
            ).id

        if "payment_method_id" in changes:
            invoice.payment_method_id = self._validate_payment_method(changes.pop("payment_method_id"), tenant_id)

        for field in ("discount_amount", "discount_percent"):
            value = changes.pop(field, None)
            if value is not None:
                if field == "discount_amount" and invoice.is_credit_note:
                    value = -abs(to_decimal(value))
                setattr(invoice, field, value)

        for field, value in changes.items():
            if field in ("date_created", "date_due") and value is None:
                continue
            setattr(invoice, field, value)

        if invoice.date_due < invoice.date_created:
            raise ValidationError(detail="La fecha de vencimiento no puede ser anterior a la fecha de emisión")

        items_data = data.items if "items" in data.model_fields_set and data.items is not None else None
        tax_rates_data = data.tax_rates if "tax_rates" in data.model_fields_set and data.tax_rates is not None else None
        if items_data is not None or tax_rates_data is not None:
            tax_map = self.tax_service.resolve_tax_rates(
                documents.referenced_tax_rate_ids(items_data or [], tax_rates_data or []), tenant_id
            )
            if items_data is not None:
                invoice.items = documents.build_items(items_data, tax_map, InvoiceItem)
                self._apply_credit_sign(invoice, invoice.items)
            if tax_rates_data is not None:
                invoice.tax_rates = documents.build_tax_rates(tax_rates_data, tax_map, InvoiceTaxRate)

        documents.recalculate(invoice, sign=invoice.sign)
        self.ledger.apply(invoice)
        return invoice

    def update_invoice(self, invoice_id: UUID, data: InvoiceUpdate, tenant_id: UUID) -> Invoice:
        """
        Actualizar factura

        Ítems e impuestos enviados reemplazan a los existentes. Los montos se
        recalculan y el saldo se vuelve a sincronizar con los pagos.
        """
        invoice = self.ledger.run_with_retry(
            lambda: self._apply_update(invoice_id, data, tenant_id),
            "actualización de factura"
        )
        self.db.refresh(invoice)
        return invoice

    def delete_invoice(self, invoice_id: UUID, tenant_id: UUID, billing: Optional[BillingSettings] = None) -> None:
        """
        Eliminar factura

        Solo si la empresa habilitó la eliminación y ninguna nota crédito la
        referencia. Sus pagos se eliminan con ella.
        """
        from facturo.modules.quotes.models import Quote

        billing = self._billing(tenant_id, billing)
        if not billing.enable_invoice_deletion:
            raise ConflictError(detail="La eliminación de facturas está deshabilitada para esta empresa")

        invoice = self.get_invoice_by_id(invoice_id, tenant_id)

        credit_notes = self.db.query(Invoice).filter(
            Invoice.credit_invoice_parent_id == invoice.id
        ).count()
        if credit_notes:
            raise ConflictError(detail=f"No se puede eliminar la factura. Tiene {credit_notes} notas crédito asociadas.")

        # La cotización de origen deja de estar convertida
        self.db.query(Quote).filter(
            Quote.tenant_id == tenant_id,
            Quote.invoice_id == invoice.id
        ).update({Quote.invoice_id: None}, synchronize_session="fetch")

        self.db.delete(invoice)
        self.db.commit()
        logger.info(f"Invoice {invoice_id} deleted for tenant {tenant_id}")

    # --- Estados ---

    def mark_as_sent(self, invoice_id: UUID, tenant_id: UUID, billing: Optional[BillingSettings] = None) -> Invoice:
        """
        Marcar factura como enviada

        Desde borrador asigna número si falta. En cualquier otro estado no
        hace nada: reenviar nunca retrocede una factura vista o pagada.
        """
        billing = self._billing(tenant_id, billing)

        def operation():
            invoice = self.get_invoice_by_id(invoice_id, tenant_id)
            if invoice.status != InvoiceStatus.DRAFT:
                return invoice

            if not invoice.number:
                invoice.number = self.series_service.allocate(invoice.number_series)
            invoice.status = InvoiceStatus.SENT
            if billing.read_only_on_send:
                invoice.is_read_only = True
            self.ledger.apply(invoice)
            logger.info(f"Invoice {invoice.id} marked as sent with number {invoice.number}")
            return invoice

        invoice = self.ledger.run_with_retry(operation, "envío de factura")
        self.db.refresh(invoice)
        return invoice

    def mark_as_viewed(self, invoice: Invoice) -> Invoice:
        """Transición enviada -> vista, disparada solo por el acceso de invitado"""
        if invoice.status != InvoiceStatus.SENT:
            return invoice

        def operation():
            self.db.refresh(invoice)
            if invoice.status == InvoiceStatus.SENT:
                invoice.status = InvoiceStatus.VIEWED
            return invoice

        self.ledger.run_with_retry(operation, "lectura de factura")
        self.db.refresh(invoice)
        return invoice

    # --- Derivados ---

    def copy_invoice(
        self,
        invoice_id: UUID,
        tenant_id: UUID,
        user_id: Optional[UUID] = None,
        data: Optional[InvoiceCopy] = None,
        billing: Optional[BillingSettings] = None
    ) -> Invoice:
        """
        Copiar factura

        La copia es un borrador nuevo: ítems e impuestos con identidad nueva,
        sin pagos, con vencimiento desde hoy y número según la política de
        borradores.
        """
        billing = self._billing(tenant_id, billing)
        data = data or InvoiceCopy()
        source = self.get_invoice_by_id(invoice_id, tenant_id)

        try:
            client_id = source.client_id
            if data.client_id is not None:
                client_id = self.client_service.require_client(data.client_id, tenant_id).id

            series = source.number_series
            if data.number_series_id is not None:
                series = self.series_service.select_series(tenant_id, DocumentType.INVOICE, data.number_series_id)

            today = date.today()
            invoice = Invoice(
                tenant_id=tenant_id,
                client_id=client_id,
                user_id=user_id,
                number_series_id=series.id,
                payment_method_id=source.payment_method_id,
                status=InvoiceStatus.DRAFT,
                date_created=today,
                date_due=documents.offset_date(billing.invoices_due_after, today),
                terms=source.terms,
                discount_amount=source.discount_amount,
                discount_percent=source.discount_percent,
                sign=source.sign,
                credit_invoice_parent_id=source.credit_invoice_parent_id,
                is_read_only=False,
            )
            invoice.items = documents.copy_items(source.items, InvoiceItem)
            invoice.tax_rates = documents.copy_tax_rates(source.tax_rates, InvoiceTaxRate)
            documents.recalculate(invoice, sign=invoice.sign)
            invoice.paid = 0
            invoice.balance = invoice.total

            if billing.generate_invoice_number_for_draft:
                invoice.number = self.series_service.allocate(series)

            self.db.add(invoice)
            self.db.commit()
            self.db.refresh(invoice)

            logger.info(f"Invoice {source.id} copied to {invoice.id}")
            return invoice

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error copying invoice {invoice_id}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error copiando factura: {str(e)}"
            )

    def create_credit_invoice(
        self,
        invoice_id: UUID,
        tenant_id: UUID,
        user_id: Optional[UUID] = None,
        data: Optional[CreditInvoiceCreate] = None
    ) -> Invoice:
        """
        Crear nota crédito de una factura

        Cantidades en negativo y signo -1; los impuestos globales se
        recalculan sobre esa base y quedan en negativo. El total se reporta
        en valor absoluto. Siempre recibe número de la serie de la factura
        original, sin importar la política de borradores.
        """
        data = data or CreditInvoiceCreate()
        source = self.get_invoice_by_id(invoice_id, tenant_id)
        if source.is_credit_note:
            raise ConflictError(detail="No se puede crear una nota crédito de otra nota crédito")

        try:
            today = date.today()
            credit = Invoice(
                tenant_id=tenant_id,
                client_id=source.client_id,
                user_id=user_id,
                number_series_id=source.number_series_id,
                status=InvoiceStatus.DRAFT,
                date_created=today,
                date_due=today,
                terms=data.terms if data.terms is not None else source.terms,
                discount_amount=-to_decimal(source.discount_amount),
                discount_percent=source.discount_percent,
                sign=-1,
                credit_invoice_parent_id=source.id,
                is_read_only=False,
            )
            credit.items = [
                InvoiceItem(
                    name=item.name,
                    description=item.description,
                    quantity=-abs(to_decimal(item.quantity)),
                    price=item.price,
                    discount_amount=-to_decimal(item.discount_amount),
                    tax_rate_id=item.tax_rate_id,
                    tax_rate_percent=item.tax_rate_percent,
                    order=item.order,
                )
                for item in source.items
            ]
            credit.tax_rates = documents.copy_tax_rates(source.tax_rates, InvoiceTaxRate)
            documents.recalculate(credit, sign=-1)
            credit.paid = 0
            credit.balance = credit.total
            credit.number = self.series_service.allocate(source.number_series)

            self.db.add(credit)
            self.db.commit()
            self.db.refresh(credit)

            logger.info(f"Credit invoice {credit.id} ({credit.number}) created for invoice {source.id}")
            return credit

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating credit invoice for {invoice_id}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando nota crédito: {str(e)}"
            )

    # --- Ítems ---

    def _get_item(self, invoice: Invoice, item_id: UUID) -> InvoiceItem:
        for item in invoice.items:
            if item.id == item_id:
                return item
        raise NotFoundError(detail="Ítem no encontrado en la factura")

    def add_item(self, invoice_id: UUID, item_data: LineItemCreate, tenant_id: UUID) -> Invoice:
        def operation():
            invoice = self.get_invoice_by_id(invoice_id, tenant_id)
            self._ensure_editable(invoice)
            tax_map = self.tax_service.resolve_tax_rates(
                documents.referenced_tax_rate_ids([item_data]), tenant_id
            )
            item = documents.build_items([item_data], tax_map, InvoiceItem)[0]
            if item_data.order is None:
                item.order = max((i.order for i in invoice.items), default=-1) + 1
            self._apply_credit_sign(invoice, [item])
            invoice.items.append(item)
            documents.recalculate(invoice, sign=invoice.sign)
            self.ledger.apply(invoice)
            return invoice

        invoice = self.ledger.run_with_retry(operation, "alta de ítem")
        self.db.refresh(invoice)
        return invoice

    def update_item(self, invoice_id: UUID, item_id: UUID, item_data: LineItemUpdate, tenant_id: UUID) -> Invoice:
        def operation():
            invoice = self.get_invoice_by_id(invoice_id, tenant_id)
            self._ensure_editable(invoice)
            item = self._get_item(invoice, item_id)

            changes = {k: v for k, v in item_data.model_dump(exclude_unset=True).items() if v is not None}
            if "tax_rate_id" in item_data.model_fields_set:
                tax_rate_id = item_data.tax_rate_id
                if tax_rate_id is None:
                    item.tax_rate_id = None
                    item.tax_rate_percent = 0
                else:
                    tax_rate = self.tax_service.resolve_tax_rates([tax_rate_id], tenant_id)[tax_rate_id]
                    item.tax_rate_id = tax_rate.id
                    item.tax_rate_percent = tax_rate.percent
                changes.pop("tax_rate_id", None)

            for field, value in changes.items():
                setattr(item, field, value)
            self._apply_credit_sign(invoice, [item])

            documents.recalculate(invoice, sign=invoice.sign)
            self.ledger.apply(invoice)
            return invoice

        invoice = self.ledger.run_with_retry(operation, "actualización de ítem")
        self.db.refresh(invoice)
        return invoice

    def delete_item(self, invoice_id: UUID, item_id: UUID, tenant_id: UUID) -> Invoice:
        def operation():
            invoice = self.get_invoice_by_id(invoice_id, tenant_id)
            self._ensure_editable(invoice)
            item = self._get_item(invoice, item_id)
            if len(invoice.items) == 1:
                raise ValidationError(detail="La factura debe tener al menos un ítem")
            invoice.items.remove(item)
            documents.recalculate(invoice, sign=invoice.sign)
            self.ledger.apply(invoice)
            return invoice

        invoice = self.ledger.run_with_retry(operation, "eliminación de ítem")
        self.db.refresh(invoice)
        return invoice
