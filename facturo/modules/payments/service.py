from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError
from sqlalchemy import desc
from typing import Optional
from uuid import UUID
import logging

from facturo.common.exceptions import ConflictError, NotFoundError, ValidationError
from facturo.modules.invoices.models import Invoice
from facturo.modules.payments.ledger import PaymentLedger
from facturo.modules.payments.models import Payment, PaymentMethod
from facturo.modules.payments.schemas import (
    PaymentCreate, PaymentUpdate, PaymentFilters, PaymentMethodCreate
)

logger = logging.getLogger(__name__)


class PaymentService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = PaymentLedger(db)

    def _get_invoice(self, invoice_id: UUID, tenant_id: UUID) -> Invoice:
        invoice = self.db.query(Invoice).filter(
            Invoice.id == invoice_id,
            Invoice.tenant_id == tenant_id
        ).first()
        if not invoice:
            raise NotFoundError(detail="Factura no encontrada")
        return invoice

    def _validate_payment_method(self, payment_method_id: Optional[UUID], tenant_id: UUID) -> Optional[UUID]:
        if payment_method_id is None:
            return None
        method = self.db.query(PaymentMethod).filter(
            PaymentMethod.id == payment_method_id,
            PaymentMethod.tenant_id == tenant_id,
            PaymentMethod.is_active.is_(True)
        ).first()
        if not method:
            raise ValidationError(detail="El método de pago no existe o está inactivo")
        return method.id

    # --- Pagos ---

    def record_payment(self, payment_data: PaymentCreate, tenant_id: UUID) -> Payment:
        """Registrar un pago y recalcular la factura"""
        def operation():
            invoice = self._get_invoice(payment_data.invoice_id, tenant_id)
            payment = Payment(
                tenant_id=tenant_id,
                invoice_id=invoice.id,
                payment_method_id=self._validate_payment_method(payment_data.payment_method_id, tenant_id),
                amount=payment_data.amount,
                date=payment_data.date,
                note=payment_data.note,
            )
            self.db.add(payment)
            self.ledger.apply(invoice)
            return payment

        payment = self.ledger.run_with_retry(operation, "registro de pago")
        self.db.refresh(payment)
        logger.info(f"Payment {payment.id} of {payment.amount} recorded on invoice {payment.invoice_id}")
        return payment

    def get_payments(self, tenant_id: UUID, filters: PaymentFilters, limit: int = 100, offset: int = 0) -> dict:
        query = self.db.query(Payment).options(
            joinedload(Payment.invoice)
        ).filter(Payment.tenant_id == tenant_id)

        if filters.invoice_id:
            query = query.filter(Payment.invoice_id == filters.invoice_id)
        if filters.payment_method_id:
            query = query.filter(Payment.payment_method_id == filters.payment_method_id)
        if filters.date_from:
            query = query.filter(Payment.date >= filters.date_from)
        if filters.date_to:
            query = query.filter(Payment.date <= filters.date_to)

        total = query.count()
        payments = query.order_by(desc(Payment.date), desc(Payment.created_at)).offset(offset).limit(limit).all()
        return {"payments": payments, "total": total, "limit": limit, "offset": offset}

    def get_invoice_payments(self, invoice_id: UUID, tenant_id: UUID) -> dict:
        """Pagos de una factura, validando que la factura exista"""
        self._get_invoice(invoice_id, tenant_id)
        return self.get_payments(tenant_id, PaymentFilters(invoice_id=invoice_id), limit=1000)

    def get_payment_by_id(self, payment_id: UUID, tenant_id: UUID) -> Payment:
        payment = self.db.query(Payment).filter(
            Payment.id == payment_id,
            Payment.tenant_id == tenant_id
        ).first()
        if not payment:
            raise NotFoundError(detail="Pago no encontrado")
        return payment

    def edit_payment(self, payment_id: UUID, payment_data: PaymentUpdate, tenant_id: UUID) -> Payment:
        """Editar un pago y recalcular la factura"""
        def operation():
            payment = self.get_payment_by_id(payment_id, tenant_id)
            changes = payment_data.model_dump(exclude_unset=True)

            if "payment_method_id" in changes:
                payment.payment_method_id = self._validate_payment_method(
                    changes.pop("payment_method_id"), tenant_id
                )
            for field, value in changes.items():
                if field in ("amount", "date") and value is None:
                    continue
                setattr(payment, field, value)

            self.ledger.apply_by_id(payment.invoice_id, tenant_id)
            return payment

        payment = self.ledger.run_with_retry(operation, "edición de pago")
        self.db.refresh(payment)
        return payment

    def delete_payment(self, payment_id: UUID, tenant_id: UUID) -> Optional[Invoice]:
        """
        Eliminar un pago y recalcular la factura

        Returns:
            La factura con su saldo actualizado, si todavía existe
        """
        def operation():
            payment = self.get_payment_by_id(payment_id, tenant_id)
            invoice_id = payment.invoice_id
            self.db.delete(payment)
            return self.ledger.apply_by_id(invoice_id, tenant_id)

        invoice = self.ledger.run_with_retry(operation, "eliminación de pago")
        if invoice is not None:
            self.db.refresh(invoice)
        logger.info(f"Payment {payment_id} deleted for tenant {tenant_id}")
        return invoice

    # --- Métodos de pago ---

    def get_payment_methods(self, tenant_id: UUID, only_active: bool = False) -> dict:
        query = self.db.query(PaymentMethod).filter(PaymentMethod.tenant_id == tenant_id)
        if only_active:
            query = query.filter(PaymentMethod.is_active.is_(True))
        methods = query.order_by(PaymentMethod.name).all()
        return {"payment_methods": methods, "total": len(methods)}

    def create_payment_method(self, data: PaymentMethodCreate, tenant_id: UUID) -> PaymentMethod:
        method = PaymentMethod(**data.model_dump(), tenant_id=tenant_id)
        try:
            self.db.add(method)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(detail=f"Ya existe un método de pago con el nombre '{data.name}'")
        self.db.refresh(method)
        return method
