"""
Ledger de pagos de una factura.

Cada alta, edición o eliminación de un pago termina en PaymentLedger.apply,
que recalcula desde cero lo pagado, el saldo y el estado de la factura a
partir de los pagos persistidos. Nunca se parchea el saldo de forma
incremental.
"""
from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from typing import Callable, Optional, TypeVar
from uuid import UUID
import logging

from facturo.core.config import settings
from facturo.common.exceptions import ConcurrencyError
from facturo.modules.invoices.models import Invoice, InvoiceStatus
from facturo.modules.payments.models import Payment
from facturo.modules.taxes.calculator import quantize_money, to_decimal

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PaymentLedger:
    def __init__(self, db: Session):
        self.db = db

    def total_paid(self, invoice_id: UUID):
        paid = self.db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
            Payment.invoice_id == invoice_id
        ).scalar()
        return quantize_money(paid)

    def apply(self, invoice: Optional[Invoice]) -> Optional[Invoice]:
        """
        Sincronizar paid, balance y status de la factura con sus pagos.

        - balance = total - paid
        - balance <= 0 y no es borrador: pasa a pagada
        - balance > 0 y estaba pagada: vuelve a enviada (nunca a vista)

        No hace commit; la escritura queda en la transacción del pago.
        """
        if invoice is None:
            logger.warning("Payment ledger called without invoice; nothing to recompute")
            return None

        # Los pagos pendientes deben estar en la base antes de sumar
        self.db.flush()

        paid = self.total_paid(invoice.id)
        balance = quantize_money(to_decimal(invoice.total) - paid)

        invoice.paid = paid
        invoice.balance = balance

        if balance <= 0 and invoice.status != InvoiceStatus.DRAFT:
            invoice.status = InvoiceStatus.PAID
        elif balance > 0 and invoice.status == InvoiceStatus.PAID:
            invoice.status = InvoiceStatus.SENT

        logger.info(f"Ledger applied to invoice {invoice.id}: paid={paid} balance={balance} status={invoice.status.value}")
        return invoice

    def apply_by_id(self, invoice_id: UUID, tenant_id: UUID) -> Optional[Invoice]:
        """Igual que apply, pero una factura inexistente solo se registra en el log"""
        invoice = self.db.query(Invoice).filter(
            Invoice.id == invoice_id,
            Invoice.tenant_id == tenant_id
        ).first()
        if invoice is None:
            logger.error(f"Invoice {invoice_id} not found while applying payment ledger")
            return None
        return self.apply(invoice)

    def run_with_retry(self, operation: Callable[[], T], description: str) -> T:
        """
        Ejecutar y confirmar una operación que escribe sobre una factura.

        Si otra transacción modificó la factura entre la lectura y la
        escritura (StaleDataError) se deshace todo y se repite la operación
        completa, hasta LEDGER_MAX_RETRIES veces.
        """
        for attempt in range(1, settings.LEDGER_MAX_RETRIES + 1):
            try:
                result = operation()
                self.db.commit()
                return result
            except StaleDataError:
                self.db.rollback()
                logger.warning(f"Concurrent invoice update during {description} (attempt {attempt})")
            except HTTPException:
                self.db.rollback()
                raise
            except Exception as e:
                self.db.rollback()
                logger.error(f"Error during {description}: {e}", exc_info=True)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail=f"Error en {description}: {str(e)}"
                )

        raise ConcurrencyError(detail="La factura fue modificada concurrentemente; intente nuevamente")
