"""
Tests para pagos y el ledger de facturas

Cada escenario verifica que paid, balance y status se recalculen desde los
pagos persistidos.
"""

import pytest
from decimal import Decimal
from uuid import uuid4
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from facturo.common.exceptions import ConcurrencyError, ConflictError, NotFoundError, ValidationError
from facturo.modules.invoices.models import Invoice, InvoiceStatus
from facturo.modules.invoices.schemas import InvoiceCreate
from facturo.modules.invoices.service import InvoiceService
from facturo.modules.payments.ledger import PaymentLedger
from facturo.modules.payments.models import Payment, PaymentMethod
from facturo.modules.payments.schemas import PaymentCreate, PaymentUpdate, PaymentMethodCreate
from facturo.modules.payments.service import PaymentService


@pytest.fixture
def sent_invoice(db_session, tenant_id, user_id, sample_client, invoice_series, billing):
    """Factura enviada por 1000"""
    data = InvoiceCreate(
        client_id=sample_client.id,
        status=InvoiceStatus.SENT,
        items=[{"name": "Licencia anual", "quantity": "1", "price": "1000"}],
    )
    return InvoiceService(db_session).create_invoice(data, tenant_id, user_id, billing)


def pay(db_session, tenant_id, invoice, amount):
    return PaymentService(db_session).record_payment(
        PaymentCreate(invoice_id=invoice.id, amount=Decimal(amount)), tenant_id
    )


class TestPaymentLedger:

    def test_partial_then_full_payment(self, db_session, tenant_id, sent_invoice):
        pay(db_session, tenant_id, sent_invoice, "400")
        db_session.refresh(sent_invoice)
        assert sent_invoice.paid == Decimal("400.00")
        assert sent_invoice.balance == Decimal("600.00")
        assert sent_invoice.status == InvoiceStatus.SENT

        second = pay(db_session, tenant_id, sent_invoice, "600")
        db_session.refresh(sent_invoice)
        assert sent_invoice.balance == Decimal("0.00")
        assert sent_invoice.status == InvoiceStatus.PAID

        invoice = PaymentService(db_session).delete_payment(second.id, tenant_id)
        assert invoice.status == InvoiceStatus.SENT
        assert invoice.balance == Decimal("600.00")

    def test_viewed_paid_invoice_reverts_to_sent(self, db_session, tenant_id, sent_invoice):
        InvoiceService(db_session).mark_as_viewed(sent_invoice)
        payment = pay(db_session, tenant_id, sent_invoice, "1000")
        db_session.refresh(sent_invoice)
        assert sent_invoice.status == InvoiceStatus.PAID

        invoice = PaymentService(db_session).delete_payment(payment.id, tenant_id)
        assert invoice.status == InvoiceStatus.SENT

    def test_overpayment(self, db_session, tenant_id, sent_invoice):
        pay(db_session, tenant_id, sent_invoice, "1200")
        db_session.refresh(sent_invoice)
        assert sent_invoice.balance == Decimal("-200.00")
        assert sent_invoice.status == InvoiceStatus.PAID

    def test_draft_is_never_paid(self, db_session, tenant_id, user_id, sample_client, invoice_series, billing):
        draft = InvoiceService(db_session).create_invoice(
            InvoiceCreate(client_id=sample_client.id, items=[{"name": "Soporte", "quantity": "1", "price": "50"}]),
            tenant_id, user_id, billing,
        )
        pay(db_session, tenant_id, draft, "50")
        db_session.refresh(draft)
        assert draft.balance == Decimal("0.00")
        assert draft.status == InvoiceStatus.DRAFT

    def test_balance_invariant(self, db_session, tenant_id, sent_invoice):
        service = PaymentService(db_session)

        def check():
            db_session.refresh(sent_invoice)
            paid = sum((p.amount for p in db_session.query(Payment).all()), Decimal("0"))
            assert sent_invoice.paid == paid
            assert sent_invoice.balance == sent_invoice.total - paid

        first = pay(db_session, tenant_id, sent_invoice, "150.25")
        check()
        second = pay(db_session, tenant_id, sent_invoice, "300")
        check()
        service.edit_payment(first.id, PaymentUpdate(amount=Decimal("700")), tenant_id)
        check()
        assert sent_invoice.status == InvoiceStatus.PAID
        service.delete_payment(second.id, tenant_id)
        check()
        assert sent_invoice.status == InvoiceStatus.SENT

    def test_apply_without_invoice(self, db_session, tenant_id):
        ledger = PaymentLedger(db_session)
        assert ledger.apply(None) is None
        assert ledger.apply_by_id(uuid4(), tenant_id) is None


class TestRunWithRetry:

    def test_exhausted_retries(self, db_session, monkeypatch):
        from facturo.core.config import settings
        monkeypatch.setattr(settings, "LEDGER_MAX_RETRIES", 3)
        calls = []

        def operation():
            calls.append(1)
            raise StaleDataError("versión desactualizada")

        with pytest.raises(ConcurrencyError):
            PaymentLedger(db_session).run_with_retry(operation, "prueba")
        assert len(calls) == 3

    def test_business_errors_are_not_retried(self, db_session):
        calls = []

        def operation():
            calls.append(1)
            raise ConflictError(detail="conflicto")

        with pytest.raises(ConflictError):
            PaymentLedger(db_session).run_with_retry(operation, "prueba")
        assert len(calls) == 1

    def test_stale_invoice_is_retried(self, db_session, sent_invoice):
        calls = []

        def operation():
            invoice = db_session.get(Invoice, sent_invoice.id)
            if not calls:
                # Otra transacción modifica la factura después de leerla
                db_session.execute(
                    update(Invoice)
                    .where(Invoice.id == invoice.id)
                    .values(version_id=Invoice.version_id + 1)
                    .execution_options(synchronize_session=False)
                )
            calls.append(1)
            invoice.terms = "Actualizada"
            return invoice

        invoice = PaymentLedger(db_session).run_with_retry(operation, "prueba")
        assert len(calls) == 2
        db_session.refresh(invoice)
        assert invoice.terms == "Actualizada"


class TestPaymentService:

    def test_amount_must_be_positive(self, sent_invoice):
        with pytest.raises(PydanticValidationError):
            PaymentCreate(invoice_id=sent_invoice.id, amount=Decimal("0"))

    def test_invoice_of_other_tenant(self, db_session, sent_invoice):
        with pytest.raises(NotFoundError):
            pay(db_session, uuid4(), sent_invoice, "10")
        assert db_session.query(Payment).count() == 0

    def test_payment_method(self, db_session, tenant_id, sent_invoice, payment_method):
        payment = PaymentService(db_session).record_payment(
            PaymentCreate(invoice_id=sent_invoice.id, amount=Decimal("10"), payment_method_id=payment_method.id),
            tenant_id,
        )
        assert payment.payment_method_id == payment_method.id

    def test_inactive_payment_method(self, db_session, tenant_id, sent_invoice):
        method = PaymentMethod(tenant_id=tenant_id, name="Cheque", is_active=False)
        db_session.add(method)
        db_session.commit()

        with pytest.raises(ValidationError):
            PaymentService(db_session).record_payment(
                PaymentCreate(invoice_id=sent_invoice.id, amount=Decimal("10"), payment_method_id=method.id),
                tenant_id,
            )

    def test_duplicate_payment_method(self, db_session, tenant_id, payment_method):
        with pytest.raises(ConflictError):
            PaymentService(db_session).create_payment_method(PaymentMethodCreate(name="Transferencia"), tenant_id)

    def test_invoice_payments(self, db_session, tenant_id, sent_invoice):
        pay(db_session, tenant_id, sent_invoice, "100")
        pay(db_session, tenant_id, sent_invoice, "200")
        result = PaymentService(db_session).get_invoice_payments(sent_invoice.id, tenant_id)
        assert result["total"] == 2


class TestPaymentsAPI:

    def test_record_and_delete(self, api_client, auth_headers, sent_invoice):
        response = api_client.post(
            "/payments/", json={"invoice_id": str(sent_invoice.id), "amount": "1000"}, headers=auth_headers
        )
        assert response.status_code == 201
        body = response.json()
        assert body["invoice"]["status"] == "paid"
        assert Decimal(body["invoice"]["balance"]) == Decimal("0")

        response = api_client.delete(f"/payments/{body['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "sent"

    def test_invoice_payments_endpoint(self, api_client, auth_headers, db_session, tenant_id, sent_invoice):
        pay(db_session, tenant_id, sent_invoice, "250")
        response = api_client.get(f"/invoices/{sent_invoice.id}/payments", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_payment_methods(self, api_client, auth_headers):
        response = api_client.post("/payments/methods", json={"name": "Efectivo"}, headers=auth_headers)
        assert response.status_code == 201

        response = api_client.get("/payments/methods", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_viewer_cannot_pay(self, api_client, make_token, sent_invoice):
        headers = {"Authorization": f"Bearer {make_token('viewer')}"}
        response = api_client.post(
            "/payments/", json={"invoice_id": str(sent_invoice.id), "amount": "10"}, headers=headers
        )
        assert response.status_code == 403
