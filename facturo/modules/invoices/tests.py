"""
Tests para el módulo de facturas

- Creación y política de numeración de borradores
- Envío, solo lectura y eliminación
- Copia y notas crédito
- Ítems y filtros
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from pydantic import ValidationError as PydanticValidationError

from facturo.common.exceptions import ConflictError, ValidationError
from facturo.modules.documents.schemas import LineItemCreate, LineItemUpdate
from facturo.modules.invoices.models import Invoice, InvoiceStatus
from facturo.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceFilters, InvoiceCopy, CreditInvoiceCreate
)
from facturo.modules.invoices.service import InvoiceService
from facturo.modules.payments.models import Payment
from facturo.modules.payments.schemas import PaymentCreate
from facturo.modules.payments.service import PaymentService
from facturo.modules.settings.schemas import BillingSettings

ITEM = {"name": "Consultoría", "quantity": "2", "price": "100"}


@pytest.fixture
def new_invoice(db_session, tenant_id, user_id, sample_client, invoice_series, billing):
    def _new_invoice(items=None, billing_settings=None, **kwargs):
        data = InvoiceCreate(client_id=sample_client.id, items=items or [ITEM], **kwargs)
        return InvoiceService(db_session).create_invoice(data, tenant_id, user_id, billing_settings or billing)
    return _new_invoice


# ===== CREACIÓN =====

class TestInvoiceCreation:

    def test_create_draft_with_number(self, new_invoice):
        invoice = new_invoice()
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.number == "INV-1"
        assert invoice.total == Decimal("200.00")
        assert invoice.paid == Decimal("0.00")
        assert invoice.balance == Decimal("200.00")
        assert invoice.url_key
        assert invoice.sign == 1

    def test_draft_without_number(self, new_invoice, invoice_series, db_session):
        invoice = new_invoice(billing_settings=BillingSettings(generate_invoice_number_for_draft=False))
        assert invoice.number is None

        db_session.refresh(invoice_series)
        assert invoice_series.next_id == 1

    def test_non_draft_always_numbered(self, new_invoice):
        invoice = new_invoice(
            status=InvoiceStatus.SENT,
            billing_settings=BillingSettings(generate_invoice_number_for_draft=False),
        )
        assert invoice.number == "INV-1"

    def test_read_only_on_send(self, new_invoice, tenant_id, db_session):
        invoice = new_invoice(status=InvoiceStatus.SENT, billing_settings=BillingSettings(read_only_on_send=True))
        assert invoice.is_read_only is True

        with pytest.raises(ConflictError):
            InvoiceService(db_session).update_invoice(invoice.id, InvoiceUpdate(terms="Nuevo"), tenant_id)

    def test_due_date_from_settings(self, new_invoice):
        invoice = new_invoice(
            date_created=date(2025, 1, 10),
            billing_settings=BillingSettings(invoices_due_after=15),
        )
        assert invoice.date_due == date(2025, 1, 25)

    def test_item_tax_is_copied(self, new_invoice, make_tax_rate):
        tax_rate = make_tax_rate(percent="19")
        invoice = new_invoice(items=[{**ITEM, "tax_rate_id": str(tax_rate.id)}])

        assert invoice.items[0].tax_rate_percent == Decimal("19")
        assert invoice.item_tax_total == Decimal("38.00")
        assert invoice.total == Decimal("238.00")

    def test_default_tax_rate(self, new_invoice, make_tax_rate):
        tax_rate = make_tax_rate(percent="10")
        invoice = new_invoice(billing_settings=BillingSettings(default_invoice_tax_rate=tax_rate.id))

        assert len(invoice.tax_rates) == 1
        assert invoice.tax_rates[0].amount == Decimal("20.00")
        assert invoice.total == Decimal("220.00")

    def test_missing_default_tax_rate_is_skipped(self, new_invoice):
        from uuid import uuid4
        invoice = new_invoice(billing_settings=BillingSettings(default_invoice_tax_rate=uuid4()))
        assert invoice.tax_rates == []
        assert invoice.total == Decimal("200.00")

    def test_document_discount(self, new_invoice):
        invoice = new_invoice(discount_percent=Decimal("10"), discount_amount=Decimal("5"))
        assert invoice.subtotal == Decimal("200.00")
        assert invoice.total == Decimal("175.00")

    def test_foreign_client(self, db_session, tenant_id, invoice_series):
        from uuid import uuid4
        data = InvoiceCreate(client_id=uuid4(), items=[ITEM])
        with pytest.raises(ValidationError):
            InvoiceService(db_session).create_invoice(data, tenant_id, billing=BillingSettings())
        assert db_session.query(Invoice).count() == 0

    def test_requires_items(self, sample_client):
        with pytest.raises(PydanticValidationError):
            InvoiceCreate(client_id=sample_client.id, items=[])

    def test_cannot_create_paid(self, sample_client):
        with pytest.raises(PydanticValidationError):
            InvoiceCreate(client_id=sample_client.id, items=[ITEM], status=InvoiceStatus.PAID)

    def test_due_before_created(self, sample_client):
        with pytest.raises(PydanticValidationError):
            InvoiceCreate(
                client_id=sample_client.id, items=[ITEM],
                date_created=date(2025, 5, 10), date_due=date(2025, 5, 1),
            )

    def test_numbers_unique_within_series(self, new_invoice):
        numbers = {new_invoice().number for _ in range(3)}
        assert numbers == {"INV-1", "INV-2", "INV-3"}


# ===== ENVÍO Y ACTUALIZACIÓN =====

class TestInvoiceLifecycle:

    def test_send_allocates_number(self, new_invoice, tenant_id, db_session, invoice_series):
        billing = BillingSettings(generate_invoice_number_for_draft=False)
        invoice = new_invoice(billing_settings=billing)

        sent = InvoiceService(db_session).mark_as_sent(invoice.id, tenant_id, billing)
        assert sent.status == InvoiceStatus.SENT
        assert sent.number == "INV-1"

    def test_send_is_idempotent(self, new_invoice, tenant_id, db_session, invoice_series):
        billing = BillingSettings(generate_invoice_number_for_draft=False)
        invoice = new_invoice(billing_settings=billing)
        service = InvoiceService(db_session)

        service.mark_as_sent(invoice.id, tenant_id, billing)
        again = service.mark_as_sent(invoice.id, tenant_id, billing)

        assert again.number == "INV-1"
        db_session.refresh(invoice_series)
        assert invoice_series.next_id == 2

    def test_send_does_not_demote_viewed(self, new_invoice, tenant_id, db_session):
        invoice = new_invoice(status=InvoiceStatus.SENT)
        service = InvoiceService(db_session)
        service.mark_as_viewed(invoice)

        assert service.mark_as_sent(invoice.id, tenant_id).status == InvoiceStatus.VIEWED

    def test_send_read_only(self, new_invoice, tenant_id, db_session):
        billing = BillingSettings(read_only_on_send=True)
        invoice = new_invoice(billing_settings=billing)
        assert invoice.is_read_only is False

        sent = InvoiceService(db_session).mark_as_sent(invoice.id, tenant_id, billing)
        assert sent.is_read_only is True

    def test_viewed_only_from_sent(self, new_invoice, db_session):
        invoice = new_invoice()
        assert InvoiceService(db_session).mark_as_viewed(invoice).status == InvoiceStatus.DRAFT

    def test_update_replaces_items(self, new_invoice, tenant_id, db_session):
        invoice = new_invoice()
        updated = InvoiceService(db_session).update_invoice(
            invoice.id,
            InvoiceUpdate(items=[{"name": "Soporte", "quantity": "1", "price": "50"}], terms="Contado"),
            tenant_id,
        )
        assert [i.name for i in updated.items] == ["Soporte"]
        assert updated.total == Decimal("50.00")
        assert updated.terms == "Contado"

    def test_update_keeps_balance_in_sync(self, new_invoice, tenant_id, db_session):
        invoice = new_invoice(status=InvoiceStatus.SENT)
        PaymentService(db_session).record_payment(
            PaymentCreate(invoice_id=invoice.id, amount=Decimal("50")), tenant_id
        )

        updated = InvoiceService(db_session).update_invoice(
            invoice.id, InvoiceUpdate(discount_amount=Decimal("150")), tenant_id
        )
        assert updated.total == Decimal("50.00")
        assert updated.balance == Decimal("0.00")
        assert updated.status == InvoiceStatus.PAID

    def test_series_locked_after_number(self, new_invoice, tenant_id, db_session, make_series):
        other = make_series(name="Exportación", identifier_format="EXP-{{{id}}}")
        invoice = new_invoice()

        with pytest.raises(ConflictError):
            InvoiceService(db_session).update_invoice(
                invoice.id, InvoiceUpdate(number_series_id=other.id), tenant_id
            )

    def test_series_change_on_unnumbered_draft(self, new_invoice, tenant_id, db_session, make_series):
        other = make_series(name="Exportación", identifier_format="EXP-{{{id}}}")
        billing = BillingSettings(generate_invoice_number_for_draft=False)
        invoice = new_invoice(billing_settings=billing)
        service = InvoiceService(db_session)

        service.update_invoice(invoice.id, InvoiceUpdate(number_series_id=other.id), tenant_id)
        sent = service.mark_as_sent(invoice.id, tenant_id, billing)
        assert sent.number == "EXP-1"


class TestInvoiceDeletion:

    def test_deletion_disabled(self, new_invoice, tenant_id, db_session):
        invoice = new_invoice()
        with pytest.raises(ConflictError):
            InvoiceService(db_session).delete_invoice(invoice.id, tenant_id, BillingSettings())

    def test_delete_cascades_payments(self, new_invoice, tenant_id, db_session):
        invoice = new_invoice(status=InvoiceStatus.SENT)
        PaymentService(db_session).record_payment(
            PaymentCreate(invoice_id=invoice.id, amount=Decimal("20")), tenant_id
        )

        InvoiceService(db_session).delete_invoice(
            invoice.id, tenant_id, BillingSettings(enable_invoice_deletion=True)
        )
        assert db_session.query(Invoice).count() == 0
        assert db_session.query(Payment).count() == 0

    def test_delete_with_credit_notes(self, new_invoice, tenant_id, user_id, db_session):
        invoice = new_invoice(status=InvoiceStatus.SENT)
        service = InvoiceService(db_session)
        service.create_credit_invoice(invoice.id, tenant_id, user_id)

        with pytest.raises(ConflictError):
            service.delete_invoice(invoice.id, tenant_id, BillingSettings(enable_invoice_deletion=True))


# ===== DERIVADOS =====

class TestCopyInvoice:

    def test_copy(self, new_invoice, tenant_id, user_id, db_session, make_tax_rate, billing):
        tax_rate = make_tax_rate(percent="19")
        source = new_invoice(
            items=[{**ITEM, "tax_rate_id": str(tax_rate.id)}, {"name": "Viáticos", "quantity": "1", "price": "30"}],
            tax_rates=[{"tax_rate_id": str(tax_rate.id), "include_item_tax": True}],
            discount_percent=Decimal("5"),
            status=InvoiceStatus.SENT,
            terms="Pago a 30 días",
        )
        PaymentService(db_session).record_payment(
            PaymentCreate(invoice_id=source.id, amount=Decimal("100")), tenant_id
        )

        copy = InvoiceService(db_session).copy_invoice(source.id, tenant_id, user_id, billing=billing)

        db_session.refresh(source)
        assert copy.id != source.id
        assert copy.total == source.total
        assert copy.status == InvoiceStatus.DRAFT
        assert copy.paid == Decimal("0.00")
        assert copy.balance == copy.total
        assert copy.terms == "Pago a 30 días"
        assert copy.number == "INV-2"
        assert copy.date_due == date.today() + timedelta(days=billing.invoices_due_after)
        assert {i.id for i in copy.items}.isdisjoint({i.id for i in source.items})
        assert [i.name for i in copy.items] == [i.name for i in source.items]

    def test_copy_without_draft_number(self, new_invoice, tenant_id, db_session):
        source = new_invoice()
        copy = InvoiceService(db_session).copy_invoice(
            source.id, tenant_id, billing=BillingSettings(generate_invoice_number_for_draft=False)
        )
        assert copy.number is None

    def test_copy_to_other_client(self, new_invoice, tenant_id, db_session):
        from facturo.modules.clients.models import Client
        other = Client(tenant_id=tenant_id, name="Luis", surname="Pérez")
        db_session.add(other)
        db_session.commit()

        source = new_invoice()
        copy = InvoiceService(db_session).copy_invoice(
            source.id, tenant_id, data=InvoiceCopy(client_id=other.id), billing=BillingSettings()
        )
        assert copy.client_id == other.id


class TestCreditInvoice:

    def test_credit_note(self, new_invoice, tenant_id, user_id, db_session, make_tax_rate):
        tax_rate = make_tax_rate(percent="10")
        source = new_invoice(
            items=[{**ITEM, "tax_rate_id": str(tax_rate.id)}],
            status=InvoiceStatus.SENT,
            billing_settings=BillingSettings(generate_invoice_number_for_draft=False),
        )

        credit = InvoiceService(db_session).create_credit_invoice(source.id, tenant_id, user_id)

        assert credit.sign == -1
        assert credit.is_credit_note
        assert credit.status == InvoiceStatus.DRAFT
        assert credit.credit_invoice_parent_id == source.id
        assert credit.number == "INV-2"
        assert credit.date_due == date.today()
        assert credit.items[0].quantity == Decimal("-2")
        assert credit.items[0].total == Decimal("-220.00")
        assert credit.total == Decimal("220.00")
        assert credit.balance == Decimal("220.00")

    def test_credit_note_document_taxes_are_negative(self, new_invoice, tenant_id, db_session, make_tax_rate):
        tax_rate = make_tax_rate(percent="10")
        source = new_invoice(tax_rates=[{"tax_rate_id": str(tax_rate.id)}])

        credit = InvoiceService(db_session).create_credit_invoice(source.id, tenant_id)
        assert credit.tax_rates[0].amount == Decimal("-20.00")
        assert credit.total == Decimal("220.00")

    def test_credit_terms_override(self, new_invoice, tenant_id, db_session):
        source = new_invoice(terms="Original")
        credit = InvoiceService(db_session).create_credit_invoice(
            source.id, tenant_id, data=CreditInvoiceCreate(terms="Devolución")
        )
        assert credit.terms == "Devolución"

    def test_credit_of_credit_note(self, new_invoice, tenant_id, db_session):
        source = new_invoice()
        service = InvoiceService(db_session)
        credit = service.create_credit_invoice(source.id, tenant_id)

        with pytest.raises(ConflictError):
            service.create_credit_invoice(credit.id, tenant_id)

    def test_added_items_are_negative(self, new_invoice, tenant_id, db_session):
        source = new_invoice()
        service = InvoiceService(db_session)
        credit = service.create_credit_invoice(source.id, tenant_id)

        credit = service.add_item(credit.id, LineItemCreate(name="Flete", quantity=Decimal("1"), price=Decimal("10")), tenant_id)
        assert credit.items[-1].quantity == Decimal("-1")
        assert credit.total == Decimal("210.00")

    def test_replaced_items_keep_credit_sign(self, new_invoice, tenant_id, db_session):
        """Reemplazar ítems de una nota crédito no debe dejarlos en positivo"""
        source = new_invoice()
        service = InvoiceService(db_session)
        credit = service.create_credit_invoice(source.id, tenant_id)

        credit = service.update_invoice(
            credit.id, InvoiceUpdate(items=[{**ITEM, "discount_amount": "10"}]), tenant_id
        )
        assert [i.quantity for i in credit.items] == [Decimal("-2")]
        assert [i.discount_amount for i in credit.items] == [Decimal("-10")]
        assert credit.items[0].total == Decimal("-190.00")
        assert credit.total == Decimal("200.00")

        credit = service.add_item(credit.id, LineItemCreate(name="Flete", quantity=Decimal("1"), price=Decimal("10")), tenant_id)
        assert all(i.quantity < 0 for i in credit.items)
        assert credit.total == Decimal("210.00")

    def test_document_discount_keeps_credit_sign(self, new_invoice, tenant_id, db_session):
        source = new_invoice()
        service = InvoiceService(db_session)
        credit = service.create_credit_invoice(source.id, tenant_id)

        credit = service.update_invoice(credit.id, InvoiceUpdate(discount_amount=Decimal("5")), tenant_id)
        assert credit.discount_amount == Decimal("-5")
        assert credit.total == Decimal("195.00")


# ===== ÍTEMS =====

class TestInvoiceItems:

    def test_add_item(self, new_invoice, tenant_id, db_session):
        invoice = new_invoice()
        updated = InvoiceService(db_session).add_item(
            invoice.id, LineItemCreate(name="Hosting", quantity=Decimal("1"), price=Decimal("25")), tenant_id
        )
        assert len(updated.items) == 2
        assert updated.items[-1].order == 1
        assert updated.total == Decimal("225.00")
        assert updated.balance == Decimal("225.00")

    def test_update_item(self, new_invoice, tenant_id, db_session):
        invoice = new_invoice()
        item_id = invoice.items[0].id

        updated = InvoiceService(db_session).update_item(
            invoice.id, item_id, LineItemUpdate(quantity=Decimal("3")), tenant_id
        )
        assert updated.items[0].total == Decimal("300.00")
        assert updated.total == Decimal("300.00")

    def test_delete_item(self, new_invoice, tenant_id, db_session):
        invoice = new_invoice(items=[ITEM, {"name": "Hosting", "quantity": "1", "price": "25"}])
        service = InvoiceService(db_session)

        updated = service.delete_item(invoice.id, invoice.items[1].id, tenant_id)
        assert len(updated.items) == 1
        assert updated.total == Decimal("200.00")

        with pytest.raises(ValidationError):
            service.delete_item(invoice.id, updated.items[0].id, tenant_id)

    def test_items_locked_when_read_only(self, new_invoice, tenant_id, db_session):
        invoice = new_invoice(status=InvoiceStatus.SENT, billing_settings=BillingSettings(read_only_on_send=True))
        with pytest.raises(ConflictError):
            InvoiceService(db_session).add_item(
                invoice.id, LineItemCreate(name="Extra", quantity=Decimal("1"), price=Decimal("1")), tenant_id
            )


# ===== CONSULTAS =====

class TestInvoiceQueries:

    def test_overdue_filter(self, new_invoice, tenant_id, db_session):
        past = date.today() - timedelta(days=40)
        overdue = new_invoice(status=InvoiceStatus.SENT, date_created=past, date_due=past + timedelta(days=30))
        new_invoice(date_created=past, date_due=past + timedelta(days=30))
        new_invoice(status=InvoiceStatus.SENT)

        result = InvoiceService(db_session).get_invoices(tenant_id, InvoiceFilters(overdue=True))
        assert result["total"] == 1
        assert result["invoices"][0].id == overdue.id
        assert overdue.is_overdue
        assert overdue.days_overdue == 10

    def test_status_filter(self, new_invoice, tenant_id, db_session):
        new_invoice()
        new_invoice(status=InvoiceStatus.SENT)
        result = InvoiceService(db_session).get_invoices(tenant_id, InvoiceFilters(status=InvoiceStatus.SENT))
        assert result["total"] == 1

    def test_search_by_client(self, new_invoice, tenant_id, db_session):
        new_invoice()
        service = InvoiceService(db_session)
        assert service.get_invoices(tenant_id, InvoiceFilters(search="Gómez"))["total"] == 1
        assert service.get_invoices(tenant_id, InvoiceFilters(search="Inexistente"))["total"] == 0

    def test_tenant_isolation(self, new_invoice, db_session):
        from uuid import uuid4
        new_invoice()
        assert InvoiceService(db_session).get_invoices(uuid4(), InvoiceFilters())["total"] == 0


# ===== API =====

class TestInvoicesAPI:

    def test_create_send_and_get(self, api_client, auth_headers, sample_client, invoice_series):
        response = api_client.post(
            "/invoices/", json={"client_id": str(sample_client.id), "items": [ITEM]}, headers=auth_headers
        )
        assert response.status_code == 201
        invoice_id = response.json()["id"]
        assert response.json()["status"] == "draft"

        response = api_client.post(f"/invoices/{invoice_id}/send", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "sent"

        response = api_client.get(f"/invoices/{invoice_id}", headers=auth_headers)
        assert response.status_code == 200
        assert Decimal(response.json()["balance"]) == Decimal("200")

    def test_viewer_cannot_create(self, api_client, make_token, sample_client, invoice_series):
        headers = {"Authorization": f"Bearer {make_token('viewer')}"}
        response = api_client.post(
            "/invoices/", json={"client_id": str(sample_client.id), "items": [ITEM]}, headers=headers
        )
        assert response.status_code == 403

    def test_no_series(self, api_client, auth_headers, sample_client):
        response = api_client.post(
            "/invoices/", json={"client_id": str(sample_client.id), "items": [ITEM]}, headers=auth_headers
        )
        assert response.status_code == 400

    def test_list_by_status(self, api_client, auth_headers, new_invoice):
        new_invoice()
        new_invoice(status=InvoiceStatus.SENT)
        response = api_client.get("/invoices/?status=sent", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_credit_requires_admin(self, api_client, make_token, new_invoice):
        invoice = new_invoice()
        headers = {"Authorization": f"Bearer {make_token('seller')}"}
        response = api_client.post(f"/invoices/{invoice.id}/credit", json={}, headers=headers)
        assert response.status_code == 403
