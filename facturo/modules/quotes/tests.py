"""
Tests para el módulo de cotizaciones

- Creación y estados
- Copia
- Conversión a factura
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from facturo.common.exceptions import ConcurrencyError, ConflictError, ValidationError
from facturo.database.database import SessionLocal
from facturo.modules.invoices.models import Invoice, InvoiceStatus
from facturo.modules.invoices.service import InvoiceService
from facturo.modules.number_series.service import NumberSeriesService
from facturo.modules.quotes.models import Quote, QuoteStatus
from facturo.modules.quotes.schemas import QuoteCreate, QuoteUpdate, QuoteFilters, QuoteConvert
from facturo.modules.quotes.service import QuoteService
from facturo.modules.settings.schemas import BillingSettings

ITEM = {"name": "Desarrollo web", "quantity": "5", "price": "100"}


@pytest.fixture
def new_quote(db_session, tenant_id, user_id, sample_client, quote_series, invoice_series, billing):
    def _new_quote(items=None, billing_settings=None, **kwargs):
        data = QuoteCreate(client_id=sample_client.id, items=items or [ITEM], **kwargs)
        return QuoteService(db_session).create_quote(data, tenant_id, user_id, billing_settings or billing)
    return _new_quote


class TestQuoteCreation:

    def test_create(self, new_quote):
        quote = new_quote()
        assert quote.status == QuoteStatus.DRAFT
        assert quote.number == "COT-1"
        assert quote.total == Decimal("500.00")
        assert quote.effective_status == "draft"

    def test_expiry_from_settings(self, new_quote):
        quote = new_quote(date_created=date(2025, 6, 1), billing_settings=BillingSettings(quotes_expire_after=10))
        assert quote.date_expires == date(2025, 6, 11)

    def test_draft_without_number(self, new_quote, db_session, tenant_id):
        billing = BillingSettings(generate_quote_number_for_draft=False)
        quote = new_quote(billing_settings=billing)
        assert quote.number is None

        sent = QuoteService(db_session).mark_as_sent(quote.id, tenant_id)
        assert sent.number == "COT-1"
        assert sent.status == QuoteStatus.SENT

    def test_create_only_draft_or_sent(self, sample_client):
        with pytest.raises(ValueError):
            QuoteCreate(client_id=sample_client.id, items=[ITEM], status=QuoteStatus.APPROVED)


class TestQuoteStatus:

    def test_approve_requires_sent(self, new_quote, db_session):
        quote = new_quote()
        with pytest.raises(ConflictError):
            QuoteService(db_session).approve_quote(quote)

    def test_approve_and_reject(self, new_quote, db_session):
        service = QuoteService(db_session)
        assert service.approve_quote(new_quote(status=QuoteStatus.SENT)).status == QuoteStatus.APPROVED

        viewed = service.mark_as_viewed(new_quote(status=QuoteStatus.SENT))
        assert viewed.status == QuoteStatus.VIEWED
        assert service.reject_quote(viewed).status == QuoteStatus.REJECTED

    def test_cancel(self, new_quote, db_session, tenant_id):
        service = QuoteService(db_session)
        assert service.cancel_quote(new_quote().id, tenant_id).status == QuoteStatus.CANCELLED

        approved = service.approve_quote(new_quote(status=QuoteStatus.SENT))
        with pytest.raises(ConflictError):
            service.cancel_quote(approved.id, tenant_id)

    def test_is_expired(self, new_quote):
        past = date.today() - timedelta(days=20)
        quote = new_quote(status=QuoteStatus.SENT, date_created=past, date_expires=past + timedelta(days=5))
        assert quote.is_expired


class TestCopyQuote:

    def test_copy(self, new_quote, db_session, tenant_id, user_id, billing):
        source = new_quote(status=QuoteStatus.SENT, notes="Incluye hosting", discount_percent=Decimal("10"))
        copy = QuoteService(db_session).copy_quote(source.id, tenant_id, user_id, billing=billing)

        assert copy.id != source.id
        assert copy.status == QuoteStatus.DRAFT
        assert copy.number == "COT-2"
        assert copy.total == source.total == Decimal("450.00")
        assert copy.notes == "Incluye hosting"
        assert copy.date_expires == date.today() + timedelta(days=billing.quotes_expire_after)


class TestConvertQuote:

    def test_convert(self, new_quote, db_session, tenant_id, user_id, billing):
        quote = new_quote(status=QuoteStatus.SENT)
        invoice = QuoteService(db_session).convert_to_invoice(quote.id, tenant_id, user_id, billing=billing)

        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.number == "INV-1"
        assert invoice.quote_id == quote.id
        assert invoice.total == Decimal("500.00")
        assert invoice.paid == Decimal("0.00")
        assert invoice.balance == Decimal("500.00")
        assert invoice.date_due == date.today() + timedelta(days=billing.invoices_due_after)

        db_session.refresh(quote)
        assert quote.status == QuoteStatus.APPROVED
        assert quote.invoice_id == invoice.id
        assert quote.is_converted
        assert quote.effective_status == "converted"

    def test_convert_twice(self, new_quote, db_session, tenant_id):
        quote = new_quote(status=QuoteStatus.SENT)
        service = QuoteService(db_session)
        service.convert_to_invoice(quote.id, tenant_id, billing=BillingSettings())

        with pytest.raises(ConflictError):
            service.convert_to_invoice(quote.id, tenant_id, billing=BillingSettings())
        assert db_session.query(Invoice).count() == 1

    def test_concurrent_conversion_conflicts(self, new_quote, db_session, tenant_id):
        """Dos sesiones que leyeron la cotización sin convertir: solo una gana"""
        quote = new_quote(status=QuoteStatus.SENT)
        other_session = SessionLocal()
        try:
            other_service = QuoteService(other_session)
            assert not other_service.get_quote_by_id(quote.id, tenant_id).is_converted

            winner = QuoteService(db_session).convert_to_invoice(quote.id, tenant_id, billing=BillingSettings())

            with pytest.raises(ConflictError):
                other_service.convert_to_invoice(quote.id, tenant_id, billing=BillingSettings())
        finally:
            other_session.close()

        invoices = db_session.query(Invoice).filter(Invoice.quote_id == quote.id).all()
        assert [i.number for i in invoices] == [winner.number]
        db_session.refresh(quote)
        assert quote.invoice_id == winner.id

    def test_convert_numbers_even_without_draft_numbering(self, new_quote, db_session, tenant_id):
        quote = new_quote()
        invoice = QuoteService(db_session).convert_to_invoice(
            quote.id, tenant_id, billing=BillingSettings(generate_invoice_number_for_draft=False)
        )
        assert invoice.number == "INV-1"

    def test_convert_with_explicit_series(self, new_quote, db_session, tenant_id, make_series):
        export = make_series(name="Exportación", identifier_format="EXP-{{{id}}}")
        quote = new_quote()
        invoice = QuoteService(db_session).convert_to_invoice(
            quote.id, tenant_id, data=QuoteConvert(number_series_id=export.id), billing=BillingSettings()
        )
        assert invoice.number == "EXP-1"

    def test_convert_rejected(self, new_quote, db_session, tenant_id):
        service = QuoteService(db_session)
        quote = service.reject_quote(new_quote(status=QuoteStatus.SENT))
        with pytest.raises(ConflictError):
            service.convert_to_invoice(quote.id, tenant_id, billing=BillingSettings())

    def test_failed_conversion_saves_nothing(self, new_quote, db_session, tenant_id, monkeypatch):
        quote = new_quote(status=QuoteStatus.SENT)

        def fail(self, series, today=None):
            raise ConcurrencyError(detail="sin números")

        monkeypatch.setattr(NumberSeriesService, "allocate", fail)
        with pytest.raises(ConcurrencyError):
            QuoteService(db_session).convert_to_invoice(quote.id, tenant_id, billing=BillingSettings())

        db_session.refresh(quote)
        assert quote.invoice_id is None
        assert quote.status == QuoteStatus.SENT
        assert db_session.query(Invoice).count() == 0

    def test_converted_quote_is_locked(self, new_quote, db_session, tenant_id):
        quote = new_quote(status=QuoteStatus.SENT)
        service = QuoteService(db_session)
        service.convert_to_invoice(quote.id, tenant_id, billing=BillingSettings())

        with pytest.raises(ConflictError):
            service.update_quote(quote.id, QuoteUpdate(notes="Cambio"), tenant_id)
        with pytest.raises(ConflictError):
            service.delete_quote(quote.id, tenant_id)

    def test_deleting_invoice_unlinks_quote(self, new_quote, db_session, tenant_id):
        quote = new_quote(status=QuoteStatus.SENT)
        invoice = QuoteService(db_session).convert_to_invoice(quote.id, tenant_id, billing=BillingSettings())

        InvoiceService(db_session).delete_invoice(invoice.id, tenant_id, BillingSettings(enable_invoice_deletion=True))

        db_session.refresh(quote)
        assert quote.invoice_id is None
        assert quote.effective_status == "approved"


class TestQuoteQueries:

    def test_filter_converted(self, new_quote, db_session, tenant_id):
        service = QuoteService(db_session)
        converted = new_quote(status=QuoteStatus.SENT)
        service.convert_to_invoice(converted.id, tenant_id, billing=BillingSettings())
        service.approve_quote(new_quote(status=QuoteStatus.SENT))
        new_quote()

        result = service.get_quotes(tenant_id, QuoteFilters(status="converted"))
        assert [q.id for q in result["quotes"]] == [converted.id]

        assert service.get_quotes(tenant_id, QuoteFilters(status="approved"))["total"] == 1
        assert service.get_quotes(tenant_id, QuoteFilters())["total"] == 3

    def test_invalid_status(self, db_session, tenant_id):
        with pytest.raises(ValidationError):
            QuoteService(db_session).get_quotes(tenant_id, QuoteFilters(status="archivada"))


class TestQuotesAPI:

    def test_create_and_convert(self, api_client, auth_headers, sample_client, quote_series, invoice_series):
        response = api_client.post(
            "/quotes/", json={"client_id": str(sample_client.id), "items": [ITEM], "status": "sent"},
            headers=auth_headers,
        )
        assert response.status_code == 201
        quote_id = response.json()["id"]

        response = api_client.post(f"/quotes/{quote_id}/convert", json={}, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["status"] == "draft"
        assert response.json()["quote_id"] == quote_id

        response = api_client.get("/quotes/?status=converted", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1

        response = api_client.post(f"/quotes/{quote_id}/convert", json={}, headers=auth_headers)
        assert response.status_code == 409
