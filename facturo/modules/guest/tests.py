"""
Tests para el acceso de invitado por url_key
"""

import pytest
from decimal import Decimal

from facturo.modules.invoices.models import InvoiceStatus
from facturo.modules.invoices.schemas import InvoiceCreate
from facturo.modules.invoices.service import InvoiceService
from facturo.modules.quotes.models import QuoteStatus
from facturo.modules.quotes.schemas import QuoteCreate
from facturo.modules.quotes.service import QuoteService

ITEM = {"name": "Diseño de logo", "quantity": "1", "price": "300"}


@pytest.fixture
def make_invoice(db_session, tenant_id, user_id, sample_client, invoice_series, billing):
    def _make_invoice(**kwargs):
        data = InvoiceCreate(client_id=sample_client.id, items=[ITEM], **kwargs)
        return InvoiceService(db_session).create_invoice(data, tenant_id, user_id, billing)
    return _make_invoice


@pytest.fixture
def make_quote(db_session, tenant_id, user_id, sample_client, quote_series, billing):
    def _make_quote(**kwargs):
        data = QuoteCreate(client_id=sample_client.id, items=[ITEM], **kwargs)
        return QuoteService(db_session).create_quote(data, tenant_id, user_id, billing)
    return _make_quote


class TestGuestInvoices:

    def test_draft_is_hidden(self, api_client, make_invoice):
        invoice = make_invoice()
        response = api_client.get(f"/guest/invoices/{invoice.url_key}")
        assert response.status_code == 404

    def test_view_marks_as_viewed(self, api_client, db_session, make_invoice):
        invoice = make_invoice(status=InvoiceStatus.SENT)

        response = api_client.get(f"/guest/invoices/{invoice.url_key}")
        assert response.status_code == 200
        assert response.json()["status"] == "viewed"
        assert Decimal(response.json()["total"]) == Decimal("300")

        db_session.refresh(invoice)
        assert invoice.status == InvoiceStatus.VIEWED

    def test_password(self, api_client, make_invoice):
        invoice = make_invoice(status=InvoiceStatus.SENT, password="secreto")

        response = api_client.get(f"/guest/invoices/{invoice.url_key}")
        assert response.status_code == 401

        response = api_client.get(f"/guest/invoices/{invoice.url_key}?password=secreto")
        assert response.status_code == 200

    def test_unknown_key(self, api_client, db_session):
        response = api_client.get("/guest/invoices/no-existe")
        assert response.status_code == 404


class TestGuestQuotes:

    def test_view_and_approve(self, api_client, db_session, make_quote):
        quote = make_quote(status=QuoteStatus.SENT)

        response = api_client.get(f"/guest/quotes/{quote.url_key}")
        assert response.status_code == 200
        assert response.json()["status"] == "viewed"

        response = api_client.post(f"/guest/quotes/{quote.url_key}/approve")
        assert response.status_code == 200
        assert response.json()["status"] == "approved"

    def test_reject(self, api_client, make_quote):
        quote = make_quote(status=QuoteStatus.SENT)
        response = api_client.post(f"/guest/quotes/{quote.url_key}/reject")
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"

    def test_draft_cannot_be_answered(self, api_client, make_quote):
        quote = make_quote()
        assert api_client.get(f"/guest/quotes/{quote.url_key}").status_code == 404
        assert api_client.post(f"/guest/quotes/{quote.url_key}/approve").status_code == 404

    def test_answer_requires_password(self, api_client, make_quote):
        quote = make_quote(status=QuoteStatus.SENT, password="clave")
        assert api_client.post(f"/guest/quotes/{quote.url_key}/approve").status_code == 401
        assert api_client.post(f"/guest/quotes/{quote.url_key}/approve?password=clave").status_code == 200
