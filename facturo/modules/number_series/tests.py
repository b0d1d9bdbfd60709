"""
Tests para series de numeración

- Formato de identificadores
- Asignación con compare-and-swap
- Selección de serie por tipo de documento
"""

import pytest
from datetime import date
from sqlalchemy import update

from facturo.common.exceptions import (
    ConcurrencyError, ConflictError, NoSeriesAvailableError, ValidationError
)
from facturo.modules.number_series.models import NumberSeries, DocumentType
from facturo.modules.number_series.schemas import NumberSeriesCreate, NumberSeriesUpdate
from facturo.modules.number_series.service import NumberSeriesService, generate_number


class TestGenerateNumber:

    def test_placeholders(self):
        series = NumberSeries(identifier_format="INV-{{{year}}}-{{{id}}}", next_id=7, left_pad=4)
        assert generate_number(series, date(2025, 3, 1)) == "INV-2025-0007"

    def test_month_is_zero_padded(self):
        series = NumberSeries(identifier_format="{{{year}}}/{{{month}}}/{{{id}}}", next_id=12, left_pad=0)
        assert generate_number(series, date(2024, 2, 10)) == "2024/02/12"

    def test_pad_does_not_truncate(self):
        series = NumberSeries(identifier_format="{{{id}}}", next_id=123456, left_pad=3)
        assert generate_number(series) == "123456"

    def test_does_not_modify_series(self):
        series = NumberSeries(identifier_format="{{{id}}}", next_id=5, left_pad=0)
        generate_number(series)
        assert series.next_id == 5


class TestAllocation:

    def test_allocate_advances_counter(self, db_session, make_series):
        series = make_series(identifier_format="INV-{{{year}}}-{{{id}}}", next_id=7, left_pad=4)
        service = NumberSeriesService(db_session)

        number = service.allocate(series, date(2025, 1, 15))
        db_session.commit()

        assert number == "INV-2025-0007"
        db_session.refresh(series)
        assert series.next_id == 8

    def test_consecutive_allocations_are_distinct(self, db_session, make_series):
        series = make_series()
        service = NumberSeriesService(db_session)
        numbers = [service.allocate(series) for _ in range(5)]
        assert numbers == ["INV-1", "INV-2", "INV-3", "INV-4", "INV-5"]

    def test_stale_increment_loses(self, db_session, make_series):
        series = make_series(next_id=1)
        service = NumberSeriesService(db_session)

        # Otro escritor avanza el contador después de nuestra lectura
        db_session.execute(
            update(NumberSeries).where(NumberSeries.id == series.id).values(next_id=2)
            .execution_options(synchronize_session=False)
        )

        assert service.increment_next_id(series, expected_next_id=1) is False
        assert service.allocate(series) == "INV-2"
        assert series.next_id == 3

    def test_retries_exhausted(self, db_session, make_series, monkeypatch):
        series = make_series()
        monkeypatch.setattr(NumberSeriesService, "increment_next_id", lambda self, s, expected=None: False)

        with pytest.raises(ConcurrencyError):
            NumberSeriesService(db_session).allocate(series)

    def test_rollback_releases_number(self, db_session, make_series):
        series = make_series(next_id=3)
        NumberSeriesService(db_session).allocate(series)
        db_session.rollback()

        db_session.refresh(series)
        assert series.next_id == 3


class TestSelectSeries:

    def test_explicit_series(self, db_session, tenant_id, make_series):
        make_series(name="Principal", is_default=True)
        explicit = make_series(name="Exportación")
        selected = NumberSeriesService(db_session).select_series(tenant_id, DocumentType.INVOICE, explicit.id)
        assert selected.id == explicit.id

    def test_explicit_inactive_series(self, db_session, tenant_id, make_series):
        inactive = make_series(is_active=False)
        with pytest.raises(ValidationError):
            NumberSeriesService(db_session).select_series(tenant_id, DocumentType.INVOICE, inactive.id)

    def test_prefers_default_of_type(self, db_session, tenant_id, make_series):
        make_series(name="A Ambos", document_type=DocumentType.BOTH, is_default=True)
        own = make_series(name="B Facturas", document_type=DocumentType.INVOICE, is_default=True)
        selected = NumberSeriesService(db_session).select_series(tenant_id, DocumentType.INVOICE)
        assert selected.id == own.id

    def test_default_both(self, db_session, tenant_id, make_series):
        make_series(name="A Facturas", document_type=DocumentType.INVOICE)
        both = make_series(name="B Ambos", document_type=DocumentType.BOTH, is_default=True)
        selected = NumberSeriesService(db_session).select_series(tenant_id, DocumentType.INVOICE)
        assert selected.id == both.id

    def test_compatible_series_without_default(self, db_session, tenant_id, make_series):
        make_series(name="A Cotizaciones", document_type=DocumentType.QUOTATION)
        compatible = make_series(name="B Facturas", document_type=DocumentType.INVOICE)
        selected = NumberSeriesService(db_session).select_series(tenant_id, DocumentType.INVOICE)
        assert selected.id == compatible.id

    def test_any_active_series(self, db_session, tenant_id, make_series):
        make_series(name="Inactiva", document_type=DocumentType.INVOICE, is_active=False)
        quotes = make_series(name="Cotizaciones", document_type=DocumentType.QUOTATION)
        selected = NumberSeriesService(db_session).select_series(tenant_id, DocumentType.INVOICE)
        assert selected.id == quotes.id

    def test_no_series(self, db_session, tenant_id, make_series):
        from uuid import uuid4
        make_series(tenant=uuid4())
        with pytest.raises(NoSeriesAvailableError):
            NumberSeriesService(db_session).select_series(tenant_id, DocumentType.INVOICE)


class TestSeriesCRUD:

    def test_single_default_per_type(self, db_session, tenant_id):
        service = NumberSeriesService(db_session)
        first = service.create_series(
            NumberSeriesCreate(name="Facturas", document_type=DocumentType.INVOICE, is_default=True), tenant_id
        )
        quotes = service.create_series(
            NumberSeriesCreate(name="Cotizaciones", document_type=DocumentType.QUOTATION, is_default=True), tenant_id
        )
        second = service.create_series(
            NumberSeriesCreate(name="Facturas 2", document_type=DocumentType.INVOICE, is_default=True), tenant_id
        )

        db_session.refresh(first)
        db_session.refresh(quotes)
        assert second.is_default is True
        assert first.is_default is False
        assert quotes.is_default is True

    def test_format_requires_id_placeholder(self):
        with pytest.raises(ValueError):
            NumberSeriesCreate(name="Sin id", identifier_format="INV-{{{year}}}")

    def test_next_id_cannot_decrease(self, db_session, tenant_id, make_series):
        series = make_series(next_id=10)
        service = NumberSeriesService(db_session)

        with pytest.raises(ConflictError):
            service.update_series(series.id, NumberSeriesUpdate(next_id=5), tenant_id)

        updated = service.update_series(series.id, NumberSeriesUpdate(next_id=20), tenant_id)
        assert updated.next_id == 20

    def test_preview_does_not_consume(self, db_session, tenant_id, make_series):
        series = make_series(next_id=4)
        service = NumberSeriesService(db_session)

        assert service.preview_next_number(series.id, tenant_id).next_number == "INV-4"
        assert service.preview_next_number(series.id, tenant_id).next_number == "INV-4"
        db_session.refresh(series)
        assert series.next_id == 4

    def test_delete_series_in_use(self, db_session, tenant_id, user_id, sample_client, invoice_series):
        from facturo.modules.invoices.schemas import InvoiceCreate
        from facturo.modules.invoices.service import InvoiceService

        InvoiceService(db_session).create_invoice(
            InvoiceCreate(client_id=sample_client.id, items=[{"name": "Servicio", "quantity": "1", "price": "10"}]),
            tenant_id, user_id,
        )

        with pytest.raises(ConflictError):
            NumberSeriesService(db_session).delete_series(invoice_series.id, tenant_id)


class TestNumberSeriesAPI:

    def test_filter_by_type(self, api_client, auth_headers, make_series):
        make_series(name="Facturas", document_type=DocumentType.INVOICE)
        make_series(name="Cotizaciones", document_type=DocumentType.QUOTATION)
        make_series(name="General", document_type=DocumentType.BOTH)

        response = api_client.get("/number-series/?type=invoice", headers=auth_headers)
        assert response.status_code == 200
        names = {s["name"] for s in response.json()["series"]}
        assert names == {"Facturas", "General"}

    def test_create_and_preview(self, api_client, auth_headers):
        response = api_client.post(
            "/number-series/",
            json={"name": "Facturas", "document_type": "invoice", "identifier_format": "F-{{{id}}}", "left_pad": 3},
            headers=auth_headers,
        )
        assert response.status_code == 201
        series_id = response.json()["id"]

        response = api_client.get(f"/number-series/{series_id}/preview", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["next_number"] == "F-001"

    def test_not_found(self, api_client, auth_headers):
        from uuid import uuid4
        response = api_client.get(f"/number-series/{uuid4()}", headers=auth_headers)
        assert response.status_code == 404
