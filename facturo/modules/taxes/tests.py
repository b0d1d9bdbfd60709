"""
Tests para el módulo de impuestos

- Calculadora de montos (ítems, descuentos, impuestos globales, notas crédito)
- Política de redondeo comercial
- CRUD de impuestos y unicidad del impuesto por defecto
"""

import pytest
from decimal import Decimal

from facturo.common.exceptions import ConflictError, ValidationError
from facturo.modules.taxes.calculator import (
    LineItemInput, DocumentTaxInput, calculate_item_amounts, calculate_totals,
    resolve_document_tax_amounts, quantize_money
)
from facturo.modules.taxes.models import TaxRate
from facturo.modules.taxes.schemas import TaxRateCreate, TaxRateUpdate
from facturo.modules.taxes.service import TaxService


def item(quantity, price, discount="0", tax="0"):
    return LineItemInput(
        quantity=Decimal(quantity),
        price=Decimal(price),
        discount_amount=Decimal(discount),
        tax_rate_percent=Decimal(tax),
    )


# ===== CALCULADORA =====

class TestItemAmounts:

    def test_item_amounts(self):
        amounts = calculate_item_amounts(item("3", "10.50", discount="1.50", tax="19"))
        assert amounts.subtotal == Decimal("31.50")
        assert amounts.discount == Decimal("1.50")
        assert amounts.tax == Decimal("5.70")
        assert amounts.total == Decimal("35.70")

    @pytest.mark.parametrize("quantity,price,discount,tax", [
        ("1", "100", "0", "0"),
        ("2.5", "19.99", "3", "19"),
        ("7", "0.33", "0.10", "8"),
        ("12.125", "4.10", "1.01", "5.5"),
    ])
    def test_item_total_matches_formula(self, quantity, price, discount, tax):
        amounts = calculate_item_amounts(item(quantity, price, discount, tax))
        expected = (Decimal(quantity) * Decimal(price) - Decimal(discount)) * (1 + Decimal(tax) / 100)
        assert abs(amounts.total - expected) <= Decimal("0.01")

    def test_rounding_is_half_up(self):
        # 0.05 * 50% = 0.025 -> 0.03 (redondeo bancario daría 0.02)
        amounts = calculate_item_amounts(item("1", "0.05", tax="50"))
        assert amounts.tax == Decimal("0.03")
        assert amounts.total == Decimal("0.08")

    def test_rounding_only_on_output(self):
        # Tres ítems de 0.333 suman 0.999 -> 1.00; redondear cada uno daría 0.99
        totals = calculate_totals([item("1", "0.333")] * 3)
        assert totals.subtotal == Decimal("1.00")
        assert totals.total == Decimal("1.00")


class TestDocumentTotals:

    def test_document_discount_is_not_spread_per_item(self):
        items = [item("2", "100", tax="10")]
        totals = calculate_totals(items, discount_percent=Decimal("10"), discount_amount=Decimal("5"))

        # El impuesto del ítem se calcula sobre 200, no sobre el subtotal con descuento
        assert totals.subtotal == Decimal("200.00")
        assert totals.item_tax_total == Decimal("20.00")
        assert totals.items[0].tax == Decimal("20.00")
        assert totals.total == Decimal("195.00")

    def test_document_tax_base(self):
        items = [item("1", "100", tax="10")]
        plain, with_item_tax = resolve_document_tax_amounts(
            items,
            [DocumentTaxInput(Decimal("5")), DocumentTaxInput(Decimal("5"), include_item_tax=True)],
        )
        assert plain == Decimal("5.00")
        assert with_item_tax == Decimal("5.50")

    def test_document_tax_uses_discounted_subtotal(self):
        items = [item("1", "200")]
        amounts = resolve_document_tax_amounts(items, [DocumentTaxInput(Decimal("10"))], discount_percent=Decimal("50"))
        assert amounts == [Decimal("10.00")]

    def test_totals_sum_resolved_document_taxes(self):
        totals = calculate_totals([item("1", "100")], tax_amounts=[Decimal("5.00"), Decimal("2.50")])
        assert totals.tax_total == Decimal("7.50")
        assert totals.total == Decimal("107.50")

    def test_credit_note_total_is_absolute(self):
        totals = calculate_totals([item("-2", "100", tax="10")], sign=-1)
        assert totals.items[0].total == Decimal("-220.00")
        assert totals.total == Decimal("220.00")

    def test_balance(self):
        totals = calculate_totals([item("1", "1000")], paid=Decimal("400"))
        assert totals.paid == Decimal("400.00")
        assert totals.balance == Decimal("600.00")

    def test_balance_not_computed_without_paid(self):
        assert calculate_totals([item("1", "10")]).balance is None

    def test_empty_document(self):
        totals = calculate_totals([])
        assert totals.total == Decimal("0.00")
        assert totals.items == []

    def test_quantize_money(self):
        assert quantize_money("2.675") == Decimal("2.68")
        assert quantize_money(None) == Decimal("0.00")


# ===== SERVICIO =====

class TestTaxService:

    def test_create_and_list(self, db_session, tenant_id):
        service = TaxService(db_session)
        service.create_tax_rate(TaxRateCreate(name="IVA 19%", percent=Decimal("19")), tenant_id)
        service.create_tax_rate(TaxRateCreate(name="IVA 5%", percent=Decimal("5"), is_active=False), tenant_id)

        assert service.get_tax_rates(tenant_id)["total"] == 2
        assert service.get_tax_rates(tenant_id, only_active=True)["total"] == 1

    def test_single_default_per_tenant(self, db_session, tenant_id):
        service = TaxService(db_session)
        first = service.create_tax_rate(TaxRateCreate(name="IVA 19%", percent=Decimal("19"), is_default=True), tenant_id)
        second = service.create_tax_rate(TaxRateCreate(name="IVA 5%", percent=Decimal("5"), is_default=True), tenant_id)

        db_session.refresh(first)
        assert second.is_default is True
        assert first.is_default is False

    def test_duplicate_name_conflict(self, db_session, tenant_id):
        service = TaxService(db_session)
        service.create_tax_rate(TaxRateCreate(name="IVA 19%", percent=Decimal("19")), tenant_id)
        with pytest.raises(ConflictError):
            service.create_tax_rate(TaxRateCreate(name="IVA 19%", percent=Decimal("16")), tenant_id)

    def test_resolve_rejects_foreign_tax_rate(self, db_session, tenant_id, make_tax_rate):
        from uuid import uuid4
        own = make_tax_rate()
        other = TaxRate(tenant_id=uuid4(), name="Ajeno", percent=Decimal("10"))
        db_session.add(other)
        db_session.commit()

        service = TaxService(db_session)
        assert set(service.resolve_tax_rates([own.id], tenant_id)) == {own.id}
        with pytest.raises(ValidationError):
            service.resolve_tax_rates([own.id, other.id], tenant_id)

    def test_update_does_not_touch_saved_items(
        self, db_session, tenant_id, user_id, sample_client, invoice_series, make_tax_rate
    ):
        from facturo.modules.invoices.schemas import InvoiceCreate
        from facturo.modules.invoices.service import InvoiceService

        tax_rate = make_tax_rate(percent="19")
        invoice = InvoiceService(db_session).create_invoice(
            InvoiceCreate(
                client_id=sample_client.id,
                items=[{"name": "Servicio", "quantity": "1", "price": "100", "tax_rate_id": str(tax_rate.id)}],
            ),
            tenant_id, user_id,
        )

        TaxService(db_session).update_tax_rate(tax_rate.id, TaxRateUpdate(percent=Decimal("5")), tenant_id)

        db_session.refresh(invoice)
        assert invoice.items[0].tax_rate_percent == Decimal("19")
        assert invoice.total == Decimal("119.00")

    def test_delete_in_use_conflict(self, db_session, tenant_id, user_id, sample_client, invoice_series, make_tax_rate):
        from facturo.modules.invoices.schemas import InvoiceCreate
        from facturo.modules.invoices.service import InvoiceService

        tax_rate = make_tax_rate()
        InvoiceService(db_session).create_invoice(
            InvoiceCreate(
                client_id=sample_client.id,
                items=[{"name": "Servicio", "quantity": "1", "price": "100"}],
                tax_rates=[{"tax_rate_id": str(tax_rate.id)}],
            ),
            tenant_id, user_id,
        )

        with pytest.raises(ConflictError):
            TaxService(db_session).delete_tax_rate(tax_rate.id, tenant_id)

    def test_delete_unused(self, db_session, tenant_id, make_tax_rate):
        tax_rate = make_tax_rate()
        TaxService(db_session).delete_tax_rate(tax_rate.id, tenant_id)
        assert db_session.query(TaxRate).count() == 0


# ===== API =====

class TestTaxRatesAPI:

    def test_create_requires_admin(self, api_client, make_token):
        headers = {"Authorization": f"Bearer {make_token('seller')}"}
        response = api_client.post("/tax-rates/", json={"name": "IVA", "percent": "19"}, headers=headers)
        assert response.status_code == 403

    def test_create_and_get(self, api_client, auth_headers):
        response = api_client.post("/tax-rates/", json={"name": "IVA 19%", "percent": "19"}, headers=auth_headers)
        assert response.status_code == 201
        tax_rate_id = response.json()["id"]

        response = api_client.get(f"/tax-rates/{tax_rate_id}", headers=auth_headers)
        assert response.status_code == 200
        assert Decimal(response.json()["percent"]) == Decimal("19")

    def test_percent_out_of_range(self, api_client, auth_headers):
        response = api_client.post("/tax-rates/", json={"name": "IVA", "percent": "101"}, headers=auth_headers)
        assert response.status_code == 422

    def test_requires_token(self, api_client):
        response = api_client.get("/tax-rates/")
        assert response.status_code in (401, 403)
