"""
Tests para las operaciones compartidas de documentos
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4
from pydantic import ValidationError

from facturo.modules.documents import service as documents
from facturo.modules.documents.schemas import LineItemCreate
from facturo.modules.invoices.models import Invoice, InvoiceItem, InvoiceTaxRate
from facturo.modules.taxes.models import TaxRate


def test_needs_number_on_create():
    assert documents.needs_number_on_create(status_is_draft=True, generate_for_draft=True)
    assert not documents.needs_number_on_create(status_is_draft=True, generate_for_draft=False)
    assert documents.needs_number_on_create(status_is_draft=False, generate_for_draft=False)


def test_offset_date():
    assert documents.offset_date(30, date(2025, 1, 15)) == date(2025, 2, 14)


def test_build_items_snapshots_percent_and_order():
    tax_rate = TaxRate(id=uuid4(), name="IVA", percent=Decimal("19"))
    items = documents.build_items(
        [
            LineItemCreate(name="A", quantity=Decimal("1"), price=Decimal("10"), tax_rate_id=tax_rate.id),
            LineItemCreate(name="B", quantity=Decimal("1"), price=Decimal("5")),
        ],
        {tax_rate.id: tax_rate},
        InvoiceItem,
    )
    assert [i.order for i in items] == [0, 1]
    assert items[0].tax_rate_percent == Decimal("19")
    assert items[1].tax_rate_percent == Decimal("0")


def test_blank_item_name_is_rejected():
    with pytest.raises(ValidationError):
        LineItemCreate(name="   ", quantity=Decimal("1"), price=Decimal("1"))


def test_recalculate_ignores_stale_amounts():
    invoice = Invoice(discount_percent=Decimal("0"), discount_amount=Decimal("0"))
    invoice.items = [
        InvoiceItem(name="A", quantity=Decimal("2"), price=Decimal("50"), discount_amount=Decimal("0"),
                    tax_rate_percent=Decimal("10"), order=0, total=Decimal("999")),
    ]
    invoice.tax_rates = [InvoiceTaxRate(tax_rate_percent=Decimal("5"), include_item_tax=False, amount=Decimal("1"))]

    totals = documents.recalculate(invoice)

    assert invoice.items[0].total == Decimal("110.00")
    assert invoice.tax_rates[0].amount == Decimal("5.00")
    assert invoice.total == totals.total == Decimal("115.00")
