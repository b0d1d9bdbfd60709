"""
Operaciones compartidas del agregado de documento (factura o cotización).

Aquí se arman los ítems e impuestos con el porcentaje copiado del impuesto
vigente, se recalculan los montos con la calculadora y se decide cuándo se
asigna número. Los servicios de facturas y cotizaciones solo aportan sus
modelos concretos.
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from facturo.modules.taxes.calculator import (
    DocumentTotals, calculate_totals, resolve_document_tax_amounts, to_decimal
)
from facturo.modules.documents.schemas import LineItemCreate, DocumentTaxRateIn


def build_items(items_data: Iterable[LineItemCreate], tax_rates: Dict, item_model) -> List:
    """Crear los ítems de un documento copiando el porcentaje de cada impuesto"""
    items = []
    for position, data in enumerate(items_data):
        tax_rate = tax_rates.get(data.tax_rate_id) if data.tax_rate_id else None
        items.append(item_model(
            name=data.name,
            description=data.description,
            quantity=data.quantity,
            price=data.price,
            discount_amount=data.discount_amount,
            tax_rate_id=tax_rate.id if tax_rate else None,
            tax_rate_percent=tax_rate.percent if tax_rate else Decimal("0"),
            order=data.order if data.order is not None else position,
        ))
    return items


def build_tax_rates(tax_rates_data: Iterable[DocumentTaxRateIn], tax_rates: Dict, tax_model) -> List:
    return [
        tax_model(
            tax_rate_id=data.tax_rate_id,
            tax_rate_percent=tax_rates[data.tax_rate_id].percent,
            include_item_tax=data.include_item_tax,
        )
        for data in tax_rates_data
    ]


def referenced_tax_rate_ids(items_data: Iterable, tax_rates_data: Iterable = ()) -> List[UUID]:
    ids = [i.tax_rate_id for i in items_data if i.tax_rate_id is not None]
    ids.extend(t.tax_rate_id for t in tax_rates_data)
    return ids


def copy_items(source_items: Iterable, item_model, quantity_sign: int = 1) -> List:
    """Duplicar ítems con identidad nueva, conservando el porcentaje copiado"""
    return [
        item_model(
            name=item.name,
            description=item.description,
            quantity=to_decimal(item.quantity) * quantity_sign,
            price=item.price,
            discount_amount=item.discount_amount,
            tax_rate_id=item.tax_rate_id,
            tax_rate_percent=item.tax_rate_percent,
            order=item.order,
        )
        for item in sorted(source_items, key=lambda i: i.order)
    ]


def copy_tax_rates(source_tax_rates: Iterable, tax_model) -> List:
    return [
        tax_model(
            tax_rate_id=tax_rate.tax_rate_id,
            tax_rate_percent=tax_rate.tax_rate_percent,
            include_item_tax=tax_rate.include_item_tax,
        )
        for tax_rate in source_tax_rates
    ]


def recalculate(document, sign: int = 1, paid=None) -> DocumentTotals:
    """
    Recalcular y asignar todos los montos del documento.

    Los montos de ítems e impuestos globales se derivan siempre de sus
    datos de entrada; nunca se conservan valores calculados anteriormente.
    """
    items = sorted(document.items, key=lambda i: i.order)

    tax_amounts = resolve_document_tax_amounts(
        items, document.tax_rates, document.discount_percent, document.discount_amount
    )
    for tax_rate, amount in zip(document.tax_rates, tax_amounts):
        tax_rate.amount = amount

    totals = calculate_totals(
        items,
        tax_amounts,
        discount_percent=document.discount_percent,
        discount_amount=document.discount_amount,
        sign=sign,
        paid=paid,
    )

    for item, amounts in zip(items, totals.items):
        item.subtotal = amounts.subtotal
        item.discount = amounts.discount
        item.tax = amounts.tax
        item.total = amounts.total

    document.subtotal = totals.subtotal
    document.item_tax_total = totals.item_tax_total
    document.tax_total = totals.tax_total
    document.total = totals.total
    return totals


def needs_number_on_create(status_is_draft: bool, generate_for_draft: bool) -> bool:
    """Un documento creado fuera de borrador siempre recibe número"""
    return generate_for_draft or not status_is_draft


def offset_date(days: int, today: Optional[date] = None) -> date:
    return (today or date.today()) + timedelta(days=days)
