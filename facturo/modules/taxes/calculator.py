"""
Cálculo de montos de documentos (facturas y cotizaciones)

Funciones puras: reciben ítems e impuestos ya validados y devuelven los
montos calculados; quien llama se encarga de persistirlos.

Política de redondeo: ROUND_HALF_UP (redondeo comercial) a 2 decimales,
aplicado solo a las cifras de salida, nunca a los pasos intermedios.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Sequence

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value) -> Decimal:
    """Redondear un monto a 2 decimales con redondeo comercial"""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineItemInput:
    """Datos mínimos de un ítem para calcular sus montos"""
    quantity: Decimal
    price: Decimal
    discount_amount: Decimal = ZERO
    tax_rate_percent: Decimal = ZERO


@dataclass(frozen=True)
class DocumentTaxInput:
    tax_rate_percent: Decimal
    include_item_tax: bool = False


@dataclass(frozen=True)
class ItemAmounts:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    item_tax_total: Decimal
    tax_total: Decimal
    discount_amount: Decimal
    discount_percent: Decimal
    total: Decimal
    items: List[ItemAmounts] = field(default_factory=list)
    paid: Optional[Decimal] = None
    balance: Optional[Decimal] = None


@dataclass(frozen=True)
class _RawItem:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal

    @property
    def total(self) -> Decimal:
        return self.subtotal - self.discount + self.tax


def _raw_item(item) -> _RawItem:
    subtotal = to_decimal(item.quantity) * to_decimal(item.price)
    discount = to_decimal(getattr(item, "discount_amount", None))
    taxable_amount = subtotal - discount
    tax = taxable_amount * (to_decimal(getattr(item, "tax_rate_percent", None)) / HUNDRED)
    return _RawItem(subtotal=subtotal, discount=discount, tax=tax)


def calculate_item_amounts(item) -> ItemAmounts:
    """
    Calcular los montos de un ítem

    subtotal = cantidad * precio
    impuesto = (subtotal - descuento) * porcentaje / 100
    total = subtotal - descuento + impuesto
    """
    raw = _raw_item(item)
    return ItemAmounts(
        subtotal=quantize_money(raw.subtotal),
        discount=quantize_money(raw.discount),
        tax=quantize_money(raw.tax),
        total=quantize_money(raw.total),
    )


def _discounted_subtotal(subtotal: Decimal, discount_percent, discount_amount) -> Decimal:
    # El descuento global se aplica solo a nivel de documento
    discounted = subtotal
    percent = to_decimal(discount_percent)
    if percent:
        discounted -= subtotal * (percent / HUNDRED)
    amount = to_decimal(discount_amount)
    if amount:
        discounted -= amount
    return discounted


def resolve_document_tax_amounts(
    items: Sequence,
    tax_rates: Iterable,
    discount_percent=ZERO,
    discount_amount=ZERO,
) -> List[Decimal]:
    """
    Resolver el monto de cada impuesto global del documento

    La base es el subtotal con descuento global; si el impuesto incluye el
    impuesto de los ítems, este se suma a la base.
    """
    raw_items = [_raw_item(item) for item in items]
    subtotal = sum((r.subtotal for r in raw_items), ZERO)
    item_tax_total = sum((r.tax for r in raw_items), ZERO)
    base = _discounted_subtotal(subtotal, discount_percent, discount_amount)

    amounts = []
    for tax_rate in tax_rates:
        tax_base = base + item_tax_total if tax_rate.include_item_tax else base
        amounts.append(quantize_money(tax_base * to_decimal(tax_rate.tax_rate_percent) / HUNDRED))
    return amounts


def calculate_totals(
    items: Sequence,
    tax_amounts: Iterable = (),
    discount_percent=ZERO,
    discount_amount=ZERO,
    sign: int = 1,
    paid=None,
) -> DocumentTotals:
    """
    Calcular los totales de un documento

    Args:
        items: Ítems con quantity, price, discount_amount y tax_rate_percent
        tax_amounts: Montos ya resueltos de los impuestos globales
        discount_percent: Descuento global porcentual
        discount_amount: Descuento global fijo
        sign: 1 para documentos normales, -1 para notas crédito
        paid: Total pagado (solo facturas); si se indica se calcula el saldo

    Returns:
        DocumentTotals con montos por ítem y del documento, en valor absoluto
    """
    raw_items = [_raw_item(item) for item in items]

    subtotal = sum((r.subtotal for r in raw_items), ZERO)
    item_tax_total = sum((r.tax for r in raw_items), ZERO)
    tax_total = sum((to_decimal(a) for a in tax_amounts), ZERO)

    discounted_subtotal = _discounted_subtotal(subtotal, discount_percent, discount_amount)
    total = abs((discounted_subtotal + item_tax_total + tax_total) * sign)
    total = quantize_money(total)

    balance = None
    if paid is not None:
        balance = quantize_money(total - to_decimal(paid))

    return DocumentTotals(
        subtotal=quantize_money(subtotal),
        item_tax_total=quantize_money(item_tax_total),
        tax_total=quantize_money(tax_total),
        discount_amount=quantize_money(discount_amount),
        discount_percent=to_decimal(discount_percent),
        total=total,
        items=[
            ItemAmounts(
                subtotal=quantize_money(r.subtotal),
                discount=quantize_money(r.discount),
                tax=quantize_money(r.tax),
                total=quantize_money(r.total),
            )
            for r in raw_items
        ],
        paid=quantize_money(paid) if paid is not None else None,
        balance=balance,
    )
