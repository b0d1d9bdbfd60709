"""
Columnas compartidas por facturas y cotizaciones.

Cada tipo de documento tiene sus propias tablas de ítems e impuestos; estos
mixins solo agrupan las columnas que ambos comparten. Las llaves foráneas
viven en los modelos concretos.
"""
from sqlalchemy import Column, Integer, String, Text, Numeric, Boolean, Date, DateTime
from sqlalchemy.sql import func
from datetime import date
from uuid import uuid4


def new_url_key() -> str:
    return uuid4().hex


class LineItemColumns:
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    quantity = Column(Numeric(12, 3), nullable=False)
    price = Column(Numeric(15, 2), nullable=False)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    # Porcentaje copiado del impuesto al guardar; no cambia si el impuesto cambia
    tax_rate_percent = Column(Numeric(7, 4), nullable=False, default=0)
    order = Column(Integer, nullable=False, default=0)

    # Montos calculados
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    discount = Column(Numeric(15, 2), nullable=False, default=0)
    tax = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)


class DocumentTaxRateColumns:
    tax_rate_percent = Column(Numeric(7, 4), nullable=False)
    include_item_tax = Column(Boolean, nullable=False, default=False)
    amount = Column(Numeric(15, 2), nullable=False, default=0)


class DocumentColumns:
    number = Column(String(100), nullable=True)
    url_key = Column(String(32), nullable=False, unique=True, default=new_url_key)
    password = Column(String(100), nullable=True)

    date_created = Column(Date, nullable=False, default=date.today)
    date_modified = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Totales (calculados)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    item_tax_total = Column(Numeric(15, 2), nullable=False, default=0)
    tax_total = Column(Numeric(15, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    discount_percent = Column(Numeric(7, 4), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
