from facturo.database.database import Base
from sqlalchemy import Column, Integer, Boolean, Date, ForeignKey, Numeric, Enum, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from facturo.common.mixins import TenantMixin, TimestampMixin
from facturo.modules.documents.models import DocumentColumns, LineItemColumns, DocumentTaxRateColumns
import enum


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"      # Borrador, puede no tener número
    SENT = "sent"        # Enviada al cliente
    VIEWED = "viewed"    # Vista por el cliente desde el enlace público
    PAID = "paid"        # Saldo en cero; solo la asigna el ledger de pagos


class Invoice(Base, TenantMixin, TimestampMixin, DocumentColumns):
    __tablename__ = "invoices"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    # References
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=True)
    number_series_id = Column(Uuid(as_uuid=True), ForeignKey("number_series.id"), nullable=False)
    payment_method_id = Column(Uuid(as_uuid=True), ForeignKey("payment_methods.id"), nullable=True)
    credit_invoice_parent_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id"), nullable=True, index=True)
    quote_id = Column(Uuid(as_uuid=True), ForeignKey("quotes.id"), nullable=True)

    status = Column(Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT)
    date_due = Column(Date, nullable=False)
    terms = Column(Text, nullable=True)
    is_read_only = Column(Boolean, nullable=False, default=False)
    # 1 factura normal, -1 nota crédito
    sign = Column(Integer, nullable=False, default=1)

    paid = Column(Numeric(15, 2), nullable=False, default=0)
    balance = Column(Numeric(15, 2), nullable=False, default=0)

    # Control de concurrencia optimista para el ledger de pagos
    version_id = Column(Integer, nullable=False)

    # Relationships
    client = relationship("Client")
    number_series = relationship("NumberSeries")
    payment_method = relationship("PaymentMethod")
    items = relationship(
        "InvoiceItem", back_populates="invoice",
        cascade="all, delete-orphan", order_by="InvoiceItem.order"
    )
    tax_rates = relationship("InvoiceTaxRate", back_populates="invoice", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="invoice", cascade="all, delete-orphan")
    credit_parent = relationship("Invoice", remote_side=[id], back_populates="credit_notes")
    credit_notes = relationship("Invoice", back_populates="credit_parent")
    quote = relationship("Quote", foreign_keys=[quote_id])

    __table_args__ = (
        UniqueConstraint("tenant_id", "number_series_id", "number", name="uq_invoice_series_number"),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def client_name(self):
        return self.client.full_name if self.client is not None else None

    @property
    def is_overdue(self) -> bool:
        """Vencida: enviada o vista, sin pagar, con fecha de vencimiento pasada"""
        if self.status in (InvoiceStatus.DRAFT, InvoiceStatus.PAID) or self.date_due is None:
            return False
        return self.date_due < date.today()

    @property
    def days_overdue(self) -> int:
        if not self.is_overdue:
            return 0
        return (date.today() - self.date_due).days

    @property
    def is_credit_note(self) -> bool:
        return self.sign == -1


class InvoiceItem(Base, TimestampMixin, LineItemColumns):
    __tablename__ = "invoice_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    tax_rate_id = Column(Uuid(as_uuid=True), ForeignKey("tax_rates.id"), nullable=True)

    invoice = relationship("Invoice", back_populates="items")


class InvoiceTaxRate(Base, TimestampMixin, DocumentTaxRateColumns):
    """Impuesto global de la factura, con el porcentaje copiado al guardar"""
    __tablename__ = "invoice_tax_rates"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    tax_rate_id = Column(Uuid(as_uuid=True), ForeignKey("tax_rates.id"), nullable=True)

    invoice = relationship("Invoice", back_populates="tax_rates")
