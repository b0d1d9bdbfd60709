from facturo.database.database import Base
from sqlalchemy import Column, Date, ForeignKey, Enum, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from facturo.common.mixins import TenantMixin, TimestampMixin
from facturo.modules.documents.models import DocumentColumns, LineItemColumns, DocumentTaxRateColumns
import enum


class QuoteStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Estado derivado: una cotización con factura asociada está convertida
CONVERTED = "converted"


class Quote(Base, TenantMixin, TimestampMixin, DocumentColumns):
    __tablename__ = "quotes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    # References
    client_id = Column(Uuid(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=True)
    number_series_id = Column(Uuid(as_uuid=True), ForeignKey("number_series.id"), nullable=False)
    # Las tablas se referencian mutuamente; la llave se crea aparte
    invoice_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("invoices.id", use_alter=True, name="fk_quotes_invoice_id"),
        nullable=True
    )

    status = Column(Enum(QuoteStatus), nullable=False, default=QuoteStatus.DRAFT)
    date_expires = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)

    # Relationships
    client = relationship("Client")
    number_series = relationship("NumberSeries")
    items = relationship(
        "QuoteItem", back_populates="quote",
        cascade="all, delete-orphan", order_by="QuoteItem.order"
    )
    tax_rates = relationship("QuoteTaxRate", back_populates="quote", cascade="all, delete-orphan")
    invoice = relationship("Invoice", foreign_keys=[invoice_id], post_update=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "number_series_id", "number", name="uq_quote_series_number"),
    )

    @property
    def client_name(self):
        return self.client.full_name if self.client is not None else None

    @property
    def is_converted(self) -> bool:
        return self.invoice_id is not None

    @property
    def is_expired(self) -> bool:
        if self.is_converted or self.status == QuoteStatus.APPROVED or self.date_expires is None:
            return False
        return self.date_expires < date.today()

    @property
    def effective_status(self) -> str:
        return CONVERTED if self.is_converted else self.status.value


class QuoteItem(Base, TimestampMixin, LineItemColumns):
    __tablename__ = "quote_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    quote_id = Column(Uuid(as_uuid=True), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
    tax_rate_id = Column(Uuid(as_uuid=True), ForeignKey("tax_rates.id"), nullable=True)

    quote = relationship("Quote", back_populates="items")


class QuoteTaxRate(Base, TimestampMixin, DocumentTaxRateColumns):
    __tablename__ = "quote_tax_rates"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    quote_id = Column(Uuid(as_uuid=True), ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
    tax_rate_id = Column(Uuid(as_uuid=True), ForeignKey("tax_rates.id"), nullable=True)

    quote = relationship("Quote", back_populates="tax_rates")
