from facturo.database.database import Base
from sqlalchemy import Column, String, Boolean, Date, ForeignKey, Numeric, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from facturo.common.mixins import TenantMixin, TimestampMixin


class PaymentMethod(Base, TenantMixin, TimestampMixin):
    __tablename__ = "payment_methods"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)  # ej. "Efectivo", "Transferencia"
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_payment_method_tenant_name"),
    )


class Payment(Base, TenantMixin, TimestampMixin):
    __tablename__ = "payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_method_id = Column(Uuid(as_uuid=True), ForeignKey("payment_methods.id"), nullable=True)

    amount = Column(Numeric(15, 2), nullable=False)
    date = Column(Date, nullable=False, default=date.today)
    note = Column(Text, nullable=True)

    # Relationships
    invoice = relationship("Invoice", back_populates="payments")
    payment_method = relationship("PaymentMethod")
