from facturo.database.database import Base
from sqlalchemy import Column, String, Boolean, Numeric, UniqueConstraint, Uuid
from uuid import uuid4
from facturo.common.mixins import TenantMixin, TimestampMixin


class TaxRate(Base, TenantMixin, TimestampMixin):
    __tablename__ = "tax_rates"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)  # ej. "IVA 19%"
    percent = Column(Numeric(7, 4), nullable=False)  # ej. 19.0000
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_tax_rate_tenant_name"),
    )
