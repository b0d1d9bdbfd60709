from facturo.database.database import Base
from sqlalchemy import Column, String, UniqueConstraint, JSON, Uuid
from uuid import uuid4
from facturo.common.mixins import TenantMixin, TimestampMixin


class Setting(Base, TenantMixin, TimestampMixin):
    """Configuración clave/valor por empresa"""
    __tablename__ = "settings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    key = Column(String(100), nullable=False)
    value = Column(JSON, nullable=True)
    category = Column(String(30), nullable=False, default="general")

    __table_args__ = (
        UniqueConstraint("tenant_id", "key", name="uq_setting_tenant_key"),
    )
