from facturo.database.database import Base
from sqlalchemy import Column, String, Boolean, Text, Uuid
from uuid import uuid4
from facturo.common.mixins import TenantMixin, TimestampMixin


class Client(Base, TenantMixin, TimestampMixin):
    __tablename__ = "clients"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    surname = Column(String(200), nullable=True)
    company = Column(String(200), nullable=True)
    email = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.name, self.surname) if part)
