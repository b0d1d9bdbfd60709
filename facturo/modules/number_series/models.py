from facturo.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, Enum, CheckConstraint, Uuid
from uuid import uuid4
from facturo.common.mixins import TenantMixin, TimestampMixin
import enum


class DocumentType(str, enum.Enum):
    INVOICE = "invoice"
    QUOTATION = "quotation"
    BOTH = "both"


class NumberSeries(Base, TenantMixin, TimestampMixin):
    """
    Serie de numeración por empresa.

    El contador next_id solo lo modifica NumberSeriesService mediante
    compare-and-swap; nunca se reutiliza un valor emitido.
    """
    __tablename__ = "number_series"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    document_type = Column(Enum(DocumentType), nullable=False, default=DocumentType.BOTH)
    # Placeholders: {{{id}}}, {{{year}}}, {{{month}}}
    identifier_format = Column(String(100), nullable=False, default="{{{id}}}")
    next_id = Column(Integer, nullable=False, default=1)
    left_pad = Column(Integer, nullable=False, default=0)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("next_id >= 1", name="ck_number_series_next_id"),
        CheckConstraint("left_pad >= 0 AND left_pad <= 10", name="ck_number_series_left_pad"),
    )
