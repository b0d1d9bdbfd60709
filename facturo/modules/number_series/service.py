"""
Autoridad de numeración de documentos.

generate_number es una función pura: dado el estado de la serie y la fecha
devuelve el identificador formateado. El avance del contador se hace con un
UPDATE condicionado al valor leído (compare-and-swap), de modo que dos
asignaciones concurrentes nunca emiten el mismo número. La asignación ocurre
dentro de la transacción del documento: si el documento no se guarda, el
contador tampoco avanza.
"""
from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from datetime import date
from typing import Optional
from uuid import UUID
import logging

from facturo.core.config import settings
from facturo.common.exceptions import (
    ConcurrencyError, ConflictError, NoSeriesAvailableError, NotFoundError, ValidationError
)
from facturo.modules.number_series.models import NumberSeries, DocumentType
from facturo.modules.number_series.schemas import NumberSeriesCreate, NumberSeriesUpdate, NextNumberPreview

logger = logging.getLogger(__name__)


def generate_number(series: NumberSeries, today: Optional[date] = None) -> str:
    """Formatear el siguiente identificador de la serie sin modificarla"""
    today = today or date.today()

    sequence = str(series.next_id)
    if series.left_pad and series.left_pad > 0:
        sequence = sequence.zfill(series.left_pad)

    return (
        series.identifier_format
        .replace("{{{id}}}", sequence)
        .replace("{{{year}}}", f"{today.year:04d}")
        .replace("{{{month}}}", f"{today.month:02d}")
    )


class NumberSeriesService:
    def __init__(self, db: Session):
        self.db = db

    # --- Asignación de números ---

    def increment_next_id(self, series: NumberSeries, expected_next_id: Optional[int] = None) -> bool:
        """
        Avanzar el contador en 1 solo si sigue valiendo expected_next_id.

        Returns:
            True si este llamado ganó el incremento, False si otro lo hizo antes
        """
        expected = series.next_id if expected_next_id is None else expected_next_id
        result = self.db.execute(
            update(NumberSeries)
            .where(NumberSeries.id == series.id, NumberSeries.next_id == expected)
            .values(next_id=expected + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        set_committed_value(series, "next_id", expected + 1)
        return True

    def allocate(self, series: NumberSeries, today: Optional[date] = None) -> str:
        """
        Emitir el siguiente número de la serie y avanzar su contador.

        No hace commit: el número queda ligado a la transacción del documento.
        """
        for attempt in range(1, settings.NUMBER_ALLOCATION_MAX_RETRIES + 1):
            self.db.refresh(series, attribute_names=["next_id"])
            current = series.next_id
            number = generate_number(series, today)
            if self.increment_next_id(series, current):
                logger.info(f"Number {number} allocated from series {series.id}")
                return number
            logger.warning(f"Number allocation race on series {series.id} (attempt {attempt})")

        raise ConcurrencyError(detail="No fue posible asignar un número; intente nuevamente")

    def select_series(
        self,
        tenant_id: UUID,
        document_type: DocumentType,
        series_id: Optional[UUID] = None
    ) -> NumberSeries:
        """
        Elegir la serie para un documento.

        Orden: serie explícita, serie por defecto del tipo, cualquier serie
        activa que acepte el tipo, cualquier serie activa.
        """
        if series_id is not None:
            series = self.db.query(NumberSeries).filter(
                NumberSeries.id == series_id,
                NumberSeries.tenant_id == tenant_id
            ).first()
            if not series or not series.is_active:
                raise ValidationError(detail="La serie de numeración no existe o está inactiva")
            return series

        base = self.db.query(NumberSeries).filter(
            NumberSeries.tenant_id == tenant_id,
            NumberSeries.is_active.is_(True)
        )

        candidates = (
            base.filter(NumberSeries.is_default.is_(True), NumberSeries.document_type == document_type),
            base.filter(NumberSeries.is_default.is_(True), NumberSeries.document_type == DocumentType.BOTH),
            base.filter(NumberSeries.document_type.in_([document_type, DocumentType.BOTH])),
            base,
        )
        for query in candidates:
            series = query.order_by(NumberSeries.created_at, NumberSeries.name).first()
            if series is not None:
                return series

        raise NoSeriesAvailableError()

    # --- CRUD ---

    def _clear_other_defaults(self, series: NumberSeries) -> None:
        """Solo una serie por defecto por empresa y tipo de documento"""
        self.db.query(NumberSeries).filter(
            NumberSeries.tenant_id == series.tenant_id,
            NumberSeries.document_type == series.document_type,
            NumberSeries.id != series.id,
            NumberSeries.is_default.is_(True)
        ).update({NumberSeries.is_default: False}, synchronize_session="fetch")

    def create_series(self, data: NumberSeriesCreate, tenant_id: UUID) -> NumberSeries:
        series = NumberSeries(**data.model_dump(), tenant_id=tenant_id)
        self.db.add(series)
        self.db.flush()
        if series.is_default:
            self._clear_other_defaults(series)
        self.db.commit()
        self.db.refresh(series)
        logger.info(f"Number series '{series.name}' created for tenant {tenant_id}")
        return series

    def get_series_list(self, tenant_id: UUID, document_type: Optional[DocumentType] = None) -> dict:
        """Series activas, opcionalmente filtradas por tipo de documento"""
        query = self.db.query(NumberSeries).filter(
            NumberSeries.tenant_id == tenant_id,
            NumberSeries.is_active.is_(True)
        )
        if document_type in (DocumentType.INVOICE, DocumentType.QUOTATION):
            query = query.filter(NumberSeries.document_type.in_([document_type, DocumentType.BOTH]))
        series = query.order_by(NumberSeries.name).all()
        return {"series": series, "total": len(series)}

    def get_series_by_id(self, series_id: UUID, tenant_id: UUID) -> NumberSeries:
        series = self.db.query(NumberSeries).filter(
            NumberSeries.id == series_id,
            NumberSeries.tenant_id == tenant_id
        ).first()
        if not series:
            raise NotFoundError(detail="Serie de numeración no encontrada")
        return series

    def update_series(self, series_id: UUID, data: NumberSeriesUpdate, tenant_id: UUID) -> NumberSeries:
        series = self.get_series_by_id(series_id, tenant_id)
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

        if "next_id" in changes:
            self.db.refresh(series, attribute_names=["next_id"])
            if changes["next_id"] < series.next_id:
                raise ConflictError(detail="El siguiente número no puede ser menor al actual")

        for field, value in changes.items():
            setattr(series, field, value)

        self.db.flush()
        if series.is_default:
            self._clear_other_defaults(series)
        self.db.commit()
        self.db.refresh(series)
        return series

    def delete_series(self, series_id: UUID, tenant_id: UUID) -> None:
        """Eliminar una serie que ningún documento referencia"""
        from facturo.modules.invoices.models import Invoice
        from facturo.modules.quotes.models import Quote

        series = self.get_series_by_id(series_id, tenant_id)
        in_use = (
            self.db.query(Invoice.id).filter(Invoice.number_series_id == series.id).first() is not None
            or self.db.query(Quote.id).filter(Quote.number_series_id == series.id).first() is not None
        )
        if in_use:
            raise ConflictError(detail="La serie tiene documentos asociados; desactívela en lugar de eliminarla")

        self.db.delete(series)
        self.db.commit()
        logger.info(f"Number series {series_id} deleted for tenant {tenant_id}")

    def preview_next_number(self, series_id: UUID, tenant_id: UUID) -> NextNumberPreview:
        """Siguiente número de la serie, sin consumirlo"""
        series = self.get_series_by_id(series_id, tenant_id)
        return NextNumberPreview(
            series_id=series.id,
            next_number=generate_number(series),
            next_id=series.next_id
        )
