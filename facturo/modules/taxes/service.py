from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Dict, Iterable
from uuid import UUID
import logging

from facturo.common.exceptions import ConflictError, NotFoundError, ValidationError
from facturo.modules.taxes.models import TaxRate
from facturo.modules.taxes.schemas import TaxRateCreate, TaxRateUpdate

logger = logging.getLogger(__name__)


class TaxService:
    def __init__(self, db: Session):
        self.db = db

    def _clear_other_defaults(self, tax_rate: TaxRate) -> None:
        """Solo puede haber un impuesto por defecto por empresa"""
        self.db.query(TaxRate).filter(
            TaxRate.tenant_id == tax_rate.tenant_id,
            TaxRate.id != tax_rate.id,
            TaxRate.is_default.is_(True)
        ).update({TaxRate.is_default: False}, synchronize_session="fetch")

    def create_tax_rate(self, data: TaxRateCreate, tenant_id: UUID) -> TaxRate:
        """Crear un impuesto para la empresa"""
        tax_rate = TaxRate(**data.model_dump(), tenant_id=tenant_id)
        try:
            self.db.add(tax_rate)
            self.db.flush()
            if tax_rate.is_default:
                self._clear_other_defaults(tax_rate)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(detail=f"Ya existe un impuesto con el nombre '{data.name}' en esta empresa")
        self.db.refresh(tax_rate)
        return tax_rate

    def get_tax_rates(self, tenant_id: UUID, only_active: bool = False) -> dict:
        query = self.db.query(TaxRate).filter(TaxRate.tenant_id == tenant_id)
        if only_active:
            query = query.filter(TaxRate.is_active.is_(True))
        tax_rates = query.order_by(TaxRate.name).all()
        return {"tax_rates": tax_rates, "total": len(tax_rates)}

    def get_tax_rate_by_id(self, tax_rate_id: UUID, tenant_id: UUID) -> TaxRate:
        tax_rate = self.db.query(TaxRate).filter(
            TaxRate.id == tax_rate_id,
            TaxRate.tenant_id == tenant_id
        ).first()
        if not tax_rate:
            raise NotFoundError(detail="Impuesto no encontrado")
        return tax_rate

    def resolve_tax_rates(self, tax_rate_ids: Iterable[UUID], tenant_id: UUID) -> Dict[UUID, TaxRate]:
        """
        Cargar los impuestos referenciados por un documento.

        Un id que no pertenece a la empresa es un error de validación.
        """
        ids = {tid for tid in tax_rate_ids if tid is not None}
        if not ids:
            return {}
        tax_rates = self.db.query(TaxRate).filter(
            TaxRate.id.in_(ids),
            TaxRate.tenant_id == tenant_id
        ).all()
        found = {t.id: t for t in tax_rates}
        missing = ids - set(found)
        if missing:
            raise ValidationError(
                detail=f"Impuestos no encontrados: {', '.join(sorted(str(m) for m in missing))}"
            )
        return found

    def update_tax_rate(self, tax_rate_id: UUID, data: TaxRateUpdate, tenant_id: UUID) -> TaxRate:
        """
        Actualizar un impuesto.

        Los ítems ya guardados conservan el porcentaje con el que se guardaron.
        """
        tax_rate = self.get_tax_rate_by_id(tax_rate_id, tenant_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(tax_rate, field, value)
        try:
            if tax_rate.is_default:
                self._clear_other_defaults(tax_rate)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(detail="Ya existe un impuesto con ese nombre en esta empresa")
        self.db.refresh(tax_rate)
        return tax_rate

    def delete_tax_rate(self, tax_rate_id: UUID, tenant_id: UUID) -> None:
        """Eliminar un impuesto que ningún documento usa"""
        from facturo.modules.invoices.models import InvoiceItem, InvoiceTaxRate
        from facturo.modules.quotes.models import QuoteItem, QuoteTaxRate

        tax_rate = self.get_tax_rate_by_id(tax_rate_id, tenant_id)
        in_use = any(
            self.db.query(model.id).filter(model.tax_rate_id == tax_rate.id).first() is not None
            for model in (InvoiceItem, InvoiceTaxRate, QuoteItem, QuoteTaxRate)
        )
        if in_use:
            raise ConflictError(
                detail="El impuesto está en uso por documentos existentes; desactívelo en lugar de eliminarlo"
            )
        self.db.delete(tax_rate)
        self.db.commit()
        logger.info(f"Tax rate {tax_rate_id} deleted for tenant {tenant_id}")
