from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from uuid import UUID

from facturo.database.database import get_db
from facturo.modules.auth.dependencies import AuthDependencies
from facturo.modules.auth.schemas import AuthContext
from facturo.modules.taxes.service import TaxService
from facturo.modules.taxes.schemas import TaxRateCreate, TaxRateUpdate, TaxRateOut, TaxRateList

taxes_router = APIRouter(prefix="/tax-rates", tags=["Taxes"])


@taxes_router.get("/", response_model=TaxRateList)
def list_tax_rates(
    only_active: bool = Query(False, description="Solo impuestos activos"),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Listar impuestos de la empresa"""
    return TaxService(db).get_tax_rates(auth_context.tenant_id, only_active)


@taxes_router.post("/", response_model=TaxRateOut, status_code=status.HTTP_201_CREATED)
def create_tax_rate(
    data: TaxRateCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    """
    Crear un impuesto

    Si se marca como predeterminado, los demás impuestos de la empresa dejan de serlo.
    """
    return TaxService(db).create_tax_rate(data, auth_context.tenant_id)


@taxes_router.get("/{tax_rate_id}", response_model=TaxRateOut)
def get_tax_rate(
    tax_rate_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return TaxService(db).get_tax_rate_by_id(tax_rate_id, auth_context.tenant_id)


@taxes_router.patch("/{tax_rate_id}", response_model=TaxRateOut)
def update_tax_rate(
    tax_rate_id: UUID,
    data: TaxRateUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    """
    Actualizar un impuesto

    El cambio de porcentaje no altera documentos ya guardados.
    """
    return TaxService(db).update_tax_rate(tax_rate_id, data, auth_context.tenant_id)


@taxes_router.delete("/{tax_rate_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tax_rate(
    tax_rate_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    TaxService(db).delete_tax_rate(tax_rate_id, auth_context.tenant_id)
