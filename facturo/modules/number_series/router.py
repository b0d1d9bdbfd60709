from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from facturo.database.database import get_db
from facturo.modules.auth.dependencies import AuthDependencies
from facturo.modules.auth.schemas import AuthContext
from facturo.modules.number_series.models import DocumentType
from facturo.modules.number_series.service import NumberSeriesService
from facturo.modules.number_series.schemas import (
    NumberSeriesCreate, NumberSeriesUpdate, NumberSeriesOut, NumberSeriesList, NextNumberPreview
)

number_series_router = APIRouter(prefix="/number-series", tags=["Number series"])


@number_series_router.get("/", response_model=NumberSeriesList)
def list_number_series(
    type: Optional[DocumentType] = Query(None, description="invoice o quotation (incluye las series 'both')"),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Listar series de numeración activas"""
    return NumberSeriesService(db).get_series_list(auth_context.tenant_id, type)


@number_series_router.post("/", response_model=NumberSeriesOut, status_code=status.HTTP_201_CREATED)
def create_number_series(
    data: NumberSeriesCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    """
    Crear una serie de numeración

    Formato con marcadores {{{id}}}, {{{year}}} y {{{month}}}, ej. INV-{{{year}}}-{{{id}}}.
    """
    return NumberSeriesService(db).create_series(data, auth_context.tenant_id)


@number_series_router.get("/{series_id}", response_model=NumberSeriesOut)
def get_number_series(
    series_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return NumberSeriesService(db).get_series_by_id(series_id, auth_context.tenant_id)


@number_series_router.get("/{series_id}/preview", response_model=NextNumberPreview)
def preview_next_number(
    series_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Ver el siguiente número sin consumirlo"""
    return NumberSeriesService(db).preview_next_number(series_id, auth_context.tenant_id)


@number_series_router.patch("/{series_id}", response_model=NumberSeriesOut)
def update_number_series(
    series_id: UUID,
    data: NumberSeriesUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    return NumberSeriesService(db).update_series(series_id, data, auth_context.tenant_id)


@number_series_router.delete("/{series_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_number_series(
    series_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    NumberSeriesService(db).delete_series(series_id, auth_context.tenant_id)
