from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from facturo.database.database import get_db
from facturo.modules.auth.dependencies import AuthDependencies
from facturo.modules.auth.schemas import AuthContext
from facturo.modules.clients.service import ClientService
from facturo.modules.clients.schemas import ClientCreate, ClientUpdate, ClientOut, ClientList

router = APIRouter(prefix="/clients", tags=["Clients"])


@router.get("/", response_model=ClientList)
def list_clients(
    search: Optional[str] = Query(None, description="Buscar por nombre, empresa o email"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return ClientService(db).get_clients(auth_context.tenant_id, search, limit, offset)


@router.post("/", response_model=ClientOut, status_code=status.HTTP_201_CREATED)
def create_client(
    data: ClientCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin", "seller"]))
):
    return ClientService(db).create_client(data, auth_context.tenant_id)


@router.get("/{client_id}", response_model=ClientOut)
def get_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return ClientService(db).get_client_by_id(client_id, auth_context.tenant_id)


@router.patch("/{client_id}", response_model=ClientOut)
def update_client(
    client_id: UUID,
    data: ClientUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin", "seller"]))
):
    return ClientService(db).update_client(client_id, data, auth_context.tenant_id)


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    """
    Eliminar un cliente

    Falla si el cliente tiene facturas o cotizaciones asociadas.
    """
    ClientService(db).delete_client(client_id, auth_context.tenant_id)
