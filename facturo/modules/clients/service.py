from sqlalchemy.orm import Session
from sqlalchemy import or_
from typing import Optional
from uuid import UUID
import logging

from facturo.common.exceptions import ConflictError, NotFoundError, ValidationError
from facturo.modules.clients.models import Client
from facturo.modules.clients.schemas import ClientCreate, ClientUpdate

logger = logging.getLogger(__name__)


class ClientService:
    def __init__(self, db: Session):
        self.db = db

    def create_client(self, data: ClientCreate, tenant_id: UUID) -> Client:
        client = Client(**data.model_dump(), tenant_id=tenant_id)
        self.db.add(client)
        self.db.commit()
        self.db.refresh(client)
        return client

    def get_clients(self, tenant_id: UUID, search: Optional[str] = None, limit: int = 100, offset: int = 0) -> dict:
        """Obtener lista de clientes con búsqueda opcional"""
        query = self.db.query(Client).filter(Client.tenant_id == tenant_id)
        if search:
            query = query.filter(or_(
                Client.name.ilike(f"%{search}%"),
                Client.surname.ilike(f"%{search}%"),
                Client.company.ilike(f"%{search}%"),
                Client.email.ilike(f"%{search}%"),
            ))
        total = query.count()
        clients = query.order_by(Client.name).offset(offset).limit(limit).all()
        return {"clients": clients, "total": total, "limit": limit, "offset": offset}

    def get_client_by_id(self, client_id: UUID, tenant_id: UUID) -> Client:
        client = self.db.query(Client).filter(
            Client.id == client_id,
            Client.tenant_id == tenant_id
        ).first()
        if not client:
            raise NotFoundError(detail="Cliente no encontrado")
        return client

    def require_client(self, client_id: Optional[UUID], tenant_id: UUID) -> Client:
        """Validar el cliente de un documento (es un error de validación, no un 404)"""
        if client_id is None:
            raise ValidationError(detail="El cliente es obligatorio")
        client = self.db.query(Client).filter(
            Client.id == client_id,
            Client.tenant_id == tenant_id
        ).first()
        if not client:
            raise ValidationError(detail="El cliente especificado no existe o no pertenece a esta empresa")
        return client

    def update_client(self, client_id: UUID, data: ClientUpdate, tenant_id: UUID) -> Client:
        client = self.get_client_by_id(client_id, tenant_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(client, field, value)
        self.db.commit()
        self.db.refresh(client)
        return client

    def delete_client(self, client_id: UUID, tenant_id: UUID) -> None:
        """Eliminar un cliente solo si no tiene facturas ni cotizaciones"""
        from facturo.modules.invoices.models import Invoice
        from facturo.modules.quotes.models import Quote

        client = self.get_client_by_id(client_id, tenant_id)

        invoice_count = self.db.query(Invoice).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.client_id == client.id
        ).count()
        quote_count = self.db.query(Quote).filter(
            Quote.tenant_id == tenant_id,
            Quote.client_id == client.id
        ).count()

        if invoice_count or quote_count:
            raise ConflictError(
                detail=f"No se puede eliminar el cliente. Tiene {invoice_count} facturas y {quote_count} cotizaciones."
            )

        self.db.delete(client)
        self.db.commit()
        logger.info(f"Client {client_id} deleted for tenant {tenant_id}")
