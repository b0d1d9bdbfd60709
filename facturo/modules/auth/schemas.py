from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class AuthContext(BaseModel):
    """Identidad del actor autenticado, emitida por el servicio de autenticación"""
    user_id: UUID
    tenant_id: Optional[UUID] = None
    user_role: Optional[str] = None
