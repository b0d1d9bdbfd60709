"""
Dependencias de autenticación para FastAPI.

La emisión de tokens vive en el servicio de autenticación; aquí solo se
decodifica el token de contexto para obtener usuario, empresa y rol.
"""
from uuid import UUID
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from facturo.modules.auth.schemas import AuthContext
from facturo.core.config import settings

# Security scheme
security = HTTPBearer()

ALL_ROLES = ["owner", "admin", "seller", "accountant", "viewer"]


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security),
    ) -> AuthContext:
        """
        Obtener contexto de autenticación completo con tenant.
        El tenant sale del token de contexto o, en su defecto, del header X-Company-ID.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = jwt.decode(
                credentials.credentials,
                settings.APP_SECRET_STRING,
                algorithms=[settings.ALGORITHM]
            )
            user_id = payload.get("sub")
            if user_id is None:
                raise credentials_exception
            user_id = UUID(str(user_id))
        except (jwt.PyJWTError, ValueError):
            raise credentials_exception

        tenant_id = payload.get("tenant_id") or getattr(request.state, "tenant_id", None)
        try:
            tenant_id = UUID(str(tenant_id)) if tenant_id else None
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="ID de empresa inválido"
            )

        header_tenant = getattr(request.state, "tenant_id", None)
        if header_tenant and tenant_id and header_tenant != tenant_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No tienes acceso a esta empresa"
            )

        return AuthContext(
            user_id=user_id,
            tenant_id=tenant_id,
            user_role=payload.get("user_role")
        )

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if not auth_context.tenant_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Se requiere seleccionar una empresa"
                )

            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Se requiere uno de estos roles: {', '.join(allowed_roles)}"
                )

            return auth_context
        return role_checker

    @staticmethod
    def require_owner_or_admin():
        """Dependencia para requerir rol de owner o admin."""
        return AuthDependencies.require_role(["owner", "admin"])

    @staticmethod
    def require_any_role():
        """Dependencia que requiere cualquier rol activo en una empresa."""
        return AuthDependencies.require_role(ALL_ROLES)
