"""
Errores de negocio del motor de facturación.

Todos heredan de HTTPException para que FastAPI los traduzca directamente
al código HTTP correspondiente, igual que el resto de servicios.
"""
from typing import Any, Optional

from fastapi import HTTPException, status


class BillingError(HTTPException):
    """Base de los errores de facturación"""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: Any = None, headers: Optional[dict] = None):
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)


class ValidationError(BillingError):
    """Datos mal formados o incompletos; se rechaza antes de persistir"""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(BillingError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(BillingError):
    """Operación incompatible con el estado actual del recurso"""

    status_code = status.HTTP_409_CONFLICT


class NoSeriesAvailableError(BillingError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: Any = "No hay series de numeración disponibles", headers: Optional[dict] = None):
        super().__init__(detail=detail, headers=headers)


class ConcurrencyError(BillingError):
    """Se agotaron los reintentos frente a escrituras concurrentes"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
