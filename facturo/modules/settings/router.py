from fastapi import APIRouter, Depends

from facturo.dependencies.dbDependencies import db_dependency
from facturo.modules.auth.dependencies import AuthDependencies
from facturo.modules.auth.schemas import AuthContext
from facturo.modules.settings.service import SettingsService
from facturo.modules.settings.schemas import BillingSettings, SettingUpdate, SettingOut

settings_router = APIRouter(prefix="/settings", tags=["Settings"])


@settings_router.get("/billing", response_model=BillingSettings)
def get_billing_settings(
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Configuración de facturación efectiva (valores guardados + defaults)"""
    return SettingsService(db).get_billing_settings(auth_context.tenant_id)


@settings_router.put("/", response_model=SettingOut)
def set_setting(
    data: SettingUpdate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_owner_or_admin())
):
    """
    Guardar una clave de configuración

    Solo propietarios y administradores pueden cambiar la configuración.
    """
    return SettingsService(db).set_value(auth_context.tenant_id, data)
