from sqlalchemy.orm import Session
from typing import Any
from uuid import UUID
import logging

import pydantic

from facturo.common.exceptions import ValidationError
from facturo.modules.settings.models import Setting
from facturo.modules.settings.schemas import (
    BillingSettings, SettingUpdate, SettingCategory, SETTING_CATEGORIES
)

logger = logging.getLogger(__name__)


class SettingsService:
    def __init__(self, db: Session):
        self.db = db

    def get_value(self, tenant_id: UUID, key: str, default: Any = None) -> Any:
        """Obtener el valor de una clave o el valor por defecto"""
        setting = self.db.query(Setting).filter(
            Setting.tenant_id == tenant_id,
            Setting.key == key
        ).first()
        return setting.value if setting is not None else default

    def get_all(self, tenant_id: UUID) -> dict:
        settings = self.db.query(Setting).filter(Setting.tenant_id == tenant_id).all()
        return {s.key: s.value for s in settings}

    def get_billing_settings(self, tenant_id: UUID) -> BillingSettings:
        """Construir la configuración de facturación con sus valores por defecto"""
        stored = {
            key: value for key, value in self.get_all(tenant_id).items()
            if key in BillingSettings.model_fields and value is not None
        }
        try:
            return BillingSettings(**stored)
        except pydantic.ValidationError as e:
            # Un valor corrupto no debe tumbar la facturación: se usan los defaults
            logger.warning(f"Invalid billing settings for tenant {tenant_id}: {e}")
            return BillingSettings()

    def set_value(self, tenant_id: UUID, data: SettingUpdate) -> Setting:
        """Crear o actualizar una clave de configuración"""
        if data.key in BillingSettings.model_fields:
            try:
                BillingSettings(**{data.key: data.value})
            except pydantic.ValidationError as e:
                raise ValidationError(detail=f"Valor inválido para '{data.key}': {e.errors()[0]['msg']}")

        category = data.category or SETTING_CATEGORIES.get(data.key, SettingCategory.GENERAL)

        setting = self.db.query(Setting).filter(
            Setting.tenant_id == tenant_id,
            Setting.key == data.key
        ).first()
        if setting is None:
            setting = Setting(tenant_id=tenant_id, key=data.key)
            self.db.add(setting)

        setting.value = data.value
        setting.category = category.value
        self.db.commit()
        self.db.refresh(setting)

        logger.info(f"Setting '{data.key}' updated for tenant {tenant_id}")
        return setting
