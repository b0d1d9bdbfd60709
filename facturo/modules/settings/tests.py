"""
Tests para la configuración de facturación por empresa
"""

import pytest
from uuid import uuid4

from facturo.common.exceptions import ValidationError
from facturo.modules.settings.models import Setting
from facturo.modules.settings.schemas import BillingSettings, SettingUpdate
from facturo.modules.settings.service import SettingsService


class TestSettingsService:

    def test_defaults(self, db_session, tenant_id):
        billing = SettingsService(db_session).get_billing_settings(tenant_id)
        assert billing == BillingSettings()
        assert billing.invoices_due_after == 30
        assert billing.generate_invoice_number_for_draft is True
        assert billing.enable_invoice_deletion is False

    def test_stored_values(self, db_session, tenant_id):
        service = SettingsService(db_session)
        service.set_value(tenant_id, SettingUpdate(key="invoices_due_after", value=45))
        service.set_value(tenant_id, SettingUpdate(key="read_only_on_send", value=True))

        billing = service.get_billing_settings(tenant_id)
        assert billing.invoices_due_after == 45
        assert billing.read_only_on_send is True

    def test_settings_are_per_tenant(self, db_session, tenant_id):
        service = SettingsService(db_session)
        service.set_value(tenant_id, SettingUpdate(key="invoices_due_after", value=5))
        assert service.get_billing_settings(uuid4()).invoices_due_after == 30

    def test_overwrite(self, db_session, tenant_id):
        service = SettingsService(db_session)
        service.set_value(tenant_id, SettingUpdate(key="quotes_expire_after", value=7))
        setting = service.set_value(tenant_id, SettingUpdate(key="quotes_expire_after", value=20))

        assert setting.value == 20
        assert setting.category == "quote"
        assert db_session.query(Setting).count() == 1

    def test_invalid_value(self, db_session, tenant_id):
        with pytest.raises(ValidationError):
            SettingsService(db_session).set_value(tenant_id, SettingUpdate(key="invoices_due_after", value=-3))

    def test_corrupt_value_falls_back_to_defaults(self, db_session, tenant_id):
        db_session.add(Setting(tenant_id=tenant_id, key="invoices_due_after", value="muchos", category="invoice"))
        db_session.commit()
        assert SettingsService(db_session).get_billing_settings(tenant_id) == BillingSettings()

    def test_unknown_key_is_general(self, db_session, tenant_id):
        setting = SettingsService(db_session).set_value(tenant_id, SettingUpdate(key="logo_url", value="https://x.co/l.png"))
        assert setting.category == "general"


class TestSettingsAPI:

    def test_update_and_read(self, api_client, auth_headers):
        response = api_client.put("/settings/", json={"key": "enable_invoice_deletion", "value": True}, headers=auth_headers)
        assert response.status_code == 200

        response = api_client.get("/settings/billing", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["enable_invoice_deletion"] is True

    def test_seller_cannot_update(self, api_client, make_token):
        headers = {"Authorization": f"Bearer {make_token('seller')}"}
        response = api_client.put("/settings/", json={"key": "invoices_due_after", "value": 10}, headers=headers)
        assert response.status_code == 403
