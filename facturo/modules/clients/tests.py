"""
Tests para el módulo de clientes
"""

import pytest
from uuid import uuid4

from facturo.common.exceptions import ConflictError, NotFoundError, ValidationError
from facturo.modules.clients.schemas import ClientCreate, ClientUpdate
from facturo.modules.clients.service import ClientService


class TestClientService:

    def test_create_and_search(self, db_session, tenant_id):
        service = ClientService(db_session)
        service.create_client(ClientCreate(name="Ana", surname="Gómez", company="Gómez SAS"), tenant_id)
        service.create_client(ClientCreate(name="Luis", email="luis@correo.co"), tenant_id)

        assert service.get_clients(tenant_id)["total"] == 2
        assert service.get_clients(tenant_id, search="gómez")["total"] == 1
        assert service.get_clients(tenant_id, search="correo")["total"] == 1

    def test_full_name(self, sample_client):
        assert sample_client.full_name == "Ana Gómez"

    def test_other_tenant_not_found(self, db_session, sample_client):
        with pytest.raises(NotFoundError):
            ClientService(db_session).get_client_by_id(sample_client.id, uuid4())

    def test_require_client_is_validation_error(self, db_session, tenant_id):
        with pytest.raises(ValidationError):
            ClientService(db_session).require_client(uuid4(), tenant_id)
        with pytest.raises(ValidationError):
            ClientService(db_session).require_client(None, tenant_id)

    def test_update(self, db_session, tenant_id, sample_client):
        client = ClientService(db_session).update_client(sample_client.id, ClientUpdate(phone="3001234567"), tenant_id)
        assert client.phone == "3001234567"
        assert client.name == "Ana"

    def test_delete_with_documents(self, db_session, tenant_id, user_id, sample_client, invoice_series, billing):
        from facturo.modules.invoices.schemas import InvoiceCreate
        from facturo.modules.invoices.service import InvoiceService

        InvoiceService(db_session).create_invoice(
            InvoiceCreate(client_id=sample_client.id, items=[{"name": "Servicio", "quantity": "1", "price": "10"}]),
            tenant_id, user_id, billing,
        )
        with pytest.raises(ConflictError):
            ClientService(db_session).delete_client(sample_client.id, tenant_id)

    def test_delete(self, db_session, tenant_id, sample_client):
        service = ClientService(db_session)
        service.delete_client(sample_client.id, tenant_id)
        assert service.get_clients(tenant_id)["total"] == 0


class TestClientsAPI:

    def test_create_and_get(self, api_client, auth_headers):
        response = api_client.post("/clients/", json={"name": "Marta", "company": "Acme"}, headers=auth_headers)
        assert response.status_code == 201
        client_id = response.json()["id"]

        response = api_client.get(f"/clients/{client_id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["full_name"] == "Marta"

    def test_tenant_isolation(self, api_client, make_token, sample_client):
        headers = {"Authorization": f"Bearer {make_token('owner', tenant=uuid4())}"}
        response = api_client.get(f"/clients/{sample_client.id}", headers=headers)
        assert response.status_code == 404
