"""
Fixtures compartidas para los tests.

Los tests corren contra SQLite en memoria (un solo connection pool estático),
con el esquema creado y destruido en cada test.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")

import jwt
import pytest
from decimal import Decimal
from uuid import uuid4
from fastapi.testclient import TestClient

from facturo.core.config import settings
from facturo.database.database import Base, SessionLocal, engine, get_db
from facturo.main import app
from facturo.modules.clients.models import Client
from facturo.modules.number_series.models import NumberSeries, DocumentType
from facturo.modules.payments.models import PaymentMethod
from facturo.modules.settings.schemas import BillingSettings
from facturo.modules.taxes.models import TaxRate


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def billing():
    """Configuración por defecto de la empresa"""
    return BillingSettings()


@pytest.fixture
def make_token(tenant_id, user_id):
    def _make_token(role: str = "owner", tenant=None, user=None) -> str:
        payload = {
            "sub": str(user or user_id),
            "tenant_id": str(tenant or tenant_id),
            "user_role": role,
        }
        return jwt.encode(payload, settings.APP_SECRET_STRING, algorithm=settings.ALGORITHM)
    return _make_token


@pytest.fixture
def auth_headers(make_token):
    return {"Authorization": f"Bearer {make_token('owner')}"}


@pytest.fixture
def api_client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def sample_client(db_session, tenant_id):
    client = Client(tenant_id=tenant_id, name="Ana", surname="Gómez", company="Gómez SAS", email="ana@gomez.co")
    db_session.add(client)
    db_session.commit()
    db_session.refresh(client)
    return client


@pytest.fixture
def make_series(db_session, tenant_id):
    def _make_series(
        name: str = "Facturas",
        document_type: DocumentType = DocumentType.INVOICE,
        identifier_format: str = "INV-{{{id}}}",
        next_id: int = 1,
        left_pad: int = 0,
        is_default: bool = False,
        is_active: bool = True,
        tenant=None,
    ) -> NumberSeries:
        series = NumberSeries(
            tenant_id=tenant or tenant_id,
            name=name,
            document_type=document_type,
            identifier_format=identifier_format,
            next_id=next_id,
            left_pad=left_pad,
            is_default=is_default,
            is_active=is_active,
        )
        db_session.add(series)
        db_session.commit()
        db_session.refresh(series)
        return series
    return _make_series


@pytest.fixture
def invoice_series(make_series):
    return make_series(name="Facturas", document_type=DocumentType.INVOICE, identifier_format="INV-{{{id}}}", is_default=True)


@pytest.fixture
def quote_series(make_series):
    return make_series(name="Cotizaciones", document_type=DocumentType.QUOTATION, identifier_format="COT-{{{id}}}", is_default=True)


@pytest.fixture
def make_tax_rate(db_session, tenant_id):
    def _make_tax_rate(name: str = "IVA 19%", percent: str = "19", is_default: bool = False) -> TaxRate:
        tax_rate = TaxRate(tenant_id=tenant_id, name=name, percent=Decimal(percent), is_default=is_default)
        db_session.add(tax_rate)
        db_session.commit()
        db_session.refresh(tax_rate)
        return tax_rate
    return _make_tax_rate


@pytest.fixture
def payment_method(db_session, tenant_id):
    method = PaymentMethod(tenant_id=tenant_id, name="Transferencia")
    db_session.add(method)
    db_session.commit()
    db_session.refresh(method)
    return method
