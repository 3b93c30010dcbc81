"""
Pytest configuration for API integration tests.

The gateway app is built with the stub provider and an in-memory SQLite
database shared by the test and the request handlers.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from basecore.db import get_db
from basecore.settings import Settings
from gateway_api.main import create_app
from messaging_gateway.persistence.models import (
    MESSAGING_ADDON_KEY,
    AddonDefinition,
    AddonStatus,
    GatewayBase,
    MessagePackage,
    QuotaSubscription,
    SubscriptionStatus,
    Tenant,
    TenantAddon,
    TenantMessagingConfig,
    utcnow,
)
from messaging_gateway.providers.stub import StubMessagingProvider
from messaging_gateway.security.vault import CredentialVault
from messaging_gateway.service import credentials as keys
from messaging_gateway.service.credentials import CredentialStore

MASTER_SECRET = "integration-master-secret"
APP_NAME = "ferreteria-app"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    GatewayBase.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def vault():
    return CredentialVault(MASTER_SECRET)


@pytest.fixture
def provider():
    return StubMessagingProvider()


@pytest.fixture
def settings():
    return Settings(
        MESSAGING_ENCRYPTION_KEY=MASTER_SECRET,
        MESSAGING_PROVIDER="stub",
        REALTIME_BACKEND="memory",
        INBOUND_SINGLE_TENANT_FALLBACK=False,
    )


@pytest.fixture
def app(settings, provider, db):
    app = create_app(settings=settings, provider=provider)
    app.dependency_overrides[get_db] = lambda: db
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def addon_definition(db):
    definition = AddonDefinition(
        addon_key=MESSAGING_ADDON_KEY,
        name="WhatsApp Notifications",
        monthly_price=2990000,
        trial_days=14,
        included_in_tiers=["premium"],
    )
    db.add(definition)
    db.commit()
    return definition


@pytest.fixture
def tenant(db):
    tenant = Tenant(name="Ferreteria El Tornillo", subscription_tier="basic")
    db.add(tenant)
    db.commit()
    return tenant


@pytest.fixture
def headers(tenant):
    return {"X-Tenant-Id": str(tenant.id)}


@pytest.fixture
def entitled(db, tenant, addon_definition):
    addon = TenantAddon(tenant_id=tenant.id, addon_key=MESSAGING_ADDON_KEY, status=AddonStatus.ACTIVE.value)
    db.add(addon)
    db.commit()
    return addon


@pytest.fixture
def platform_credentials(db, vault):
    store = CredentialStore(db, vault)
    store.set_platform_credentials(
        {
            keys.API_KEY: "platform-api-key",
            keys.APP_NAME: APP_NAME,
            keys.APP_ID: "app-123",
            keys.SENDER_PHONE: "573001112233",
            keys.PARTNER_EMAIL: "partner@example.com",
            keys.PARTNER_PASSWORD: "partner-pass",
        }
    )
    return store


@pytest.fixture
def messaging_config(db, tenant):
    config = TenantMessagingConfig(
        tenant_id=tenant.id,
        enabled=True,
        app_name=APP_NAME,
        sender_phone="573001112233",
        notify_on_sale=True,
    )
    db.add(config)
    db.commit()
    return config


@pytest.fixture
def package(db):
    package = MessagePackage(name="Paquete 100", message_limit=100, price=5000000)
    db.add(package)
    db.commit()
    return package


@pytest.fixture
def subscription(db, tenant, package):
    subscription = QuotaSubscription(
        tenant_id=tenant.id,
        package_id=package.id,
        message_limit=package.message_limit,
        messages_used=0,
        status=SubscriptionStatus.ACTIVE.value,
        activated_at=utcnow(),
        expires_at=utcnow() + timedelta(days=30),
    )
    db.add(subscription)
    db.commit()
    return subscription


@pytest.fixture
def ready(entitled, platform_credentials, messaging_config, subscription):
    """Tenant that can send."""
    return True
