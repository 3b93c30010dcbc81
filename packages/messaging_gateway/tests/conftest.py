"""
Pytest fixtures for messaging gateway tests.

Tests run against SQLite through the same SQLAlchemy models. The engine
hands transaction control to SQLAlchemy so SAVEPOINTs work.
"""

from datetime import timedelta

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

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
from messaging_gateway.realtime.notifier import ConnectionRegistry
from messaging_gateway.security.vault import CredentialVault
from messaging_gateway.service import credentials as keys
from messaging_gateway.service.credentials import CredentialStore
from messaging_gateway.service.dispatcher import MessageDispatcher

MASTER_SECRET = "test-master-secret"
SENDER_PHONE = "573001112233"
CUSTOMER_PHONE = "573009998877"
APP_NAME = "ferreteria-app"


def make_engine(url: str = "sqlite://", begin: str = "BEGIN", **kwargs):
    """SQLite engine with SQLAlchemy-managed transactions (SAVEPOINT support)."""
    if url == "sqlite://":
        kwargs.setdefault("poolclass", StaticPool)
    engine = create_engine(url, connect_args={"check_same_thread": False, **kwargs.pop("connect_args", {})}, **kwargs)

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql(begin)

    GatewayBase.metadata.create_all(engine)
    return engine


@pytest.fixture
def engine():
    engine = make_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def vault():
    return CredentialVault(MASTER_SECRET)


@pytest.fixture
def provider():
    return StubMessagingProvider()


@pytest.fixture
def registry():
    return ConnectionRegistry()


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
def tenant_id(tenant):
    return tenant.id


@pytest.fixture
def entitled(db, tenant_id, addon_definition):
    """Tenant with the messaging addon active."""
    addon = TenantAddon(
        tenant_id=tenant_id,
        addon_key=MESSAGING_ADDON_KEY,
        status=AddonStatus.ACTIVE.value,
        activated_at=utcnow(),
    )
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
            keys.SENDER_PHONE: SENDER_PHONE,
            keys.PARTNER_EMAIL: "partner@example.com",
            keys.PARTNER_PASSWORD: "partner-pass",
            keys.GLOBAL_ENABLED: True,
        }
    )
    return store


@pytest.fixture
def messaging_config(db, tenant_id):
    config = TenantMessagingConfig(
        tenant_id=tenant_id,
        enabled=True,
        sender_phone=SENDER_PHONE,
        app_name=APP_NAME,
        notify_on_sale=True,
        notify_on_low_stock=True,
    )
    db.add(config)
    db.commit()
    return config


def add_subscription(db, tenant_id, message_limit=100, messages_used=0, status=SubscriptionStatus.ACTIVE, expires_in_days=30):
    package = MessagePackage(name=f"Paquete {message_limit}", message_limit=message_limit, price=5000000)
    db.add(package)
    db.flush()

    subscription = QuotaSubscription(
        tenant_id=tenant_id,
        package_id=package.id,
        message_limit=message_limit,
        messages_used=messages_used,
        status=status.value,
        activated_at=utcnow(),
        expires_at=utcnow() + timedelta(days=expires_in_days),
    )
    db.add(subscription)
    db.commit()
    return subscription


@pytest.fixture
def make_subscription(db, tenant_id):
    def _make(**kwargs):
        return add_subscription(db, tenant_id, **kwargs)

    return _make


@pytest.fixture
def subscription(make_subscription):
    return make_subscription()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed engine for tests that need several connections."""
    engine = make_engine(
        f"sqlite:///{tmp_path / 'gateway.db'}",
        begin="BEGIN IMMEDIATE",
        connect_args={"timeout": 30},
    )
    yield engine
    engine.dispose()


@pytest.fixture
def ready_tenant(tenant_id, entitled, platform_credentials, messaging_config, subscription):
    """Tenant that can send: addon, credentials, enabled config and quota."""
    return tenant_id


@pytest.fixture
def dispatcher(db, provider, vault):
    return MessageDispatcher(db, provider, vault)
