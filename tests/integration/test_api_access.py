"""
Integration tests for health, tenant identity, entitlement and configuration.
"""

from messaging_gateway.persistence.models import TenantMessagingConfig

PREFIX = "/api/messaging"


class TestHealthAndIdentity:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "gateway-api"}

    def test_missing_tenant_header(self, client):
        assert client.get(f"{PREFIX}/access").status_code == 422

    def test_invalid_tenant_header(self, client):
        response = client.get(f"{PREFIX}/access", headers={"X-Tenant-Id": "not-a-uuid"})
        assert response.status_code == 400


class TestEntitlementGate:
    """Tests for addon gating of management routes."""

    def test_without_addon_is_forbidden(self, client, headers, addon_definition):
        response = client.get(f"{PREFIX}/config", headers=headers)

        assert response.status_code == 403
        assert response.json()["code"] == "ADDON_REQUIRED"
        assert set(response.json()) == {"error", "code"}

    def test_access_reports_reason(self, client, headers, addon_definition):
        body = client.get(f"{PREFIX}/access", headers=headers).json()
        assert body["allowed"] is False
        assert body["code"] == "ADDON_REQUIRED"

    def test_activate_trial_then_access(self, client, headers, addon_definition):
        response = client.post(f"{PREFIX}/addon/activate", json={"with_trial": True}, headers=headers)

        assert response.status_code == 200
        assert response.json()["status"] == "trial"
        assert client.get(f"{PREFIX}/config", headers=headers).status_code == 200

    def test_cancel(self, client, headers, entitled):
        response = client.post(f"{PREFIX}/addon/cancel", headers=headers)

        assert response.json()["status"] == "cancelled"
        assert client.get(f"{PREFIX}/config", headers=headers).status_code == 403

    def test_activate_without_definition(self, client, headers):
        response = client.post(f"{PREFIX}/addon/activate", json={}, headers=headers)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"


class TestConfig:
    """Tests for tenant configuration."""

    def test_get_creates_disabled_config(self, client, headers, entitled):
        body = client.get(f"{PREFIX}/config", headers=headers).json()

        assert body["enabled"] is False
        assert body["has_api_key"] is False
        assert body["error_count"] == 0

    def test_update_encrypts_api_key(self, db, client, headers, tenant, entitled, vault):
        response = client.put(
            f"{PREFIX}/config",
            json={"enabled": True, "api_key": "tenant-key", "sender_phone": "+57 300 111 2233", "notify_on_sale": True},
            headers=headers,
        )

        body = response.json()
        assert response.status_code == 200
        assert body["has_api_key"] is True
        assert body["sender_phone"] == "573001112233"
        assert "api_key" not in body

        config = db.query(TenantMessagingConfig).filter_by(tenant_id=tenant.id).one()
        assert config.api_key_encrypted != "tenant-key"
        assert vault.decrypt(config.api_key_encrypted) == "tenant-key"

    def test_empty_api_key_clears(self, client, headers, entitled):
        client.put(f"{PREFIX}/config", json={"api_key": "tenant-key"}, headers=headers)

        body = client.put(f"{PREFIX}/config", json={"api_key": ""}, headers=headers).json()
        assert body["has_api_key"] is False

    def test_omitted_fields_unchanged(self, client, headers, entitled, messaging_config):
        body = client.put(f"{PREFIX}/config", json={"support_info": "Llame al 601 555 0000"}, headers=headers).json()

        assert body["enabled"] is True
        assert body["app_name"] == "ferreteria-app"
        assert body["support_info"] == "Llame al 601 555 0000"

    def test_connection_with_platform_credentials(self, client, headers, entitled, platform_credentials):
        response = client.post(f"{PREFIX}/config/test-connection", headers=headers)
        assert response.json()["success"] is True

    def test_connection_without_credentials(self, client, headers, entitled):
        response = client.post(f"{PREFIX}/config/test-connection", headers=headers)

        assert response.status_code == 503
        assert response.json()["code"] == "PROVIDER_NOT_CONFIGURED"
