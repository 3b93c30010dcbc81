"""
Tests for the template lifecycle.
"""

import asyncio

import pytest

from messaging_gateway.errors import ConfigurationError, NotFoundError, ValidationError
from messaging_gateway.persistence.models import MessageTemplate, TemplateStatus, TriggerMapping
from messaging_gateway.providers.base import ProviderError, RemoteTemplate
from messaging_gateway.providers.stub import StubMessagingProvider
from messaging_gateway.service.credentials import CredentialStore
from messaging_gateway.service.templates import (
    DUPLICATE_TEMPLATE,
    INVALID_TEMPLATE_NAME,
    TEMPLATE_PENDING,
    TemplateLifecycleManager,
    normalize_template_name,
    render_example,
    template_variables,
)

RECEIPT_BODY = "Hola {{1}}, su compra #{{2}} por {{3}} fue registrada."


@pytest.fixture
def manager(db, provider, platform_credentials):
    return TemplateLifecycleManager(db, provider, platform_credentials)


@pytest.fixture
def draft(manager, tenant_id):
    return manager.create(
        tenant_id,
        {
            "name": "Recibo de Compra",
            "body_text": RECEIPT_BODY,
            "variables_sample": {"1": "Ana", "2": "1001", "3": "$50.000 COP"},
        },
    )


class TestNormalizeTemplateName:
    """Tests for template name normalization."""

    def test_lowercases_and_underscores(self):
        assert normalize_template_name("Recibo de Compra") == "recibo_de_compra"

    def test_strips_invalid_characters(self):
        assert normalize_template_name("Alerta: Stock-Bajo!") == "alerta_stockbajo"

    def test_collapses_underscores(self):
        assert normalize_template_name("  pedido   listo__ya ") == "pedido_listo_ya"

    def test_empty_after_normalization(self):
        for name in ("", "   ", "¡¿?!", None):
            with pytest.raises(ValidationError) as exc_info:
                normalize_template_name(name)
            assert exc_info.value.code == INVALID_TEMPLATE_NAME


class TestTemplateHelpers:
    def test_render_example(self):
        example = render_example(RECEIPT_BODY, {"1": "Ana", "2": "1001", "3": "$50.000 COP"})
        assert example == "Hola Ana, su compra #1001 por $50.000 COP fue registrada."

    def test_render_example_missing_sample(self):
        assert render_example("Hola {{1}}", {}) == "Hola [1]"

    def test_template_variables(self):
        assert template_variables("{{2}} y {{1}} y {{2}}") == [1, 2]


class TestTemplateCrud:
    """Tests for create, update and delete."""

    def test_create_draft(self, draft):
        assert draft.name == "recibo_de_compra"
        assert draft.status == TemplateStatus.DRAFT.value
        assert draft.language == "es"
        assert draft.category == "utility"

    def test_duplicate_name_same_language(self, manager, tenant_id, draft):
        with pytest.raises(ValidationError) as exc_info:
            manager.create(tenant_id, {"name": "recibo de compra", "body_text": "Otro"})
        assert exc_info.value.code == DUPLICATE_TEMPLATE

    def test_same_name_other_language(self, manager, tenant_id, draft):
        template = manager.create(tenant_id, {"name": "recibo de compra", "body_text": "Hi", "language": "en"})
        assert template.language == "en"

    def test_empty_body_rejected(self, manager, tenant_id):
        with pytest.raises(ValidationError):
            manager.create(tenant_id, {"name": "vacia", "body_text": "   "})

    def test_unknown_category_rejected(self, manager, tenant_id):
        with pytest.raises(ValidationError):
            manager.create(tenant_id, {"name": "promo", "body_text": "x", "category": "spam"})

    def test_list_with_status_filter(self, db, manager, tenant_id, draft):
        manager.create(tenant_id, {"name": "otra", "body_text": "x"})
        draft.status = TemplateStatus.APPROVED.value
        db.commit()

        assert len(manager.list_templates(tenant_id)) == 2
        approved = manager.list_templates(tenant_id, TemplateStatus.APPROVED.value)
        assert [t.name for t in approved] == ["recibo_de_compra"]

    def test_other_tenant_cannot_see_template(self, manager, draft):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            manager.get(uuid4(), draft.id)

    def test_update_draft(self, manager, tenant_id, draft):
        updated = manager.update(tenant_id, draft.id, {"body_text": "Gracias {{1}}"})
        assert updated.body_text == "Gracias {{1}}"
        assert updated.status == TemplateStatus.DRAFT.value

    def test_update_approved_returns_to_draft(self, db, manager, tenant_id, draft):
        draft.status = TemplateStatus.APPROVED.value
        draft.provider_template_id = "gs-tpl-1"
        db.commit()

        updated = manager.update(tenant_id, draft.id, {"footer_text": "Ferreteria"})

        assert updated.status == TemplateStatus.DRAFT.value
        assert updated.provider_template_id is None

    def test_update_rejected_clears_reason(self, db, manager, tenant_id, draft):
        draft.status = TemplateStatus.REJECTED.value
        draft.rejection_reason = "Formato invalido"
        db.commit()

        updated = manager.update(tenant_id, draft.id, {"body_text": "Hola {{1}}"})

        assert updated.status == TemplateStatus.DRAFT.value
        assert updated.rejection_reason is None

    def test_update_pending_refused(self, db, manager, tenant_id, draft):
        draft.status = TemplateStatus.PENDING.value
        db.commit()

        with pytest.raises(ValidationError) as exc_info:
            manager.update(tenant_id, draft.id, {"body_text": "x"})
        assert exc_info.value.code == TEMPLATE_PENDING

    def test_rename_to_existing_refused(self, manager, tenant_id, draft):
        other = manager.create(tenant_id, {"name": "otra", "body_text": "x"})

        with pytest.raises(ValidationError) as exc_info:
            manager.update(tenant_id, other.id, {"name": "Recibo de compra"})
        assert exc_info.value.code == DUPLICATE_TEMPLATE

    def test_delete_removes_trigger(self, db, manager, tenant_id, draft):
        db.add(TriggerMapping(tenant_id=tenant_id, event="sale_completed", template_id=draft.id, variable_mapping={}))
        db.commit()

        manager.delete(tenant_id, draft.id)

        assert db.query(MessageTemplate).count() == 0
        assert db.query(TriggerMapping).count() == 0


class TestSubmit:
    """Tests for provider submission."""

    def test_submit_sets_pending(self, manager, provider, tenant_id, draft):
        template = asyncio.run(manager.submit(tenant_id, draft.id))

        assert template.status == TemplateStatus.PENDING.value
        assert template.provider_template_id.startswith("stub_tpl_")

        [submission] = provider.submitted_templates
        assert submission.name == "recibo_de_compra"
        assert submission.example == "Hola Ana, su compra #1001 por $50.000 COP fue registrada."

    def test_submit_pending_does_not_call_provider(self, db, manager, provider, tenant_id, draft):
        draft.status = TemplateStatus.PENDING.value
        db.commit()

        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(manager.submit(tenant_id, draft.id))

        assert exc_info.value.code == TEMPLATE_PENDING
        assert provider.submitted_templates == []

    def test_provider_rejection_leaves_template_unchanged(self, db, tenant_id, platform_credentials, draft):
        provider = StubMessagingProvider(fail_submissions=True, failure_message="Template name already exists")
        manager = TemplateLifecycleManager(db, provider, platform_credentials)

        with pytest.raises(ProviderError) as exc_info:
            asyncio.run(manager.submit(tenant_id, draft.id))

        assert "already exists" in exc_info.value.message
        db.refresh(draft)
        assert draft.status == TemplateStatus.DRAFT.value
        assert draft.provider_template_id is None

    def test_submit_without_partner_credentials(self, db, provider, vault, tenant_id):
        manager = TemplateLifecycleManager(db, provider, CredentialStore(db, vault))
        template = manager.create(tenant_id, {"name": "sin_credenciales", "body_text": "x"})

        with pytest.raises(ConfigurationError):
            asyncio.run(manager.submit(tenant_id, template.id))


class TestSyncFromProvider:
    """Tests for pulling approved templates."""

    def test_inserts_approved_and_skips_others(self, manager, provider, tenant_id):
        provider.remote_templates = [
            RemoteTemplate("gs-1", "pedido_listo", "utility", "es", "Su pedido {{1}} esta listo", "APPROVED"),
            RemoteTemplate("gs-2", "promo_navidad", "marketing", "es", "Promo", "PENDING"),
            RemoteTemplate("gs-3", "promo_rechazada", "marketing", "es", "Promo", "REJECTED"),
        ]

        result = asyncio.run(manager.sync_from_provider(tenant_id))

        assert result.inserted == 1
        assert result.updated == 0
        [template] = manager.list_templates(tenant_id)
        assert template.name == "pedido_listo"
        assert template.status == TemplateStatus.APPROVED.value
        assert template.provider_template_id == "gs-1"

    def test_updates_submitted_template_by_provider_id(self, manager, provider, tenant_id, draft):
        submitted = asyncio.run(manager.submit(tenant_id, draft.id))
        provider.remote_templates = [
            RemoteTemplate(submitted.provider_template_id, "recibo_de_compra", "utility", "es", RECEIPT_BODY, "APPROVED"),
        ]

        result = asyncio.run(manager.sync_from_provider(tenant_id))

        assert result.updated == 1
        assert manager.get(tenant_id, draft.id).status == TemplateStatus.APPROVED.value

    def test_matches_by_name_and_language(self, manager, provider, tenant_id, draft):
        provider.remote_templates = [
            RemoteTemplate("gs-9", "recibo_de_compra", "utility", "es", RECEIPT_BODY, "APPROVED"),
        ]

        result = asyncio.run(manager.sync_from_provider(tenant_id))

        assert result.inserted == 0
        assert result.updated == 1
        template = manager.get(tenant_id, draft.id)
        assert template.provider_template_id == "gs-9"
        assert template.status == TemplateStatus.APPROVED.value

    def test_sync_is_idempotent(self, manager, provider, tenant_id):
        provider.remote_templates = [
            RemoteTemplate("gs-1", "pedido_listo", "utility", "es", "Listo", "APPROVED"),
        ]

        asyncio.run(manager.sync_from_provider(tenant_id))
        second = asyncio.run(manager.sync_from_provider(tenant_id))

        assert second.inserted == 0
        assert second.updated == 1
        assert len(manager.list_templates(tenant_id)) == 1
