"""
Template Lifecycle

Owns the template workflow and its synchronization with the provider.

    draft -> pending -> approved | rejected

- Editing approved/rejected sends the template back to draft and clears
  the provider id and rejection reason.
- Editing or submitting a pending template is refused.
- A failed submission leaves local state untouched.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from messaging_gateway.errors import NotFoundError, ValidationError
from messaging_gateway.persistence.models import (
    MessageTemplate,
    TemplateCategory,
    TemplateStatus,
    TriggerMapping,
    utcnow,
)
from messaging_gateway.persistence.repo import GatewayRepository
from messaging_gateway.providers.base import MessagingProvider, ProviderError, TemplateSubmission
from messaging_gateway.service.credentials import CredentialStore

logger = logging.getLogger(__name__)

INVALID_TEMPLATE_NAME = "INVALID_TEMPLATE_NAME"
DUPLICATE_TEMPLATE = "DUPLICATE_TEMPLATE"
TEMPLATE_PENDING = "TEMPLATE_PENDING"

EDITABLE_FIELDS = (
    "name",
    "category",
    "language",
    "header_text",
    "body_text",
    "footer_text",
    "buttons",
    "variables_sample",
)

MAX_NAME_LENGTH = 512

_VARIABLE = re.compile(r"\{\{\s*(\d+)\s*\}\}")


def normalize_template_name(name: str | None) -> str:
    """
    Provider-safe template name: lowercase, underscores, ``[a-z0-9_]`` only.

    Raises:
        ValidationError: Nothing usable remains
    """
    normalized = re.sub(r"\s+", "_", (name or "").strip().lower())
    normalized = re.sub(r"[^a-z0-9_]", "", normalized)
    normalized = re.sub(r"_+", "_", normalized).strip("_")

    if not normalized or len(normalized) > MAX_NAME_LENGTH:
        raise ValidationError(
            "Template name must contain letters or digits",
            code=INVALID_TEMPLATE_NAME,
        )
    return normalized


def render_example(body: str, samples: dict[str, Any] | None) -> str:
    """Substitute ``{{n}}`` placeholders with sample values for the provider example."""
    samples = samples or {}

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        return str(samples.get(key, samples.get(int(key), f"[{key}]")))

    return _VARIABLE.sub(_sub, body)


def template_variables(body: str) -> list[int]:
    """Sorted placeholder positions used in a body."""
    return sorted({int(n) for n in _VARIABLE.findall(body or "")})


@dataclass
class SyncResult:
    inserted: int = 0
    updated: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"inserted": self.inserted, "updated": self.updated}


class TemplateLifecycleManager:
    """Template CRUD, submission and provider sync for one tenant at a time."""

    def __init__(
        self,
        db: Session,
        provider: MessagingProvider,
        credentials: CredentialStore,
    ):
        self.db = db
        self.provider = provider
        self.credentials = credentials
        self.repo = GatewayRepository(db)

    def _get(self, tenant_id: UUID, template_id: UUID) -> MessageTemplate:
        template = self.repo.get_template(tenant_id, template_id)
        if template is None:
            raise NotFoundError("Template not found")
        return template

    def _ensure_unique(self, tenant_id: UUID, name: str, language: str, exclude_id: UUID | None = None) -> None:
        existing = self.repo.get_template_by_name(tenant_id, name, language)
        if existing is not None and existing.id != exclude_id:
            raise ValidationError(
                f"A template named '{name}' already exists for language '{language}'",
                code=DUPLICATE_TEMPLATE,
            )

    # =========================================================================
    # CRUD
    # =========================================================================

    def create(self, tenant_id: UUID, data: dict[str, Any]) -> MessageTemplate:
        """
        Create a draft template.

        Args:
            tenant_id: Owning tenant
            data: name, body_text and optional category, language,
                header_text, footer_text, buttons, variables_sample

        Raises:
            ValidationError: Bad name, empty body or duplicate
        """
        name = normalize_template_name(data.get("name"))
        language = data.get("language") or "es"
        body = (data.get("body_text") or "").strip()
        if not body:
            raise ValidationError("Template body is required")

        category = _validate_category(data.get("category"))
        self._ensure_unique(tenant_id, name, language)

        template = self.repo.create_template(
            tenant_id=tenant_id,
            name=name,
            category=category,
            language=language,
            header_text=data.get("header_text"),
            body_text=body,
            footer_text=data.get("footer_text"),
            buttons=data.get("buttons") or [],
            variables_sample=data.get("variables_sample") or {},
            status=TemplateStatus.DRAFT.value,
        )
        self.db.commit()

        logger.info("Template created", extra={"tenant_id": str(tenant_id), "template": name})
        return template

    def list_templates(self, tenant_id: UUID, status: str | None = None) -> list[MessageTemplate]:
        return self.repo.list_templates(tenant_id, status)

    def get(self, tenant_id: UUID, template_id: UUID) -> MessageTemplate:
        return self._get(tenant_id, template_id)

    def update(self, tenant_id: UUID, template_id: UUID, changes: dict[str, Any]) -> MessageTemplate:
        """
        Edit a template.

        Raises:
            ValidationError: Template is pending review, or the new name is
                invalid or taken
        """
        template = self._get(tenant_id, template_id)

        if template.status == TemplateStatus.PENDING.value:
            raise ValidationError("Template is pending provider review", code=TEMPLATE_PENDING)

        changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None}

        if "name" in changes:
            changes["name"] = normalize_template_name(changes["name"])
        if "category" in changes:
            changes["category"] = _validate_category(changes["category"])
        if "body_text" in changes and not str(changes["body_text"]).strip():
            raise ValidationError("Template body is required")

        if "name" in changes or "language" in changes:
            self._ensure_unique(
                tenant_id,
                changes.get("name", template.name),
                changes.get("language", template.language),
                exclude_id=template.id,
            )

        for key, value in changes.items():
            setattr(template, key, value)

        if template.status in (TemplateStatus.APPROVED.value, TemplateStatus.REJECTED.value):
            template.status = TemplateStatus.DRAFT.value
            template.provider_template_id = None
            template.rejection_reason = None

        template.updated_at = utcnow()
        self.db.commit()
        return template

    def delete(self, tenant_id: UUID, template_id: UUID) -> None:
        template = self._get(tenant_id, template_id)
        self.db.query(TriggerMapping).filter(TriggerMapping.template_id == template.id).delete(
            synchronize_session=False
        )
        self.db.delete(template)
        self.db.commit()
        logger.info("Template deleted", extra={"tenant_id": str(tenant_id), "template_id": str(template_id)})

    # =========================================================================
    # Provider workflow
    # =========================================================================

    async def submit(self, tenant_id: UUID, template_id: UUID) -> MessageTemplate:
        """
        Register a template with the provider.

        On success the template becomes ``pending`` with the provider id.

        Raises:
            ValidationError: Already pending (the provider is not called)
            ProviderError: Provider refused; the template is unchanged
        """
        template = self._get(tenant_id, template_id)

        if template.status == TemplateStatus.PENDING.value:
            raise ValidationError("Template is already pending review", code=TEMPLATE_PENDING)

        partner = self.credentials.resolve_partner()
        submission = TemplateSubmission(
            name=template.name,
            category=template.category,
            language=template.language,
            body=template.body_text,
            example=render_example(template.body_text, template.variables_sample),
            header=template.header_text,
            footer=template.footer_text,
            buttons=template.buttons or [],
        )

        response = await self.provider.submit_template(partner, submission)
        if not response.success:
            raise ProviderError(
                response.error_message or "Template submission failed",
                code=response.error_code,
                details=response.raw_response,
            )

        template.status = TemplateStatus.PENDING.value
        template.provider_template_id = response.message_id
        template.rejection_reason = None
        template.updated_at = utcnow()
        self.db.commit()

        logger.info(
            "Template submitted",
            extra={
                "tenant_id": str(tenant_id),
                "template": template.name,
                "provider_template_id": response.message_id,
            },
        )
        return template

    async def sync_from_provider(self, tenant_id: UUID) -> SyncResult:
        """
        Pull approved templates from the provider.

        Each approved remote template updates the local row with the same
        provider id (or else the same name and language) to ``approved``,
        or is inserted as a new approved row.
        """
        partner = self.credentials.resolve_partner()
        remote_templates = await self.provider.list_templates(partner)

        result = SyncResult()
        for remote in remote_templates:
            if not remote.is_approved:
                continue

            try:
                name = normalize_template_name(remote.name)
            except ValidationError:
                logger.warning("Skipping remote template with unusable name", extra={"name": remote.name})
                continue

            template = self.repo.get_template_by_provider_id(tenant_id, remote.provider_template_id)
            if template is None:
                template = self.repo.get_template_by_name(tenant_id, name, remote.language)

            category = remote.category if remote.category in _CATEGORIES else TemplateCategory.UTILITY.value

            if template is None:
                self.repo.create_template(
                    tenant_id=tenant_id,
                    name=name,
                    category=category,
                    language=remote.language,
                    body_text=remote.body,
                    provider_template_id=remote.provider_template_id,
                    status=TemplateStatus.APPROVED.value,
                )
                result.inserted += 1
            else:
                template.status = TemplateStatus.APPROVED.value
                template.provider_template_id = remote.provider_template_id
                template.body_text = remote.body or template.body_text
                template.category = category
                template.language = remote.language
                template.rejection_reason = None
                template.updated_at = utcnow()
                result.updated += 1

        self.db.commit()

        logger.info("Templates synced", extra={"tenant_id": str(tenant_id), **result.to_dict()})
        return result


_CATEGORIES = {c.value for c in TemplateCategory}


def _validate_category(category: str | None) -> str:
    value = (category or TemplateCategory.UTILITY.value).lower()
    if value not in _CATEGORIES:
        raise ValidationError(f"Unknown template category: {category}")
    return value
