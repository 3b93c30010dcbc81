"""Template CRUD, provider submission and sync."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response

from messaging_gateway.service.templates import TemplateLifecycleManager

from gateway_api.deps import get_template_manager, require_messaging_access
from gateway_api.schemas import SyncResponse, TemplateCreate, TemplateResponse, TemplateUpdate

router = APIRouter(prefix="/templates", tags=["templates"])


@router.get("", response_model=list[TemplateResponse])
def list_templates(
    status: Optional[str] = None,
    tenant_id: UUID = Depends(require_messaging_access),
    manager: TemplateLifecycleManager = Depends(get_template_manager),
):
    return manager.list_templates(tenant_id, status)


@router.post("", response_model=TemplateResponse, status_code=201)
def create_template(
    body: TemplateCreate,
    tenant_id: UUID = Depends(require_messaging_access),
    manager: TemplateLifecycleManager = Depends(get_template_manager),
):
    return manager.create(tenant_id, body.model_dump())


@router.post("/sync", response_model=SyncResponse)
async def sync_templates(
    tenant_id: UUID = Depends(require_messaging_access),
    manager: TemplateLifecycleManager = Depends(get_template_manager),
):
    """Pull approved templates from the provider."""
    result = await manager.sync_from_provider(tenant_id)
    return result.to_dict()


@router.get("/{template_id}", response_model=TemplateResponse)
def get_template(
    template_id: UUID,
    tenant_id: UUID = Depends(require_messaging_access),
    manager: TemplateLifecycleManager = Depends(get_template_manager),
):
    return manager.get(tenant_id, template_id)


@router.put("/{template_id}", response_model=TemplateResponse)
def update_template(
    template_id: UUID,
    body: TemplateUpdate,
    tenant_id: UUID = Depends(require_messaging_access),
    manager: TemplateLifecycleManager = Depends(get_template_manager),
):
    return manager.update(tenant_id, template_id, body.model_dump(exclude_unset=True))


@router.delete("/{template_id}", status_code=204)
def delete_template(
    template_id: UUID,
    tenant_id: UUID = Depends(require_messaging_access),
    manager: TemplateLifecycleManager = Depends(get_template_manager),
):
    manager.delete(tenant_id, template_id)
    return Response(status_code=204)


@router.post("/{template_id}/submit", response_model=TemplateResponse)
async def submit_template(
    template_id: UUID,
    tenant_id: UUID = Depends(require_messaging_access),
    manager: TemplateLifecycleManager = Depends(get_template_manager),
):
    """Send a draft or rejected template to the provider for review."""
    return await manager.submit(tenant_id, template_id)
