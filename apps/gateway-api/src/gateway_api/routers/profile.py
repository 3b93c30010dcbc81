"""Business profile shown to customers on the messaging channel."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends

from messaging_gateway.providers.base import MessagingProvider
from messaging_gateway.service.credentials import CredentialStore

from gateway_api.deps import get_credential_store, get_provider, require_messaging_access
from gateway_api.schemas import ProfilePhotoUpdate, ProfileUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("")
async def get_profile(
    tenant_id: UUID = Depends(require_messaging_access),
    credentials: CredentialStore = Depends(get_credential_store),
    provider: MessagingProvider = Depends(get_provider),
):
    return await provider.get_business_profile(credentials.resolve_partner())


@router.put("")
async def update_profile(
    body: ProfileUpdate,
    tenant_id: UUID = Depends(require_messaging_access),
    credentials: CredentialStore = Depends(get_credential_store),
    provider: MessagingProvider = Depends(get_provider),
):
    fields = body.model_dump(exclude_none=True)
    profile = await provider.update_business_profile(credentials.resolve_partner(), fields)
    logger.info("Business profile updated", extra={"tenant_id": str(tenant_id), "fields": sorted(fields)})
    return profile


@router.put("/photo")
async def update_profile_photo(
    body: ProfilePhotoUpdate,
    tenant_id: UUID = Depends(require_messaging_access),
    credentials: CredentialStore = Depends(get_credential_store),
    provider: MessagingProvider = Depends(get_provider),
):
    response = await provider.update_profile_photo(credentials.resolve_partner(), body.image_url)
    return {"success": response.success, "error": response.error_message, "code": response.error_code}
