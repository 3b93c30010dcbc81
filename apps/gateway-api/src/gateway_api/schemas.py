"""Request and response models for the gateway API."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Configuration
# =============================================================================


class ConfigUpdate(BaseModel):
    enabled: Optional[bool] = None
    api_key: Optional[str] = Field(None, description="Tenant API key (stored encrypted)")
    app_name: Optional[str] = None
    sender_phone: Optional[str] = None
    notify_on_sale: Optional[bool] = None
    notify_on_low_stock: Optional[bool] = None
    notify_daily_summary: Optional[bool] = None
    business_hours: Optional[str] = None
    support_info: Optional[str] = None


class ConfigResponse(BaseModel):
    tenant_id: UUID
    enabled: bool
    has_api_key: bool
    app_name: Optional[str] = None
    sender_phone: Optional[str] = None
    notify_on_sale: bool
    notify_on_low_stock: bool
    notify_daily_summary: bool
    business_hours: Optional[str] = None
    support_info: Optional[str] = None
    error_count: int
    last_error: Optional[str] = None


class AddonActivateRequest(BaseModel):
    with_trial: bool = False


class AddonResponse(ORMModel):
    addon_key: str
    status: str
    trial_ends_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


# =============================================================================
# Quota
# =============================================================================


class PackageResponse(ORMModel):
    id: UUID
    name: str
    message_limit: int
    price: int
    sort_order: int


class SubscriptionResponse(ORMModel):
    id: UUID
    package_id: Optional[UUID] = None
    message_limit: int
    messages_used: int
    status: str
    renewal_date: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class UsageResponse(BaseModel):
    subscription: Optional[SubscriptionResponse] = None
    package: Optional[PackageResponse] = None
    remaining: int
    total_outbound: int


# =============================================================================
# Messages
# =============================================================================


class SendRequest(BaseModel):
    phone: str
    template_id: Optional[str] = Field(None, description="Provider template ID; omit for a freeform text")
    params: list[str] = Field(default_factory=list)
    text: Optional[str] = None


class DispatchResponse(BaseModel):
    success: bool
    message_id: Optional[str] = None
    log_id: Optional[UUID] = None
    error: Optional[str] = None
    code: Optional[str] = None


class MessageLogResponse(ORMModel):
    id: UUID
    direction: str
    phone: str
    message_kind: str
    template_id: Optional[str] = None
    body: Optional[str] = None
    status: str
    provider_message_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime


class MessageLogPage(BaseModel):
    items: list[MessageLogResponse]
    total: int
    limit: int
    offset: int


# =============================================================================
# Templates and triggers
# =============================================================================


class TemplateCreate(BaseModel):
    name: str
    body_text: str
    category: str = "utility"
    language: str = "es"
    header_text: Optional[str] = None
    footer_text: Optional[str] = None
    buttons: list[dict[str, Any]] = Field(default_factory=list)
    variables_sample: dict[str, str] = Field(default_factory=dict)


class TemplateUpdate(BaseModel):
    name: Optional[str] = None
    body_text: Optional[str] = None
    category: Optional[str] = None
    language: Optional[str] = None
    header_text: Optional[str] = None
    footer_text: Optional[str] = None
    buttons: Optional[list[dict[str, Any]]] = None
    variables_sample: Optional[dict[str, str]] = None


class TemplateResponse(ORMModel):
    id: UUID
    name: str
    category: str
    language: str
    header_text: Optional[str] = None
    body_text: str
    footer_text: Optional[str] = None
    buttons: list[dict[str, Any]] = Field(default_factory=list)
    variables_sample: dict[str, Any] = Field(default_factory=dict)
    provider_template_id: Optional[str] = None
    status: str
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class SyncResponse(BaseModel):
    inserted: int
    updated: int


class TriggerBind(BaseModel):
    template_id: UUID
    variable_mapping: dict[str, str] = Field(default_factory=dict)
    enabled: bool = True


class TriggerCreate(TriggerBind):
    event: str


class TriggerToggle(BaseModel):
    enabled: bool


class TriggerResponse(ORMModel):
    id: UUID
    event: str
    template_id: UUID
    variable_mapping: dict[str, str] = Field(default_factory=dict)
    enabled: bool


# =============================================================================
# Conversations
# =============================================================================


class ConversationResponse(ORMModel):
    id: UUID
    customer_phone: str
    customer_name: Optional[str] = None
    last_message_at: Optional[datetime] = None
    last_message_preview: Optional[str] = None
    unread_count: int


class ChatMessageResponse(ORMModel):
    id: UUID
    conversation_id: UUID
    direction: str
    content_type: str
    body: Optional[str] = None
    media_url: Optional[str] = None
    media_mime_type: Optional[str] = None
    media_filename: Optional[str] = None
    caption: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    contact_json: Optional[dict[str, Any]] = None
    sender_phone: Optional[str] = None
    sender_name: Optional[str] = None
    provider_message_id: Optional[str] = None
    status: str
    created_at: datetime


class ChatSendRequest(BaseModel):
    content_type: str = "text"
    body: Optional[str] = None
    media_url: Optional[str] = None
    caption: Optional[str] = None
    filename: Optional[str] = None


class ConversationStart(BaseModel):
    phone: str
    body: str
    customer_name: Optional[str] = None


class ChatSendResponse(BaseModel):
    conversation: ConversationResponse
    message: ChatMessageResponse
    dispatch: DispatchResponse


# =============================================================================
# Business profile
# =============================================================================


class ProfileUpdate(BaseModel):
    about: Optional[str] = None
    address: Optional[str] = None
    description: Optional[str] = None
    vertical: Optional[str] = None
    email: Optional[str] = None
    websites: Optional[list[str]] = None


class ProfilePhotoUpdate(BaseModel):
    image_url: str
