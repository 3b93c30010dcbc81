"""Conversations: list, history, read state and agent replies."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from messaging_gateway.errors import ValidationError
from messaging_gateway.persistence.models import ChatContentType
from messaging_gateway.routing.conversation import ConversationStore
from messaging_gateway.service.chat import ChatSendResult, ChatService

from gateway_api.deps import get_chat_service, get_db, require_messaging_access
from gateway_api.schemas import (
    ChatMessageResponse,
    ChatSendRequest,
    ChatSendResponse,
    ConversationResponse,
    ConversationStart,
)

router = APIRouter(prefix="/conversations", tags=["chat"])


def _send_response(result: ChatSendResult) -> ChatSendResponse:
    return ChatSendResponse(
        conversation=ConversationResponse.model_validate(result.conversation),
        message=ChatMessageResponse.model_validate(result.message),
        dispatch=result.dispatch.to_dict(),
    )


@router.get("", response_model=list[ConversationResponse])
def list_conversations(
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    tenant_id: UUID = Depends(require_messaging_access),
    db: Session = Depends(get_db),
):
    """Most recent first; search matches phone or customer name."""
    return ConversationStore(db).list_conversations(tenant_id, search=search, limit=limit, offset=offset)


@router.post("", response_model=ChatSendResponse, status_code=201)
async def start_conversation(
    body: ConversationStart,
    tenant_id: UUID = Depends(require_messaging_access),
    chat: ChatService = Depends(get_chat_service),
):
    result = await chat.start_conversation(tenant_id, body.phone, body.body, customer_name=body.customer_name)
    return _send_response(result)


@router.get("/{conversation_id}/messages", response_model=list[ChatMessageResponse])
def get_messages(
    conversation_id: UUID,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    tenant_id: UUID = Depends(require_messaging_access),
    db: Session = Depends(get_db),
):
    return ConversationStore(db).get_messages(tenant_id, conversation_id, limit=limit, offset=offset)


@router.post("/{conversation_id}/messages", response_model=ChatSendResponse)
async def send_message(
    conversation_id: UUID,
    body: ChatSendRequest,
    tenant_id: UUID = Depends(require_messaging_access),
    chat: ChatService = Depends(get_chat_service),
):
    try:
        content_type = ChatContentType(body.content_type)
    except ValueError:
        raise ValidationError(f"Unknown content type: {body.content_type}")

    result = await chat.send_message(
        tenant_id,
        conversation_id,
        body=body.body,
        content_type=content_type,
        media_url=body.media_url,
        caption=body.caption,
        filename=body.filename,
    )
    return _send_response(result)


@router.post("/{conversation_id}/read", response_model=ConversationResponse)
async def mark_read(
    conversation_id: UUID,
    tenant_id: UUID = Depends(require_messaging_access),
    chat: ChatService = Depends(get_chat_service),
):
    return await chat.mark_read(tenant_id, conversation_id)
