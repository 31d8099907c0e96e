"""Conversation and message endpoints, including the live message stream."""

import uuid

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.auth.middleware import AuthenticatedUser, verify_request
from campusgig.auth.rate_limit import check_rate_limit
from campusgig.database import get_db
from campusgig.realtime import EventBus, get_event_bus
from campusgig.schemas.conversation import ConversationResponse, MessageCreate, MessageResponse
from campusgig.services import conversation as conversation_service
from campusgig.services.notification import stream_conversation

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get("", response_model=list[ConversationResponse], dependencies=[Depends(check_rate_limit)])
async def list_conversations(
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[ConversationResponse]:
    conversations = await conversation_service.list_conversations(db, auth.user_id)
    return [ConversationResponse.model_validate(c) for c in conversations]


@router.get("/{conversation_id}/messages", response_model=list[MessageResponse], dependencies=[Depends(check_rate_limit)])
async def list_messages(
    conversation_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[MessageResponse]:
    messages = await conversation_service.list_messages(db, conversation_id, auth.user_id)
    return [MessageResponse.model_validate(m) for m in messages]


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def send_message(
    conversation_id: uuid.UUID,
    data: MessageCreate,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
) -> MessageResponse:
    message = await conversation_service.append_message(
        db, bus, conversation_id, auth.user_id, data.content
    )
    return MessageResponse.model_validate(message)


@router.get("/{conversation_id}/events", dependencies=[Depends(check_rate_limit)])
async def conversation_events(
    conversation_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
) -> StreamingResponse:
    """Server-sent events: one ``message`` event per new message. Participants only."""
    await conversation_service.get_conversation(db, conversation_id, auth.user_id)
    return StreamingResponse(
        stream_conversation(bus, conversation_id), media_type="text/event-stream"
    )
