"""Inbox and notification endpoints."""

from functools import partial

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.auth.middleware import AuthenticatedUser, verify_request
from campusgig.auth.rate_limit import check_rate_limit
from campusgig.database import get_db
from campusgig.realtime import EventBus, get_event_bus
from campusgig.schemas.notification import (
    NotificationListResponse,
    NotificationResponse,
    ThreadResponse,
)
from campusgig.services import notification as notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse, dependencies=[Depends(check_rate_limit)])
async def list_notifications(
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> NotificationListResponse:
    notifications = await notification_service.list_notifications(db, auth.user_id)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=len(notifications),
    )


@router.get("/threads", response_model=list[ThreadResponse], dependencies=[Depends(check_rate_limit)])
async def list_threads(
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[ThreadResponse]:
    threads = await notification_service.list_threads(db, auth.user_id)
    return [ThreadResponse.model_validate(t) for t in threads]


@router.post("/read", status_code=204, dependencies=[Depends(check_rate_limit)])
async def mark_all_read(
    auth: AuthenticatedUser = Depends(verify_request),
    bus: EventBus = Depends(get_event_bus),
) -> None:
    await notification_service.mark_all_read(bus, auth.user_id)


@router.get("/events", dependencies=[Depends(check_rate_limit)])
async def notification_events(
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
) -> StreamingResponse:
    """Server-sent events: a ``snapshot``, then ``notification`` and ``read`` updates."""
    load_snapshot = partial(notification_service.list_notifications, db, auth.user_id)
    return StreamingResponse(
        notification_service.stream_notifications(bus, auth.user_id, load_snapshot),
        media_type="text/event-stream",
    )
