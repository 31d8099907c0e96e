"""Inbox threads, inbound-message notifications and their live SSE streams."""

import asyncio
import json
import logging
import uuid
from collections import OrderedDict
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.config import settings
from campusgig.models.conversation import Conversation, MessageKind
from campusgig.models.job import Job
from campusgig.realtime import (
    EventBus,
    MessageInserted,
    NotificationsRead,
    conversation_topic,
    subscription,
    user_topic,
)
from campusgig.schemas.conversation import MessageResponse
from campusgig.schemas.notification import NotificationListResponse, NotificationResponse
from campusgig.services.conversation import latest_messages, participating_conversations
from campusgig.services.profile import get_profiles, summarize

logger = logging.getLogger(__name__)

KEEPALIVE = ": keepalive\n\n"


@dataclass
class Thread:
    conversation_id: uuid.UUID
    job_id: uuid.UUID
    job_title: str
    other_user_id: uuid.UUID
    other_user_name: str
    last_message: str
    last_message_kind: MessageKind
    last_message_at: datetime
    last_message_from_me: bool
    message_count: int
    is_job_owner: bool
    last_message_id: int = 0


@dataclass
class Notification:
    message_id: int
    conversation_id: uuid.UUID
    job_id: uuid.UUID
    job_title: str
    sender_id: uuid.UUID
    sender_name: str
    kind: MessageKind
    content: str
    created_at: datetime
    read: bool = False

    @classmethod
    def from_event(cls, event: MessageInserted) -> "Notification":
        return cls(
            message_id=event.message_id,
            conversation_id=event.conversation_id,
            job_id=event.job_id,
            job_title=event.job_title,
            sender_id=event.sender_id,
            sender_name=event.sender_name,
            kind=event.kind,
            content=event.content,
            created_at=event.created_at,
        )


async def _conversation_jobs(
    db: AsyncSession, conversation_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, tuple[Conversation, Job]]:
    ids = list(conversation_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(Conversation, Job)
        .join(Job, Job.id == Conversation.job_id)
        .where(Conversation.id.in_(ids))
    )
    return {conversation.id: (conversation, job) for conversation, job in result.all()}


async def list_threads(db: AsyncSession, user_id: uuid.UUID) -> list[Thread]:
    """One row per conversation of the user that has at least one message, newest first."""
    latest = await latest_messages(db, participating_conversations(user_id))
    contexts = await _conversation_jobs(db, latest.keys())

    others: dict[uuid.UUID, uuid.UUID] = {}
    for conversation_id, (conversation, job) in contexts.items():
        others[conversation_id] = (
            conversation.worker_id if job.owner_id == user_id else job.owner_id
        )
    profiles = await get_profiles(db, others.values())

    threads = []
    for conversation_id, (message, count) in latest.items():
        conversation, job = contexts[conversation_id]
        other_id = others[conversation_id]
        threads.append(
            Thread(
                conversation_id=conversation_id,
                job_id=job.id,
                job_title=job.title,
                other_user_id=other_id,
                other_user_name=summarize(other_id, profiles.get(other_id)).display_name,
                last_message=message.content,
                last_message_kind=message.kind,
                last_message_at=message.created_at,
                last_message_from_me=message.sender_id == user_id,
                message_count=count,
                is_job_owner=job.owner_id == user_id,
                last_message_id=message.id,
            )
        )
    threads.sort(key=lambda t: (t.last_message_at, t.last_message_id), reverse=True)
    return threads


async def list_notifications(db: AsyncSession, user_id: uuid.UUID) -> list[Notification]:
    """Latest message per conversation that someone else sent to the user, newest first.

    Read state is not stored, so every entry of a fresh fetch counts as unread.
    """
    latest = await latest_messages(
        db, participating_conversations(user_id), exclude_sender=user_id
    )
    contexts = await _conversation_jobs(db, latest.keys())
    senders = await get_profiles(db, (m.sender_id for m, _ in latest.values()))

    notifications = []
    for conversation_id, (message, _count) in latest.items():
        _conversation, job = contexts[conversation_id]
        notifications.append(
            Notification(
                message_id=message.id,
                conversation_id=conversation_id,
                job_id=job.id,
                job_title=job.title,
                sender_id=message.sender_id,
                sender_name=summarize(message.sender_id, senders.get(message.sender_id)).display_name,
                kind=message.kind,
                content=message.content,
                created_at=message.created_at,
            )
        )
    notifications.sort(key=lambda n: (n.created_at, n.message_id), reverse=True)
    return notifications


class NotificationFeed:
    """Live notification view for one user.

    Seeded from ``list_notifications`` and kept current by applying
    ``MessageInserted`` events. Holds at most one entry per conversation,
    newest first.
    """

    def __init__(self, user_id: uuid.UUID, snapshot: Iterable[Notification] = ()) -> None:
        self.user_id = user_id
        self._entries: OrderedDict[uuid.UUID, Notification] = OrderedDict()
        for notification in snapshot:
            self._entries.setdefault(notification.conversation_id, notification)
        self.unread_count = len(self._entries)

    @property
    def entries(self) -> list[Notification]:
        return list(self._entries.values())

    def apply(self, event: MessageInserted) -> Notification | None:
        """Upsert the event's conversation entry; returns it, or None if ignored."""
        if event.sender_id == self.user_id or not event.involves(self.user_id):
            return None
        current = self._entries.get(event.conversation_id)
        # Ids grow with inserts; anything not newer is already in the feed.
        if current is not None and current.message_id >= event.message_id:
            return None
        entry = Notification.from_event(event)
        self._entries[event.conversation_id] = entry
        self._entries.move_to_end(event.conversation_id, last=False)
        self.unread_count += 1
        return entry

    def mark_all_read(self) -> None:
        self.unread_count = 0
        for conversation_id, entry in self._entries.items():
            self._entries[conversation_id] = replace(entry, read=True)

    def to_response(self) -> NotificationListResponse:
        return NotificationListResponse(
            notifications=[NotificationResponse.model_validate(n) for n in self._entries.values()],
            unread_count=self.unread_count,
        )


def sse_event(name: str, payload: BaseModel | dict) -> str:
    if isinstance(payload, BaseModel):
        data = payload.model_dump_json()
    else:
        data = json.dumps(payload, default=str)
    return f"event: {name}\ndata: {data}\n\n"


async def _next_event(queue: asyncio.Queue):
    try:
        return await asyncio.wait_for(queue.get(), timeout=settings.sse_keepalive_seconds)
    except asyncio.TimeoutError:
        return None


async def stream_notifications(
    bus: EventBus,
    user_id: uuid.UUID,
    load_snapshot: Callable[[], Awaitable[list[Notification]]],
) -> AsyncIterator[str]:
    """SSE body: a ``snapshot`` event, then ``notification`` and ``read`` events.

    The snapshot is loaded only once the subscription is live, so a message
    inserted while it loads is still delivered; the feed drops the overlap.
    """
    async with subscription(bus, user_topic(user_id)) as queue:
        feed = NotificationFeed(user_id, await load_snapshot())
        yield sse_event("snapshot", feed.to_response())
        while True:
            event = await _next_event(queue)
            if event is None:
                yield KEEPALIVE
            elif isinstance(event, NotificationsRead):
                feed.mark_all_read()
                yield sse_event("read", {"unread_count": feed.unread_count})
            else:
                entry = feed.apply(event)
                if entry is not None:
                    payload = NotificationResponse.model_validate(entry).model_dump(mode="json")
                    payload["unread_count"] = feed.unread_count
                    yield sse_event("notification", payload)


async def stream_conversation(bus: EventBus, conversation_id: uuid.UUID) -> AsyncIterator[str]:
    """SSE body: one ``message`` event per message inserted into the conversation."""
    async with subscription(bus, conversation_topic(conversation_id)) as queue:
        yield KEEPALIVE
        while True:
            event = await _next_event(queue)
            if event is None:
                yield KEEPALIVE
            elif isinstance(event, MessageInserted):
                message = MessageResponse(
                    id=event.message_id,
                    conversation_id=event.conversation_id,
                    sender_id=event.sender_id,
                    kind=event.kind,
                    content=event.content,
                    created_at=event.created_at,
                )
                yield sse_event("message", message)


async def mark_all_read(bus: EventBus, user_id: uuid.UUID) -> None:
    """Tell the user's open streams to clear their unread badge."""
    await bus.publish(user_topic(user_id), NotificationsRead(user_id=user_id))
    logger.debug("Notifications marked read for %s", user_id)
