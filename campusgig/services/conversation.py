"""Conversation and message store.

A conversation is the single thread between a job's poster and one applicant.
Messages are append-only and read back in (created_at, id) order. Every stored
message is published to the realtime bus after commit.
"""

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import Select, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.config import settings
from campusgig.errors import InvalidTransition, NotFound, Unauthorized, ValidationError
from campusgig.models.conversation import Conversation, Message, MessageKind
from campusgig.models.job import Job, JobStatus
from campusgig.models.profile import Profile
from campusgig.realtime import (
    EventBus,
    MessageInserted,
    conversation_topic,
    publish_quietly,
    user_topic,
)
from campusgig.schemas.common import UserSummary
from campusgig.services.profile import get_profiles, summarize

logger = logging.getLogger(__name__)


@dataclass
class Applicant:
    conversation: Conversation
    worker: UserSummary
    last_message: Message | None
    message_count: int


def _assert_participant(conversation: Conversation, job: Job, user_id: uuid.UUID) -> None:
    if user_id != conversation.worker_id and user_id != job.owner_id:
        raise Unauthorized("You are not part of this conversation")


async def _get_context(
    db: AsyncSession, conversation_id: uuid.UUID
) -> tuple[Conversation, Job]:
    result = await db.execute(
        select(Conversation, Job)
        .join(Job, Job.id == Conversation.job_id)
        .where(Conversation.id == conversation_id)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFound("Conversation not found")
    return row[0], row[1]


async def get_conversation(
    db: AsyncSession, conversation_id: uuid.UUID, user_id: uuid.UUID
) -> Conversation:
    """Fetch a conversation the caller takes part in."""
    conversation, job = await _get_context(db, conversation_id)
    _assert_participant(conversation, job, user_id)
    return conversation


async def find_conversation(
    db: AsyncSession, job_id: uuid.UUID, worker_id: uuid.UUID
) -> Conversation | None:
    result = await db.execute(
        select(Conversation).where(
            Conversation.job_id == job_id,
            Conversation.worker_id == worker_id,
        )
    )
    return result.scalar_one_or_none()


async def get_or_create_conversation(
    db: AsyncSession,
    job_id: uuid.UUID,
    worker_id: uuid.UUID,
    *,
    allow_closed: bool = False,
) -> Conversation:
    """Return the (job, worker) conversation, opening it if needed. Idempotent.

    New applicants are only accepted while the job is open; ``allow_closed`` is
    used by the assignment path, which opens the thread as part of binding.
    """
    existing = await find_conversation(db, job_id, worker_id)
    if existing is not None:
        return existing

    job = await db.get(Job, job_id)
    if job is None:
        raise NotFound("Job not found")
    if worker_id == job.owner_id:
        raise ValidationError("You cannot apply to your own job")
    if not allow_closed and job.status != JobStatus.OPEN:
        raise InvalidTransition("This job is no longer accepting applicants")

    conversation = Conversation(id=uuid.uuid4(), job_id=job_id, worker_id=worker_id)
    db.add(conversation)
    try:
        await db.commit()
    except IntegrityError:
        # Concurrent first contact (e.g. a double-submitted "apply"): re-read.
        await db.rollback()
        existing = await find_conversation(db, job_id, worker_id)
        if existing is None:
            raise
        return existing

    await db.refresh(conversation)
    logger.info("Conversation %s opened on job %s by %s", conversation.id, job_id, worker_id)
    return conversation


async def append_message(
    db: AsyncSession,
    bus: EventBus,
    conversation_id: uuid.UUID,
    sender_id: uuid.UUID,
    content: str,
    kind: MessageKind = MessageKind.USER_TEXT,
) -> Message:
    """Store a message from a participant and publish it."""
    conversation, job = await _get_context(db, conversation_id)
    _assert_participant(conversation, job, sender_id)

    text = (content or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if len(text) > settings.max_message_length:
        raise ValidationError(
            f"Message is too long (max {settings.max_message_length} characters)"
        )

    sender = await db.get(Profile, sender_id)
    sender_name = summarize(sender_id, sender).display_name
    job_id, job_title, poster_id = job.id, job.title, job.owner_id
    worker_id = conversation.worker_id

    message = Message(
        conversation_id=conversation_id,
        sender_id=sender_id,
        kind=kind,
        content=text,
    )
    db.add(message)
    await db.commit()
    await db.refresh(message)

    event = MessageInserted(
        message_id=message.id,
        conversation_id=conversation_id,
        job_id=job_id,
        job_title=job_title,
        poster_id=poster_id,
        worker_id=worker_id,
        sender_id=sender_id,
        sender_name=sender_name,
        kind=kind,
        content=text,
        created_at=message.created_at,
    )
    await publish_quietly(
        bus,
        [conversation_topic(conversation_id), user_topic(poster_id), user_topic(worker_id)],
        event,
    )
    return message


async def list_messages(
    db: AsyncSession, conversation_id: uuid.UUID, user_id: uuid.UUID
) -> list[Message]:
    """Full history of a conversation, oldest first."""
    await get_conversation(db, conversation_id, user_id)
    result = await db.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
    )
    return list(result.scalars().all())


async def latest_messages(
    db: AsyncSession,
    conversation_ids: Iterable[uuid.UUID] | Select,
    *,
    exclude_sender: uuid.UUID | None = None,
) -> dict[uuid.UUID, tuple[Message, int]]:
    """Newest message per conversation, with the number of messages considered.

    With ``exclude_sender`` the sender's own messages are ignored, which yields
    the latest inbound message per conversation.
    """
    if not isinstance(conversation_ids, Select):
        conversation_ids = list(conversation_ids)
        if not conversation_ids:
            return {}

    ranked = select(
        Message.id.label("message_id"),
        func.row_number()
        .over(
            partition_by=Message.conversation_id,
            order_by=(Message.created_at.desc(), Message.id.desc()),
        )
        .label("position"),
        func.count(Message.id).over(partition_by=Message.conversation_id).label("message_count"),
    ).where(Message.conversation_id.in_(conversation_ids))
    if exclude_sender is not None:
        ranked = ranked.where(Message.sender_id != exclude_sender)
    ranked = ranked.subquery()

    result = await db.execute(
        select(Message, ranked.c.message_count)
        .join(ranked, Message.id == ranked.c.message_id)
        .where(ranked.c.position == 1)
    )
    return {message.conversation_id: (message, count) for message, count in result.all()}


async def list_applicants(db: AsyncSession, job_id: uuid.UUID) -> list[Applicant]:
    """Every applicant of a job with their latest message, in order of arrival."""
    result = await db.execute(
        select(Conversation)
        .where(Conversation.job_id == job_id)
        .order_by(Conversation.created_at.asc())
    )
    conversations = list(result.scalars().all())
    if not conversations:
        return []

    latest = await latest_messages(db, [c.id for c in conversations])
    profiles = await get_profiles(db, (c.worker_id for c in conversations))

    applicants = []
    for conversation in conversations:
        last_message, count = latest.get(conversation.id, (None, 0))
        applicants.append(
            Applicant(
                conversation=conversation,
                worker=summarize(conversation.worker_id, profiles.get(conversation.worker_id)),
                last_message=last_message,
                message_count=count,
            )
        )
    return applicants


def participating_conversations(user_id: uuid.UUID) -> Select:
    """Ids of conversations the user is in, as poster or as worker."""
    return (
        select(Conversation.id)
        .join(Job, Job.id == Conversation.job_id)
        .where(or_(Conversation.worker_id == user_id, Job.owner_id == user_id))
    )


async def list_conversations(db: AsyncSession, user_id: uuid.UUID) -> list[Conversation]:
    result = await db.execute(
        select(Conversation)
        .where(Conversation.id.in_(participating_conversations(user_id)))
        .order_by(Conversation.created_at.desc())
    )
    return list(result.scalars().all())
