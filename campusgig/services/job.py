"""Job lifecycle business logic.

Every transition is a single compare-and-set UPDATE guarded by the status and
assigned worker observed when the job was read. If the row changed in between
(for example two concurrent assignments), no row matches and the caller gets
InvalidTransition instead of a silent double assignment.

System notices posted to the worker's conversation are best-effort: the job
row is the source of truth, so a failed notice is logged and the transition
still succeeds.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import NoReturn

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.errors import (
    InvalidTransition,
    MarketplaceError,
    NotFound,
    Unauthorized,
    ValidationError,
)
from campusgig.models.conversation import Conversation, Message, MessageKind
from campusgig.models.job import (
    FEED_STATUSES,
    URGENCY_RANK,
    VALID_TRANSITIONS,
    Job,
    JobStatus,
)
from campusgig.models.profile import Profile
from campusgig.models.rating import Rating, RatingType
from campusgig.realtime import EventBus
from campusgig.schemas.job import JobCreate, JobFilters, JobSort
from campusgig.services import conversation as conversation_service

logger = logging.getLogger(__name__)

SYSTEM_MESSAGES: dict[MessageKind, str] = {
    MessageKind.SYSTEM_ASSIGNED: 'You\'ve been selected for "{title}". Ready when you are.',
    MessageKind.SYSTEM_COMPLETED: 'Task completed. "{title}" is now finished. Thank you for your work.',
    MessageKind.SYSTEM_CANCELLED: 'This task has been cancelled. "{title}" is no longer available.',
}


def system_message_text(kind: MessageKind, title: str) -> str:
    return SYSTEM_MESSAGES[kind].format(title=title)


@dataclass
class PostedJob:
    job: Job
    applicant_count: int
    has_rated: bool


@dataclass
class AssignedJob:
    job: Job
    has_rated: bool


def _assert_transition(current: JobStatus, target: JobStatus, detail: str) -> None:
    """Raise InvalidTransition with ``detail`` if current -> target is not allowed."""
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransition(detail)


async def _get_job(db: AsyncSession, job_id: uuid.UUID) -> Job:
    result = await db.execute(
        select(Job).where(Job.id == job_id).execution_options(populate_existing=True)
    )
    job = result.scalar_one_or_none()
    if job is None:
        raise NotFound("Job not found")
    return job


async def _compare_and_set(db: AsyncSession, job: Job, **values: object) -> bool:
    """Apply ``values`` only if the row still has the status and worker we read."""
    if job.assigned_worker_id is None:
        same_worker = Job.assigned_worker_id.is_(None)
    else:
        same_worker = Job.assigned_worker_id == job.assigned_worker_id
    result = await db.execute(
        update(Job)
        .where(Job.id == job.id, Job.status == job.status, same_worker)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _raise_conflict(db: AsyncSession, job_id: uuid.UUID) -> NoReturn:
    await db.rollback()
    if await db.get(Job, job_id) is None:
        raise NotFound("Job not found")
    raise InvalidTransition("This job was just updated by someone else. Refresh and try again.")


async def _adjust_tasks_completed(db: AsyncSession, worker_id: uuid.UUID, delta: int) -> None:
    await db.execute(
        update(Profile)
        .where(Profile.user_id == worker_id, Profile.tasks_completed + delta >= 0)
        .values(tasks_completed=Profile.tasks_completed + delta)
        .execution_options(synchronize_session=False)
    )


async def _post_system_message(
    db: AsyncSession,
    bus: EventBus,
    job_id: uuid.UUID,
    worker_id: uuid.UUID,
    actor_id: uuid.UUID,
    kind: MessageKind,
    title: str,
    *,
    create: bool = False,
) -> Message | None:
    try:
        if create:
            conversation = await conversation_service.get_or_create_conversation(
                db, job_id, worker_id, allow_closed=True
            )
        else:
            conversation = await conversation_service.find_conversation(db, job_id, worker_id)
            if conversation is None:
                return None
        return await conversation_service.append_message(
            db, bus, conversation.id, actor_id, system_message_text(kind, title), kind=kind
        )
    except (MarketplaceError, SQLAlchemyError):
        logger.exception("Failed to post %s notice for job %s", kind.value, job_id)
        await db.rollback()
        return None


async def create_job(db: AsyncSession, owner_id: uuid.UUID, data: JobCreate) -> Job:
    job = Job(
        id=uuid.uuid4(),
        owner_id=owner_id,
        title=data.title,
        description=data.description,
        price=data.price,
        urgency=data.urgency,
        location=data.location,
        category=data.category,
        status=JobStatus.OPEN,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    logger.info("Job %s posted by %s", job.id, owner_id)
    return job


async def get_job(db: AsyncSession, job_id: uuid.UUID) -> Job:
    return await _get_job(db, job_id)


async def list_jobs(db: AsyncSession, filters: JobFilters) -> list[Job]:
    """Public feed. Substring search only; results are not ranked by relevance."""
    query = select(Job)
    if filters.status is not None:
        query = query.where(Job.status == filters.status)
    else:
        query = query.where(Job.status.in_(FEED_STATUSES))
    if filters.q and filters.q.strip():
        term = filters.q.strip()
        query = query.where(
            Job.title.icontains(term, autoescape=True)
            | Job.description.icontains(term, autoescape=True)
        )
    if filters.category is not None:
        query = query.where(Job.category == filters.category)
    if filters.urgency is not None:
        query = query.where(Job.urgency == filters.urgency)
    if filters.location:
        query = query.where(Job.location == filters.location)
    if filters.min_price is not None:
        query = query.where(Job.price >= filters.min_price)
    if filters.max_price is not None:
        query = query.where(Job.price <= filters.max_price)

    if filters.sort == JobSort.OLDEST:
        order = (Job.created_at.asc(),)
    elif filters.sort == JobSort.PRICE_LOW:
        order = (Job.price.asc(), Job.created_at.desc())
    elif filters.sort == JobSort.PRICE_HIGH:
        order = (Job.price.desc(), Job.created_at.desc())
    elif filters.sort == JobSort.URGENCY:
        rank = case(*((Job.urgency == urgency, r) for urgency, r in URGENCY_RANK.items()), else_=99)
        order = (rank.asc(), Job.created_at.desc())
    else:
        order = (Job.created_at.desc(),)

    result = await db.execute(
        query.order_by(*order).limit(filters.limit).offset(filters.offset)
    )
    return list(result.scalars().all())


async def list_posted_jobs(db: AsyncSession, owner_id: uuid.UUID) -> list[PostedJob]:
    """The poster's own jobs with applicant counts and whether they rated the helper."""
    applicants = (
        select(Conversation.job_id, func.count(Conversation.id).label("applicant_count"))
        .group_by(Conversation.job_id)
        .subquery()
    )
    rated = select(Rating.job_id).where(
        Rating.rater_id == owner_id,
        Rating.rating_type == RatingType.POSTER_TO_HELPER,
    )
    result = await db.execute(
        select(Job, func.coalesce(applicants.c.applicant_count, 0), Job.id.in_(rated))
        .outerjoin(applicants, applicants.c.job_id == Job.id)
        .where(Job.owner_id == owner_id)
        .order_by(Job.created_at.desc())
    )
    return [
        PostedJob(job=job, applicant_count=int(count), has_rated=bool(has_rated))
        for job, count, has_rated in result.all()
    ]


async def list_assigned_jobs(db: AsyncSession, worker_id: uuid.UUID) -> list[AssignedJob]:
    """Jobs currently bound to the worker, with whether they rated the poster."""
    rated = select(Rating.job_id).where(
        Rating.rater_id == worker_id,
        Rating.rating_type == RatingType.HELPER_TO_POSTER,
    )
    result = await db.execute(
        select(Job, Job.id.in_(rated))
        .where(Job.assigned_worker_id == worker_id)
        .order_by(Job.created_at.desc())
    )
    return [AssignedJob(job=job, has_rated=bool(has_rated)) for job, has_rated in result.all()]


async def delete_job(db: AsyncSession, job_id: uuid.UUID, caller_id: uuid.UUID) -> None:
    """Owner deletes a job together with its conversations, messages and ratings."""
    job = await _get_job(db, job_id)
    if caller_id != job.owner_id:
        raise Unauthorized("You are not authorized to delete this job")

    conversation_ids = select(Conversation.id).where(Conversation.job_id == job_id)
    await db.execute(delete(Message).where(Message.conversation_id.in_(conversation_ids)))
    await db.execute(delete(Conversation).where(Conversation.job_id == job_id))
    await db.execute(delete(Rating).where(Rating.job_id == job_id))
    await db.delete(job)
    await db.commit()
    logger.info("Job %s deleted by %s", job_id, caller_id)


async def assign_worker(
    db: AsyncSession,
    bus: EventBus,
    job_id: uuid.UUID,
    worker_id: uuid.UUID,
    caller_id: uuid.UUID,
) -> Job:
    """Poster binds one applicant to an open job and notifies them."""
    job = await _get_job(db, job_id)
    # Status first: assigning on a taken job fails the same way for everyone.
    _assert_transition(job.status, JobStatus.IN_PROGRESS, "Can only assign workers to open jobs")
    if caller_id != job.owner_id:
        raise Unauthorized("You can only assign workers to your own jobs")
    if worker_id == job.owner_id:
        raise ValidationError("You cannot assign yourself to your own job")
    if await db.get(Profile, worker_id) is None:
        raise NotFound("Worker not found")

    title = job.title
    if not await _compare_and_set(
        db, job, status=JobStatus.IN_PROGRESS, assigned_worker_id=worker_id
    ):
        await _raise_conflict(db, job_id)
    await db.commit()
    logger.info("Job %s assigned to %s", job_id, worker_id)

    await _post_system_message(
        db, bus, job_id, worker_id, caller_id, MessageKind.SYSTEM_ASSIGNED, title, create=True
    )
    await db.refresh(job)
    return job


async def set_job_status(
    db: AsyncSession,
    bus: EventBus,
    job_id: uuid.UUID,
    target: JobStatus,
    caller_id: uuid.UUID,
) -> Job:
    """Complete, cancel or reopen a job."""
    job = await _get_job(db, job_id)
    is_owner = caller_id == job.owner_id
    is_worker = job.assigned_worker_id is not None and caller_id == job.assigned_worker_id

    notice: MessageKind | None = None
    if target == JobStatus.COMPLETED:
        if not (is_owner or is_worker):
            raise Unauthorized("Only the job owner or assigned worker can complete a job")
        if job.status != JobStatus.IN_PROGRESS:
            raise InvalidTransition("Job must be in progress to be completed")
        values = {"status": JobStatus.COMPLETED, "completed_at": datetime.now(UTC)}
        notice = MessageKind.SYSTEM_COMPLETED
    elif target == JobStatus.CANCELLED:
        if not is_owner:
            raise Unauthorized("Only the job owner can cancel a job")
        _assert_transition(
            job.status, JobStatus.CANCELLED,
            f"A {job.status.value.replace('_', ' ')} job cannot be cancelled",
        )
        values = {"status": JobStatus.CANCELLED, "assigned_worker_id": None}
        notice = MessageKind.SYSTEM_CANCELLED
    elif target == JobStatus.OPEN:
        if not is_owner:
            raise Unauthorized("Only the job owner can reopen a job")
        _assert_transition(job.status, JobStatus.OPEN, "Job is already open")
        values = {"status": JobStatus.OPEN, "assigned_worker_id": None, "completed_at": None}
    else:
        raise InvalidTransition("Assign a worker to start a job")

    previous_status = job.status
    previous_worker = job.assigned_worker_id
    title = job.title
    if not await _compare_and_set(db, job, **values):
        await _raise_conflict(db, job_id)
    if previous_worker is not None:
        if target == JobStatus.COMPLETED:
            await _adjust_tasks_completed(db, previous_worker, 1)
        elif previous_status == JobStatus.COMPLETED:
            # Reopening a finished job takes the completion back.
            await _adjust_tasks_completed(db, previous_worker, -1)
    await db.commit()
    logger.info("Job %s moved to %s by %s", job_id, target.value, caller_id)

    if notice is not None and previous_worker is not None:
        await _post_system_message(db, bus, job_id, previous_worker, caller_id, notice, title)
    await db.refresh(job)
    return job


async def unassign_worker(
    db: AsyncSession, bus: EventBus, job_id: uuid.UUID, caller_id: uuid.UUID
) -> Job:
    """Release the assigned worker and put the job back on the board."""
    job = await _get_job(db, job_id)
    if caller_id != job.owner_id:
        raise Unauthorized("Only the job owner can unassign a worker")
    if job.status != JobStatus.IN_PROGRESS:
        raise InvalidTransition("Only jobs in progress have a worker to unassign")
    return await set_job_status(db, bus, job_id, JobStatus.OPEN, caller_id)
