"""Rating gate and reputation stats.

A rating is allowed once per (job, rater, direction) after the job is completed:
the poster rates the helper (poster_to_helper) and the assigned helper rates the
poster (helper_to_poster). Eligibility is always recomputed here; a client-side
"can rate" flag is never trusted.
"""

import logging
import uuid
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.errors import (
    AlreadyRated,
    InvalidTransition,
    MarketplaceError,
    NotFound,
    Unauthorized,
    ValidationError,
)
from campusgig.models.job import Job, JobStatus
from campusgig.models.profile import Profile
from campusgig.models.rating import Rating, RatingType
from campusgig.schemas.rating import RatingCreate, RatingEligibility, RatingStats
from campusgig.services.profile import get_profile

logger = logging.getLogger(__name__)


def _check_gate(job: Job, actor_id: uuid.UUID, direction: RatingType) -> uuid.UUID:
    """Raise if ``actor_id`` may not rate ``job`` in ``direction``; return who gets rated."""
    if job.status != JobStatus.COMPLETED:
        raise InvalidTransition("You can only rate after the job is completed")

    is_owner = actor_id == job.owner_id
    is_helper = job.assigned_worker_id is not None and actor_id == job.assigned_worker_id
    if not is_owner and not is_helper:
        raise Unauthorized("You are not involved in this job")

    if direction == RatingType.POSTER_TO_HELPER:
        if not is_owner:
            raise Unauthorized("Only the job poster can rate the helper")
        return job.assigned_worker_id
    if not is_helper:
        raise Unauthorized("Only the helper can rate the poster")
    return job.owner_id


async def _get_job(db: AsyncSession, job_id: uuid.UUID) -> Job:
    result = await db.execute(
        select(Job).where(Job.id == job_id).execution_options(populate_existing=True)
    )
    job = result.scalar_one_or_none()
    if job is None:
        raise NotFound("Job not found")
    return job


async def _has_rated(
    db: AsyncSession, job_id: uuid.UUID, rater_id: uuid.UUID, direction: RatingType
) -> bool:
    result = await db.execute(
        select(Rating.id).where(
            Rating.job_id == job_id,
            Rating.rater_id == rater_id,
            Rating.rating_type == direction,
        )
    )
    return result.first() is not None


async def can_rate(
    db: AsyncSession, job_id: uuid.UUID, actor_id: uuid.UUID, direction: RatingType
) -> RatingEligibility:
    job = await _get_job(db, job_id)
    reason: str | None = None
    try:
        _check_gate(job, actor_id, direction)
    except MarketplaceError as exc:
        reason = exc.detail
    else:
        if await _has_rated(db, job_id, actor_id, direction):
            reason = "You have already rated for this job"
    return RatingEligibility(
        job_id=job_id, direction=direction.value, can_rate=reason is None, reason=reason
    )


async def submit_rating(
    db: AsyncSession, job_id: uuid.UUID, rater_id: uuid.UUID, data: RatingCreate
) -> Rating:
    """Record a rating and refresh the rated user's reputation."""
    job = await _get_job(db, job_id)
    expected_rated = _check_gate(job, rater_id, data.direction)
    if data.rated_id != expected_rated:
        raise ValidationError("Invalid rated user")
    if not 1 <= data.rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    if await _has_rated(db, job_id, rater_id, data.direction):
        raise AlreadyRated("You have already rated for this job")

    rating = Rating(
        id=uuid.uuid4(),
        job_id=job_id,
        rater_id=rater_id,
        rated_id=data.rated_id,
        rating=data.rating,
        review=data.review,
        rating_type=data.direction,
    )
    db.add(rating)
    try:
        await db.flush()
        await _update_rating_stats(db, data.rated_id)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise AlreadyRated("You have already rated for this job")
    await db.refresh(rating)
    logger.info("Rating %s (%s) on job %s by %s", rating.id, data.direction.value, job_id, rater_id)
    return rating


async def _update_rating_stats(db: AsyncSession, user_id: uuid.UUID) -> None:
    result = await db.execute(
        select(func.avg(Rating.rating), func.count(Rating.id)).where(Rating.rated_id == user_id)
    )
    average, total = result.one()
    score = Decimal(str(average or 0)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    await db.execute(
        update(Profile)
        .where(Profile.user_id == user_id)
        .values(average_rating=score, total_ratings=total)
        .execution_options(synchronize_session=False)
    )


async def get_rating_stats(db: AsyncSession, user_id: uuid.UUID) -> RatingStats:
    profile = await get_profile(db, user_id)
    return RatingStats(
        user_id=user_id,
        average_rating=profile.average_rating,
        total_ratings=profile.total_ratings,
        tasks_completed=profile.tasks_completed,
    )


async def list_ratings_for_user(
    db: AsyncSession, user_id: uuid.UUID, limit: int = 20, offset: int = 0
) -> list[Rating]:
    """Ratings the user received, newest first."""
    result = await db.execute(
        select(Rating)
        .where(Rating.rated_id == user_id)
        .order_by(Rating.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def list_ratings_for_job(db: AsyncSession, job_id: uuid.UUID) -> list[Rating]:
    result = await db.execute(
        select(Rating).where(Rating.job_id == job_id).order_by(Rating.created_at.asc())
    )
    return list(result.scalars().all())
