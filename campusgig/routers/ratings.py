"""Rating endpoints."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.auth.middleware import AuthenticatedUser, verify_request
from campusgig.auth.rate_limit import check_rate_limit
from campusgig.database import get_db
from campusgig.models.rating import RatingType
from campusgig.schemas.rating import RatingCreate, RatingEligibility, RatingResponse, RatingStats
from campusgig.services import rating as rating_service

router = APIRouter(tags=["ratings"])


@router.get(
    "/jobs/{job_id}/ratings/eligibility",
    response_model=RatingEligibility,
    dependencies=[Depends(check_rate_limit)],
)
async def rating_eligibility(
    job_id: uuid.UUID,
    direction: RatingType,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> RatingEligibility:
    """Whether the caller may rate this job in the given direction, and why not."""
    return await rating_service.can_rate(db, job_id, auth.user_id, direction)


@router.post(
    "/jobs/{job_id}/ratings",
    response_model=RatingResponse,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def submit_rating(
    job_id: uuid.UUID,
    data: RatingCreate,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> RatingResponse:
    rating = await rating_service.submit_rating(db, job_id, auth.user_id, data)
    return RatingResponse.model_validate(rating)


@router.get(
    "/jobs/{job_id}/ratings",
    response_model=list[RatingResponse],
    dependencies=[Depends(check_rate_limit)],
)
async def get_job_ratings(
    job_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[RatingResponse]:
    ratings = await rating_service.list_ratings_for_job(db, job_id)
    return [RatingResponse.model_validate(r) for r in ratings]


@router.get(
    "/users/{user_id}/ratings",
    response_model=list[RatingResponse],
    dependencies=[Depends(check_rate_limit)],
)
async def get_user_ratings(
    user_id: uuid.UUID,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[RatingResponse]:
    """Ratings the user has received, newest first."""
    ratings = await rating_service.list_ratings_for_user(db, user_id, limit, offset)
    return [RatingResponse.model_validate(r) for r in ratings]


@router.get(
    "/users/{user_id}/rating-stats",
    response_model=RatingStats,
    dependencies=[Depends(check_rate_limit)],
)
async def get_user_rating_stats(
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> RatingStats:
    return await rating_service.get_rating_stats(db, user_id)
