"""Tests for the rating gate (campusgig/services/rating.py)."""

import uuid
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.errors import AlreadyRated, InvalidTransition, Unauthorized, ValidationError
from campusgig.models.job import JobStatus
from campusgig.models.rating import RatingType
from campusgig.realtime import InMemoryEventBus
from campusgig.schemas.rating import RatingCreate
from campusgig.services import job as job_service
from campusgig.services import rating as rating_service
from tests.conftest import (
    make_assigned_job,
    make_completed_job,
    make_headers,
    make_job_data,
    make_profile,
)


def _poster_rates(worker_id: uuid.UUID, rating: int = 5, review: str | None = None) -> RatingCreate:
    return RatingCreate(
        rated_id=worker_id, rating=rating, review=review, direction=RatingType.POSTER_TO_HELPER
    )


def _helper_rates(owner_id: uuid.UUID, rating: int = 4) -> RatingCreate:
    return RatingCreate(rated_id=owner_id, rating=rating, direction=RatingType.HELPER_TO_POSTER)


@pytest.mark.asyncio
async def test_both_directions_allowed_once(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    job = await make_completed_job(db_session, bus, owner, worker)

    rating = await rating_service.submit_rating(
        db_session, job.id, owner.user_id, _poster_rates(worker.user_id, review="  Quick and careful ")
    )
    assert rating.rating_type == RatingType.POSTER_TO_HELPER
    assert rating.review == "Quick and careful"

    await rating_service.submit_rating(db_session, job.id, worker.user_id, _helper_rates(owner.user_id))

    with pytest.raises(AlreadyRated):
        await rating_service.submit_rating(db_session, job.id, owner.user_id, _poster_rates(worker.user_id, 1))

    ratings = await rating_service.list_ratings_for_job(db_session, job.id)
    assert len(ratings) == 2


@pytest.mark.asyncio
async def test_duplicate_caught_by_unique_index(
    db_session: AsyncSession, bus: InMemoryEventBus, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Two submits that both pass the pre-check: the insert of the second one fails."""
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    job = await make_completed_job(db_session, bus, owner, worker)
    job_id, owner_id, worker_id = job.id, owner.user_id, worker.user_id
    await rating_service.submit_rating(db_session, job_id, owner_id, _poster_rates(worker_id, 5))

    async def not_rated_yet(*args: object) -> bool:
        return False

    monkeypatch.setattr(rating_service, "_has_rated", not_rated_yet)
    with pytest.raises(AlreadyRated):
        await rating_service.submit_rating(db_session, job_id, owner_id, _poster_rates(worker_id, 1))

    monkeypatch.undo()
    assert len(await rating_service.list_ratings_for_job(db_session, job_id)) == 1
    stats = await rating_service.get_rating_stats(db_session, worker_id)
    assert stats.total_ratings == 1
    assert stats.average_rating == Decimal("5.0")


@pytest.mark.asyncio
async def test_rating_requires_completed_job(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    job = await make_assigned_job(db_session, bus, owner, worker)

    with pytest.raises(InvalidTransition, match="You can only rate after the job is completed"):
        await rating_service.submit_rating(db_session, job.id, owner.user_id, _poster_rates(worker.user_id))


@pytest.mark.asyncio
async def test_wrong_direction_rejected(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    job = await make_completed_job(db_session, bus, owner, worker)

    with pytest.raises(Unauthorized, match="Only the job poster can rate the helper"):
        await rating_service.submit_rating(db_session, job.id, worker.user_id, _poster_rates(owner.user_id))
    with pytest.raises(Unauthorized, match="Only the helper can rate the poster"):
        await rating_service.submit_rating(db_session, job.id, owner.user_id, _helper_rates(worker.user_id))


@pytest.mark.asyncio
async def test_outsider_rejected(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    outsider = await make_profile(db_session)
    job = await make_completed_job(db_session, bus, owner, worker)

    with pytest.raises(Unauthorized, match="You are not involved in this job"):
        await rating_service.submit_rating(db_session, job.id, outsider.user_id, _helper_rates(owner.user_id))


@pytest.mark.asyncio
async def test_rated_user_must_be_counterpart(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    job = await make_completed_job(db_session, bus, owner, worker)

    with pytest.raises(ValidationError, match="Invalid rated user"):
        await rating_service.submit_rating(db_session, job.id, owner.user_id, _poster_rates(uuid.uuid4()))


@pytest.mark.asyncio
async def test_reopened_job_cannot_be_rated(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    job = await make_completed_job(db_session, bus, owner, worker)
    await job_service.set_job_status(db_session, bus, job.id, JobStatus.OPEN, owner.user_id)

    eligibility = await rating_service.can_rate(
        db_session, job.id, owner.user_id, RatingType.POSTER_TO_HELPER
    )
    assert eligibility.can_rate is False


@pytest.mark.asyncio
async def test_eligibility(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    job = await make_completed_job(db_session, bus, owner, worker)

    eligibility = await rating_service.can_rate(
        db_session, job.id, owner.user_id, RatingType.POSTER_TO_HELPER
    )
    assert eligibility.can_rate is True
    assert eligibility.reason is None

    await rating_service.submit_rating(db_session, job.id, owner.user_id, _poster_rates(worker.user_id))
    eligibility = await rating_service.can_rate(
        db_session, job.id, owner.user_id, RatingType.POSTER_TO_HELPER
    )
    assert eligibility.can_rate is False
    assert eligibility.reason == "You have already rated for this job"

    eligibility = await rating_service.can_rate(
        db_session, job.id, worker.user_id, RatingType.POSTER_TO_HELPER
    )
    assert eligibility.can_rate is False
    assert eligibility.reason == "Only the job poster can rate the helper"


@pytest.mark.asyncio
async def test_stats_recomputed(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    worker = await make_profile(db_session)
    for score in (5, 4, 4):
        owner = await make_profile(db_session)
        job = await make_completed_job(db_session, bus, owner, worker)
        await rating_service.submit_rating(db_session, job.id, owner.user_id, _poster_rates(worker.user_id, score))

    stats = await rating_service.get_rating_stats(db_session, worker.user_id)
    assert stats.total_ratings == 3
    assert stats.average_rating == Decimal("4.3")
    assert stats.tasks_completed == 3

    received = await rating_service.list_ratings_for_user(db_session, worker.user_id)
    assert len(received) == 3


# ---------------------------------------------------------------------------
# HTTP surface
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_rating_over_http(client: AsyncClient) -> None:
    owner_id, worker_id = uuid.uuid4(), uuid.uuid4()
    owner, worker = make_headers(owner_id), make_headers(worker_id)
    job_id = (await client.post("/jobs", json=make_job_data(), headers=owner)).json()["id"]
    await client.post(f"/jobs/{job_id}/conversations", headers=worker)
    await client.post(f"/jobs/{job_id}/assign", json={"worker_id": str(worker_id)}, headers=owner)
    await client.post(f"/jobs/{job_id}/status", json={"status": "completed"}, headers=owner)

    resp = await client.get(
        f"/jobs/{job_id}/ratings/eligibility",
        params={"direction": "poster_to_helper"},
        headers=owner,
    )
    assert resp.status_code == 200
    assert resp.json()["can_rate"] is True

    payload = {"rated_id": str(worker_id), "rating": 5, "direction": "poster_to_helper"}
    resp = await client.post(f"/jobs/{job_id}/ratings", json=payload, headers=owner)
    assert resp.status_code == 201
    assert resp.json()["rating_type"] == "poster_to_helper"

    resp = await client.post(f"/jobs/{job_id}/ratings", json=payload, headers=owner)
    assert resp.status_code == 409
    assert resp.json()["error"] == "already_rated"

    resp = await client.get(f"/users/{worker_id}/rating-stats", headers=owner)
    assert resp.json()["total_ratings"] == 1
    assert resp.json()["tasks_completed"] == 1

    resp = await client.get("/jobs/posted", headers=owner)
    assert resp.json()[0]["has_rated"] is True


@pytest.mark.asyncio
async def test_rating_out_of_range_over_http(client: AsyncClient) -> None:
    resp = await client.post(
        f"/jobs/{uuid.uuid4()}/ratings",
        json={"rated_id": str(uuid.uuid4()), "rating": 6, "direction": "poster_to_helper"},
        headers=make_headers(uuid.uuid4()),
    )
    assert resp.status_code == 422
