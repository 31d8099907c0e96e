"""Job board and job lifecycle endpoints."""

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.auth.middleware import AuthenticatedUser, verify_request
from campusgig.auth.rate_limit import check_rate_limit
from campusgig.database import get_db
from campusgig.errors import Unauthorized
from campusgig.realtime import EventBus, get_event_bus
from campusgig.schemas.conversation import ApplicantResponse, ConversationResponse
from campusgig.schemas.job import (
    AssignedJobResponse,
    AssignWorker,
    JobCreate,
    JobFilters,
    JobResponse,
    PostedJobResponse,
    StatusUpdate,
)
from campusgig.services import conversation as conversation_service
from campusgig.services import job as job_service

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=JobResponse, status_code=201, dependencies=[Depends(check_rate_limit)])
async def create_job(
    data: JobCreate,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    job = await job_service.create_job(db, auth.user_id, data)
    return JobResponse.model_validate(job)


@router.get("", response_model=list[JobResponse], dependencies=[Depends(check_rate_limit)])
async def list_jobs(
    filters: JobFilters = Depends(),
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[JobResponse]:
    """Public feed of open and in-progress jobs, with optional filters."""
    jobs = await job_service.list_jobs(db, filters)
    return [JobResponse.model_validate(j) for j in jobs]


@router.get("/posted", response_model=list[PostedJobResponse], dependencies=[Depends(check_rate_limit)])
async def list_posted_jobs(
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[PostedJobResponse]:
    posted = await job_service.list_posted_jobs(db, auth.user_id)
    return [
        PostedJobResponse(
            **JobResponse.model_validate(p.job).model_dump(),
            applicant_count=p.applicant_count,
            has_rated=p.has_rated,
        )
        for p in posted
    ]


@router.get("/assigned", response_model=list[AssignedJobResponse], dependencies=[Depends(check_rate_limit)])
async def list_assigned_jobs(
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[AssignedJobResponse]:
    assigned = await job_service.list_assigned_jobs(db, auth.user_id)
    return [
        AssignedJobResponse(
            **JobResponse.model_validate(a.job).model_dump(),
            has_rated=a.has_rated,
        )
        for a in assigned
    ]


@router.get("/{job_id}", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def get_job(
    job_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    job = await job_service.get_job(db, job_id)
    return JobResponse.model_validate(job)


@router.delete("/{job_id}", status_code=204, dependencies=[Depends(check_rate_limit)])
async def delete_job(
    job_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await job_service.delete_job(db, job_id, auth.user_id)
    return Response(status_code=204)


@router.post("/{job_id}/assign", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def assign_worker(
    job_id: uuid.UUID,
    data: AssignWorker,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
) -> JobResponse:
    """Poster binds one applicant to the job."""
    job = await job_service.assign_worker(db, bus, job_id, data.worker_id, auth.user_id)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/unassign", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def unassign_worker(
    job_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
) -> JobResponse:
    job = await job_service.unassign_worker(db, bus, job_id, auth.user_id)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/status", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def update_job_status(
    job_id: uuid.UUID,
    data: StatusUpdate,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
) -> JobResponse:
    """Complete, cancel or reopen a job."""
    job = await job_service.set_job_status(db, bus, job_id, data.status, auth.user_id)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/conversations", response_model=ConversationResponse, dependencies=[Depends(check_rate_limit)])
async def open_conversation(
    job_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> ConversationResponse:
    """Apply to a job: returns the caller's conversation with the poster, opening it if needed."""
    conversation = await conversation_service.get_or_create_conversation(db, job_id, auth.user_id)
    return ConversationResponse.model_validate(conversation)


@router.get("/{job_id}/applicants", response_model=list[ApplicantResponse], dependencies=[Depends(check_rate_limit)])
async def list_applicants(
    job_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[ApplicantResponse]:
    job = await job_service.get_job(db, job_id)
    if auth.user_id != job.owner_id:
        raise Unauthorized("Only the job owner can see applicants")
    applicants = await conversation_service.list_applicants(db, job_id)
    return [ApplicantResponse.model_validate(a) for a in applicants]
