"""Pydantic v2 schemas for Job endpoints."""

import enum
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from campusgig.config import settings
from campusgig.models.job import JobCategory, JobStatus, Urgency
from campusgig.schemas.common import enum_value


class JobCreate(BaseModel):
    title: str = Field(..., max_length=settings.max_title_length)
    description: str | None = Field(None, max_length=settings.max_description_length)
    price: int = Field(..., ge=0, le=settings.max_price)
    urgency: Urgency = Urgency.FLEXIBLE
    location: str = Field("Campus", max_length=settings.max_location_length)
    category: JobCategory | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v

    @field_validator("description")
    @classmethod
    def normalize_description(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return v.strip() or None

    @field_validator("location")
    @classmethod
    def normalize_location(cls, v: str) -> str:
        return v.strip() or "Campus"


class AssignWorker(BaseModel):
    worker_id: uuid.UUID


class StatusUpdate(BaseModel):
    status: JobStatus


class JobSort(enum.Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    PRICE_LOW = "price_low"
    PRICE_HIGH = "price_high"
    URGENCY = "urgency"


class JobFilters(BaseModel):
    """Feed filters. Empty values mean "any"."""
    q: str | None = None
    status: JobStatus | None = None
    category: JobCategory | None = None
    urgency: Urgency | None = None
    location: str | None = None
    min_price: int | None = Field(None, ge=0)
    max_price: int | None = Field(None, ge=0)
    sort: JobSort = JobSort.NEWEST
    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    owner_id: uuid.UUID
    title: str
    description: str | None
    price: int
    urgency: str
    location: str
    category: str | None
    status: str
    assigned_worker_id: uuid.UUID | None
    completed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @field_validator("urgency", "category", "status", mode="before")
    @classmethod
    def serialize_enum(cls, v: object) -> object:
        return enum_value(v)


class PostedJobResponse(JobResponse):
    """A job in its poster's "my jobs" list."""
    applicant_count: int
    has_rated: bool


class AssignedJobResponse(JobResponse):
    """A job in its worker's "my gigs" list."""
    has_rated: bool
