"""Pydantic v2 schemas for Ratings."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from campusgig.config import settings
from campusgig.models.rating import RatingType
from campusgig.schemas.common import enum_value


class RatingCreate(BaseModel):
    rated_id: uuid.UUID
    rating: int = Field(..., ge=1, le=5)
    review: str | None = Field(None, max_length=settings.max_review_length)
    direction: RatingType

    @field_validator("review")
    @classmethod
    def normalize_review(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return v.strip() or None


class RatingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    rater_id: uuid.UUID
    rated_id: uuid.UUID
    rating: int
    review: str | None
    rating_type: str
    created_at: datetime

    @field_validator("rating_type", mode="before")
    @classmethod
    def serialize_type(cls, v: object) -> object:
        return enum_value(v)


class RatingEligibility(BaseModel):
    job_id: uuid.UUID
    direction: str
    can_rate: bool
    reason: str | None = None


class RatingStats(BaseModel):
    user_id: uuid.UUID
    average_rating: Decimal
    total_ratings: int
    tasks_completed: int
