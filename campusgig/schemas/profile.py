"""Pydantic v2 schemas for the caller's own profile."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from campusgig.config import settings


class ProfileUpdate(BaseModel):
    full_name: str = Field(..., max_length=settings.max_display_name_length)

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Display name is required")
        return v


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    email: str | None
    full_name: str | None
    display_name: str
    average_rating: Decimal
    total_ratings: int
    tasks_completed: int
    created_at: datetime
