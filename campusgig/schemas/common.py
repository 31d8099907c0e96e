"""Shared response fragments."""

import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


def enum_value(v: object) -> object:
    if hasattr(v, "value"):
        return v.value
    return v


class UserSummary(BaseModel):
    """Public view of a user as shown next to jobs, applicants and messages."""
    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    display_name: str
    email: str | None = None
    average_rating: Decimal = Decimal("0.0")
    total_ratings: int = 0
    tasks_completed: int = 0
