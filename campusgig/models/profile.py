"""Profile model: cached identity and reputation counters per user."""

import re
import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from campusgig.database import Base

_REG_NUMBER = re.compile(r"[a-z]?(\d+)@", re.IGNORECASE)


class Profile(Base):
    __tablename__ = "profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    average_rating: Mapped[Decimal] = mapped_column(
        Numeric(2, 1), nullable=False, default=Decimal("0.0")
    )
    total_ratings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tasks_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    @property
    def display_name(self) -> str:
        return display_name_for(self.full_name, self.email)


def display_name_for(full_name: str | None, email: str | None) -> str:
    """Name shown to other users: full name, else the registration number in the email."""
    if full_name and full_name.strip():
        return full_name.strip()
    if email:
        match = _REG_NUMBER.search(email)
        if match:
            return match.group(1)
    return "User"
