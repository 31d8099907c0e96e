"""Job SQLAlchemy model and lifecycle states."""

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from campusgig.database import Base


class JobStatus(enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Urgency(enum.Enum):
    FLEXIBLE = "Flexible"
    THIS_WEEK = "This week"
    THREE_DAYS = "3 days"
    TODAY = "Today"
    ASAP = "ASAP"


# Most urgent first; used by the "urgency" feed sort.
URGENCY_RANK: dict[Urgency, int] = {
    Urgency.ASAP: 1,
    Urgency.TODAY: 2,
    Urgency.THREE_DAYS: 3,
    Urgency.THIS_WEEK: 4,
    Urgency.FLEXIBLE: 5,
}


class JobCategory(enum.Enum):
    ERRANDS = "Errands"
    DELIVERY = "Delivery"
    TUTORING = "Tutoring"
    TECH_HELP = "Tech Help"
    MOVING = "Moving"
    CLEANING = "Cleaning"
    OTHER = "Other"


# Valid state transitions. in_progress is only entered through assignment;
# reopening (-> open) is the only way out of completed or cancelled.
VALID_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.OPEN: {JobStatus.IN_PROGRESS, JobStatus.CANCELLED},
    JobStatus.IN_PROGRESS: {JobStatus.COMPLETED, JobStatus.CANCELLED, JobStatus.OPEN},
    JobStatus.COMPLETED: {JobStatus.OPEN},
    JobStatus.CANCELLED: {JobStatus.OPEN},
}

# Statuses shown in the public feed when no status filter is given.
FEED_STATUSES = (JobStatus.OPEN, JobStatus.IN_PROGRESS)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [e.value for e in enum_cls]


class Job(Base):
    __tablename__ = "jobs"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_jobs_price_non_negative"),
        Index("ix_jobs_owner_id", "owner_id"),
        Index("ix_jobs_assigned_worker_id", "assigned_worker_id"),
        Index("ix_jobs_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    urgency: Mapped[Urgency] = mapped_column(
        Enum(Urgency, name="job_urgency", values_callable=_enum_values),
        nullable=False,
        default=Urgency.FLEXIBLE,
    )
    location: Mapped[str] = mapped_column(String(100), nullable=False, default="Campus")
    category: Mapped[JobCategory | None] = mapped_column(
        Enum(JobCategory, name="job_category", values_callable=_enum_values),
        nullable=True,
    )
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status", values_callable=_enum_values),
        nullable=False,
        default=JobStatus.OPEN,
    )
    assigned_worker_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("profiles.user_id", ondelete="SET NULL"), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
