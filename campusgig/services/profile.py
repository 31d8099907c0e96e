"""Profiles: identity cache and public summaries of users."""

import logging
import uuid
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.errors import NotFound
from campusgig.models.profile import Profile, display_name_for
from campusgig.schemas.common import UserSummary

logger = logging.getLogger(__name__)


async def ensure_profile(
    db: AsyncSession, user_id: uuid.UUID, email: str | None = None
) -> Profile:
    """Return the caller's profile, creating it on first contact."""
    profile = await db.get(Profile, user_id, populate_existing=True)
    if profile is not None:
        if email and profile.email != email:
            profile.email = email
            await db.commit()
        return profile

    profile = Profile(user_id=user_id, email=email)
    db.add(profile)
    try:
        await db.commit()
    except IntegrityError:
        # Two first requests from the same user raced; the other one won.
        await db.rollback()
        profile = await db.get(Profile, user_id)
        if profile is None:
            raise
        return profile
    logger.info("Created profile for user %s", user_id)
    return profile


async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> Profile:
    profile = await db.get(Profile, user_id, populate_existing=True)
    if profile is None:
        raise NotFound("User not found")
    return profile


async def update_profile(db: AsyncSession, user_id: uuid.UUID, full_name: str) -> Profile:
    profile = await get_profile(db, user_id)
    profile.full_name = full_name
    await db.commit()
    await db.refresh(profile)
    return profile


async def get_profiles(
    db: AsyncSession, user_ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, Profile]:
    ids = set(user_ids)
    if not ids:
        return {}
    result = await db.execute(select(Profile).where(Profile.user_id.in_(ids)))
    return {p.user_id: p for p in result.scalars().all()}


def summarize(user_id: uuid.UUID, profile: Profile | None) -> UserSummary:
    if profile is None:
        return UserSummary(user_id=user_id, display_name=display_name_for(None, None))
    return UserSummary.model_validate(profile)
