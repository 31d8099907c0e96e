"""Caller identity dependency for FastAPI.

Authentication itself happens upstream (the campus identity provider); the
gateway forwards the verified user as ``X-User-Id`` and, when known,
``X-User-Email``. Every authenticated request makes sure a profile exists.
"""

import uuid

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.database import get_db
from campusgig.errors import Unauthenticated
from campusgig.models.profile import Profile
from campusgig.services.profile import ensure_profile

USER_ID_HEADER = "X-User-Id"
USER_EMAIL_HEADER = "X-User-Email"


class AuthenticatedUser:
    """Container for the verified caller context."""

    def __init__(self, user_id: uuid.UUID, email: str | None, profile: Profile) -> None:
        self.user_id = user_id
        self.email = email
        self.profile = profile


def parse_user_id(request: Request) -> uuid.UUID | None:
    raw = request.headers.get(USER_ID_HEADER)
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise Unauthenticated("Malformed user identity")


async def verify_request(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser:
    user_id = parse_user_id(request)
    if user_id is None:
        raise Unauthenticated("You must be logged in")

    email = request.headers.get(USER_EMAIL_HEADER) or None
    profile = await ensure_profile(db, user_id, email)
    return AuthenticatedUser(user_id=user_id, email=email, profile=profile)
