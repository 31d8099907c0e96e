"""The caller's own profile."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.auth.middleware import AuthenticatedUser, verify_request
from campusgig.auth.rate_limit import check_rate_limit
from campusgig.database import get_db
from campusgig.schemas.profile import ProfileResponse, ProfileUpdate
from campusgig.services import profile as profile_service

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=ProfileResponse, dependencies=[Depends(check_rate_limit)])
async def get_profile(
    auth: AuthenticatedUser = Depends(verify_request),
) -> ProfileResponse:
    return ProfileResponse.model_validate(auth.profile)


@router.patch("", response_model=ProfileResponse, dependencies=[Depends(check_rate_limit)])
async def update_profile(
    data: ProfileUpdate,
    auth: AuthenticatedUser = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    profile = await profile_service.update_profile(db, auth.user_id, data.full_name)
    return ProfileResponse.model_validate(profile)
