from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import get_current_user, get_optional_user
from conduit.models import User
from conduit.routers import build_router
from conduit.schemas import ProfileResponse
from conduit.services import profile_service


async def get_profile(
    username: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    viewer_id = viewer.id if viewer is not None else None
    return {"profile": await profile_service.get_profile(db, username, viewer_id)}


async def follow_profile(
    username: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"profile": await profile_service.follow(db, user, username)}


async def unfollow_profile(
    username: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"profile": await profile_service.unfollow(db, user, username)}


ROUTES = (
    ("GET", "/{username}", get_profile, {"response_model": ProfileResponse}),
    ("POST", "/{username}/follow", follow_profile, {"response_model": ProfileResponse}),
    ("DELETE", "/{username}/follow", unfollow_profile, {"response_model": ProfileResponse}),
)

router = build_router("/profiles", "profiles", ROUTES)
