"""
Profile service: public user profiles and the follow relation.

Follow and unfollow are idempotent toggles checked up front; the
``pk_follows`` constraint still guards against two concurrent follows of the
same profile, and that violation is reported as a conflict.
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import flush_or_conflict
from conduit.exceptions import BadRequestError, NotFoundError
from conduit.models import Follow, User
from conduit.services.projection import author_view

logger = logging.getLogger(__name__)


async def _get_profile_user(db: AsyncSession, username: str) -> User:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("Profile not found")
    return user


async def is_following(db: AsyncSession, follower_id: int, following_id: int) -> bool:
    result = await db.execute(
        select(Follow.follower_id).where(
            Follow.follower_id == follower_id, Follow.following_id == following_id
        )
    )
    return result.first() is not None


async def get_profile(db: AsyncSession, username: str, viewer_id: int | None = None) -> dict:
    profile = await _get_profile_user(db, username)
    following = False
    if viewer_id is not None:
        following = await is_following(db, viewer_id, profile.id)
    return author_view(profile, following)


async def follow(db: AsyncSession, viewer: User, username: str) -> dict:
    profile = await _get_profile_user(db, username)
    if profile.id == viewer.id:
        raise BadRequestError("You cannot follow yourself")

    if not await is_following(db, viewer.id, profile.id):
        db.add(Follow(follower_id=viewer.id, following_id=profile.id))
        await flush_or_conflict(db)
        logger.info("User %s followed %s", viewer.id, username)
    return author_view(profile, True)


async def unfollow(db: AsyncSession, viewer: User, username: str) -> dict:
    profile = await _get_profile_user(db, username)
    if profile.id == viewer.id:
        raise BadRequestError("You cannot unfollow yourself")

    result = await db.execute(
        delete(Follow).where(Follow.follower_id == viewer.id, Follow.following_id == profile.id)
    )
    if result.rowcount:
        logger.info("User %s unfollowed %s", viewer.id, username)
    return author_view(profile, False)
