"""
User service: registration, login and the current user's account.

Email and username uniqueness is pre-checked for a friendly message and
enforced at the database level (``uq_users_email`` / ``uq_users_username``);
constraint violations from a racing request are mapped to the same
conflict responses.
"""
import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import flush_or_conflict
from conduit.exceptions import ConflictError, UnauthorizedError
from conduit.models import User
from conduit.schemas import UserLogin, UserRegister, UserUpdate
from conduit.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(user: User, token: str) -> dict:
    return {
        "email": user.email,
        "username": user.username,
        "token": token,
        "bio": user.bio,
        "image": user.image,
    }


async def _taken_by_other(db: AsyncSession, column, value: str, user_id: int) -> bool:
    result = await db.execute(select(User.id).where(column == value, User.id != user_id))
    return result.first() is not None


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def register(db: AsyncSession, data: UserRegister) -> dict:
    existing = await db.execute(
        select(User.id).where(or_(User.email == data.email, User.username == data.username))
    )
    if existing.first() is not None:
        raise ConflictError("User with this email or username already exists")

    user = User(
        email=data.email,
        username=data.username,
        password_hash=hash_password(data.password),
    )
    db.add(user)
    await flush_or_conflict(db)
    logger.info("Registered user %s (%s)", user.id, user.username)
    return _user_to_dict(user, create_access_token(user.id, user.username))


async def login(db: AsyncSession, data: UserLogin) -> dict:
    result = await db.execute(select(User).where(User.email == data.email))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(data.password, user.password_hash):
        logger.warning("Failed login for %s", data.email)
        raise UnauthorizedError("Invalid email or password")
    return _user_to_dict(user, create_access_token(user.id, user.username))


def current_user(user: User, token: str) -> dict:
    return _user_to_dict(user, token)


async def update_user(db: AsyncSession, user: User, data: UserUpdate, token: str) -> dict:
    """
    Apply the fields explicitly supplied in *data*.  A new username issues a
    fresh token since the old one carries the previous name.
    """
    changes = data.model_dump(exclude_unset=True)

    if changes.get("email") and changes["email"] != user.email:
        if await _taken_by_other(db, User.email, changes["email"], user.id):
            raise ConflictError("Email is already taken")
        user.email = changes["email"]

    if changes.get("username") and changes["username"] != user.username:
        if await _taken_by_other(db, User.username, changes["username"], user.id):
            raise ConflictError("Username is already taken")
        user.username = changes["username"]
        token = create_access_token(user.id, user.username)

    if changes.get("password"):
        user.password_hash = hash_password(changes["password"])

    # bio and image may be cleared with an explicit null
    for field in ("bio", "image"):
        if field in changes:
            setattr(user, field, changes[field])

    await flush_or_conflict(db)
    return _user_to_dict(user, token)
