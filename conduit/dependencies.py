import logging

from fastapi import Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.config import settings
from conduit.database import get_db
from conduit.exceptions import UnauthorizedError
from conduit.models import User
from conduit.security import decode_access_token
from conduit.services.predicates import ArticleFilter

logger = logging.getLogger(__name__)

_TOKEN_SCHEMES = frozenset({"token", "bearer"})


class PaginationParams:
    """
    Reusable FastAPI dependency that parses and validates ``limit`` /
    ``offset`` query parameters.

    Usage in a router::

        async def list_articles(pagination: PaginationParams = Depends(PaginationParams)):
            ...

    Attributes
    ----------
    limit:
        Number of items per page, clamped to ``settings.MAX_PAGE_SIZE``
        regardless of the value supplied by the caller.
    offset:
        Number of matching rows to skip (minimum 0).
    """

    def __init__(
        self,
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            description="Number of items returned per page.",
        ),
        offset: int = Query(
            0,
            ge=0,
            description="Number of matching items to skip.",
        ),
    ) -> None:
        # Respect the application-level hard ceiling so a settings change is
        # sufficient to tighten it.
        self.limit = min(limit, settings.MAX_PAGE_SIZE)
        self.offset = offset


def article_filter(
    tag: str | None = Query(None, max_length=100, description="Only articles carrying this tag."),
    author: str | None = Query(None, max_length=100, description="Only articles by this username."),
    favorited: str | None = Query(
        None, max_length=100, description="Only articles favorited by this username."
    ),
) -> ArticleFilter:
    return ArticleFilter(tag=tag, author=author, favorited=favorited)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

async def get_token(authorization: str | None = Header(None)) -> str | None:
    """Extract the raw token from ``Authorization: Token <jwt>`` (or ``Bearer``)."""
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    credentials = credentials.strip()
    if scheme.lower() not in _TOKEN_SCHEMES or not credentials:
        raise UnauthorizedError("Invalid authorization header")
    return credentials


async def get_optional_user(
    token: str | None = Depends(get_token),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    if token is None:
        return None
    user_id = decode_access_token(token)
    user = await db.get(User, user_id)
    if user is None:
        logger.warning("Token subject %s does not match a user", user_id)
        raise UnauthorizedError("User not found for token")
    return user


async def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if user is None:
        raise UnauthorizedError()
    return user
