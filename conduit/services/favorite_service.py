"""
Favorite service: the favorite / unfavorite toggle.

The favorites table is the source of truth; ``articles.favorites_count`` is
moved by the same transaction with an atomic ``UPDATE ... SET n = n +/- 1``
so the two stay equal after every successful mutation.

There is no "already favorited" pre-check: the ``pk_favorites`` constraint
decides, and its violation is reported as a conflict.  Unfavorite is
deliberately strict: deleting zero rows is an internal fault rather than
an idempotent success.
"""
import logging

from sqlalchemy import delete, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.exceptions import InternalFaultError, conflict_from_integrity_error
from conduit.models import Article, Favorite, User
from conduit.services import projection
from conduit.services.article_service import get_article_by_slug

logger = logging.getLogger(__name__)


async def _shift_counter(db: AsyncSession, article_id: int, delta: int) -> None:
    await db.execute(
        update(Article)
        .where(Article.id == article_id)
        .values(favorites_count=Article.favorites_count + delta)
        .execution_options(synchronize_session=False)
    )


async def favorite_article(db: AsyncSession, user: User, slug: str) -> dict:
    article = await get_article_by_slug(db, slug)

    try:
        result = await db.execute(
            insert(Favorite)
            .values(user_id=user.id, article_id=article.id)
            .returning(Favorite.user_id, Favorite.article_id)
        )
    except IntegrityError as exc:
        raise conflict_from_integrity_error(exc) from exc

    if result.first() is None:
        logger.error("Favorite insert for article %s by user %s returned no row", slug, user.id)
        raise InternalFaultError("Failed to favorite article")

    await _shift_counter(db, article.id, 1)
    logger.info("User %s favorited article %s", user.id, slug)
    return await projection.get_article_view(db, Article.id == article.id, user.id)


async def unfavorite_article(db: AsyncSession, user: User, slug: str) -> dict:
    article = await get_article_by_slug(db, slug)

    result = await db.execute(
        delete(Favorite).where(Favorite.user_id == user.id, Favorite.article_id == article.id)
    )
    if result.rowcount == 0:
        logger.error("Unfavorite of article %s by user %s deleted no row", slug, user.id)
        raise InternalFaultError("Failed to unfavorite article")

    await _shift_counter(db, article.id, -1)
    logger.info("User %s unfavorited article %s", user.id, slug)
    return await projection.get_article_view(db, Article.id == article.id, user.id)
