"""
Article listings: the global list and the personalised feed.

Both modes share one pipeline (predicates -> concurrent count/data queries
-> projection) and return the same ``ArticlePage`` shape.  The feed only
differs in how its predicate is obtained: the viewer's followee ids are
read once and that snapshot drives both queries of the request.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conduit.models import Article, Follow
from conduit.services.pagination import NEWEST_FIRST, ArticlePage, paginate
from conduit.services.predicates import ArticleFilter, PredicateSet, build_predicates

logger = logging.getLogger(__name__)


async def _release_connection(db: AsyncSession) -> None:
    """
    End the request transaction so its connection returns to the pool before
    the count and data queries each check one out.  Listings write nothing.
    """
    await db.commit()


async def list_articles(
    db: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    filters: ArticleFilter,
    viewer_id: int | None = None,
    limit: int = 20,
    offset: int = 0,
) -> ArticlePage:
    predicates = await build_predicates(db, filters)
    if not predicates.satisfiable:
        logger.debug("Listing filters %s match no rows; skipping queries", filters)
        return ArticlePage()

    await _release_connection(db)
    return await paginate(
        session_factory, predicates, viewer_id=viewer_id, limit=limit, offset=offset
    )


async def get_followee_ids(db: AsyncSession, viewer_id: int) -> list[int]:
    result = await db.execute(select(Follow.following_id).where(Follow.follower_id == viewer_id))
    return list(result.scalars().all())


async def get_feed(
    db: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    viewer_id: int,
    limit: int = 20,
    offset: int = 0,
) -> ArticlePage:
    """
    Articles written by the authors *viewer_id* follows, newest first.

    A viewer who follows nobody gets an empty page without any article or
    count query being issued.
    """
    followee_ids = await get_followee_ids(db, viewer_id)
    if not followee_ids:
        return ArticlePage()

    predicates = PredicateSet(conditions=[Article.author_id.in_(followee_ids)])
    await _release_connection(db)
    return await paginate(
        session_factory,
        predicates,
        viewer_id=viewer_id,
        limit=limit,
        offset=offset,
        order_by=NEWEST_FIRST,
    )
