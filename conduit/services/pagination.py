"""
Pagination executor for article listings.

``build_queries`` turns one ``PredicateSet`` into the count statement and
the data statement, so the two can never disagree on which rows are
admitted.  ``paginate`` runs them concurrently, each on its own session
from the shared factory (an ``AsyncSession`` cannot run two statements at
once), and fails as a whole if either query fails.
"""
import asyncio
from dataclasses import dataclass, field

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conduit.models import Article
from conduit.services import projection
from conduit.services.predicates import PredicateSet

# Newest first; the id tie-breaker keeps pages stable when timestamps collide.
NEWEST_FIRST = (Article.created_at.desc(), Article.id.desc())


@dataclass
class ArticlePage:
    articles: list[dict] = field(default_factory=list)
    articles_count: int = 0

    def to_dict(self) -> dict:
        return {"articles": self.articles, "articlesCount": self.articles_count}


def build_queries(
    predicates: PredicateSet,
    viewer_id: int | None,
    limit: int,
    offset: int,
    order_by=NEWEST_FIRST,
) -> tuple[Select, Select]:
    """Return ``(count_query, data_query)`` built from the same conditions."""
    count_q = select(func.count()).select_from(Article).where(*predicates.conditions)
    data_q = (
        projection.select_articles(viewer_id)
        .where(*predicates.conditions)
        .order_by(*order_by)
        .limit(limit)
        .offset(offset)
    )
    return count_q, data_q


async def _run_count(session_factory: async_sessionmaker[AsyncSession], count_q: Select) -> int:
    async with session_factory() as session:
        return (await session.execute(count_q)).scalar_one()


async def _run_data(session_factory: async_sessionmaker[AsyncSession], data_q: Select) -> list[dict]:
    async with session_factory() as session:
        rows = (await session.execute(data_q)).all()
        return [projection.to_article_view(row) for row in rows]


async def paginate(
    session_factory: async_sessionmaker[AsyncSession],
    predicates: PredicateSet,
    *,
    viewer_id: int | None,
    limit: int,
    offset: int,
    order_by=NEWEST_FIRST,
) -> ArticlePage:
    if not predicates.satisfiable:
        return ArticlePage()

    count_q, data_q = build_queries(predicates, viewer_id, limit, offset, order_by)
    total, articles = await asyncio.gather(
        _run_count(session_factory, count_q),
        _run_data(session_factory, data_q),
    )
    return ArticlePage(articles=articles, articles_count=total)
