"""
Predicate builder for article listings.

A listing request is reduced to a ``PredicateSet``: a list of SQLAlchemy
boolean conditions over ``Article`` that are conjoined by the pagination
executor.  Name-based filters (author, favoriter) are resolved to ids here,
so every condition is self-contained and none of them needs a join in the
outer query.  That keeps row admission identical between the count query
and the data query.

When a name lookup finds nothing the set is *unsatisfiable*; callers must
short-circuit to an empty page instead of running an unfiltered query.
"""
from dataclasses import dataclass, field

from sqlalchemy import ColumnElement, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.models import Article, ArticleTag, Favorite, Tag, User


@dataclass(frozen=True)
class ArticleFilter:
    tag: str | None = None
    author: str | None = None
    favorited: str | None = None


@dataclass(frozen=True)
class PredicateSet:
    conditions: list[ColumnElement[bool]] = field(default_factory=list)
    satisfiable: bool = True

    @classmethod
    def unsatisfiable(cls) -> "PredicateSet":
        return cls(conditions=[], satisfiable=False)


def tag_condition(tag: str) -> ColumnElement[bool]:
    """Membership of *tag* in the article's tag list."""
    tagged = (
        select(ArticleTag.article_id)
        .join(Tag, Tag.id == ArticleTag.tag_id)
        .where(Tag.name == tag)
    )
    return Article.id.in_(tagged)


async def _resolve_user_id(db: AsyncSession, username: str) -> int | None:
    result = await db.execute(select(User.id).where(User.username == username))
    return result.scalar_one_or_none()


def favorited_by_condition(user_id: int) -> ColumnElement[bool]:
    """Membership of the article in *user_id*'s favorites."""
    return Article.id.in_(select(Favorite.article_id).where(Favorite.user_id == user_id))


async def _has_favorites(db: AsyncSession, user_id: int) -> bool:
    result = await db.execute(
        select(Favorite.article_id).where(Favorite.user_id == user_id).limit(1)
    )
    return result.first() is not None


async def build_predicates(db: AsyncSession, filters: ArticleFilter) -> PredicateSet:
    """
    Translate *filters* into a ``PredicateSet``.

    Only the author and favoriter lookups touch the database; nothing is
    written.
    """
    conditions: list[ColumnElement[bool]] = []

    tag = filters.tag.strip() if filters.tag else ""
    if tag:
        conditions.append(tag_condition(tag))

    if filters.author:
        author_id = await _resolve_user_id(db, filters.author)
        if author_id is None:
            return PredicateSet.unsatisfiable()
        conditions.append(Article.author_id == author_id)

    if filters.favorited:
        favoriter_id = await _resolve_user_id(db, filters.favorited)
        if favoriter_id is None or not await _has_favorites(db, favoriter_id):
            return PredicateSet.unsatisfiable()
        conditions.append(favorited_by_condition(favoriter_id))

    return PredicateSet(conditions=conditions)
