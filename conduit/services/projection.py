"""
Aggregation projector: derived per-article fields for a viewer.

Every article view carries three derived values:

- ``favoritesCount``: live ``COUNT`` over the favorites table.
- ``favorited``: whether the viewer has a favorites row for the article.
- ``author.following``: whether the viewer follows the article's author.

All three are correlated subqueries added to the same ``SELECT`` that reads
the article rows, so they are evaluated in one pass against one snapshot
and never multiply rows the way joins against the many-to-many relations
would.  For anonymous viewers the two booleans are not queried at all.

The denormalized ``articles.favorites_count`` column is kept in step by
the favorite mutations but is never read here; the favorites relation is
the single source of truth for views.
"""
from sqlalchemy import ColumnElement, Select, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from conduit.exceptions import NotFoundError
from conduit.models import Article, ArticleTag, Favorite, Follow, User


# ---------------------------------------------------------------------------
# Column expressions
# ---------------------------------------------------------------------------

def favorites_count_column() -> ColumnElement[int]:
    return (
        select(func.count())
        .select_from(Favorite)
        .where(Favorite.article_id == Article.id)
        .scalar_subquery()
        .label("live_favorites_count")
    )


def favorited_column(viewer_id: int) -> ColumnElement[bool]:
    return (
        exists()
        .where(Favorite.article_id == Article.id, Favorite.user_id == viewer_id)
        .label("favorited")
    )


def following_column(viewer_id: int, followee_id) -> ColumnElement[bool]:
    """``EXISTS`` test for the edge viewer -> *followee_id* (a column or value)."""
    return (
        exists()
        .where(Follow.follower_id == viewer_id, Follow.following_id == followee_id)
        .label("following")
    )


def select_articles(viewer_id: int | None) -> Select:
    """
    Base ``SELECT`` for article views: the article entity, its author and
    ordered tags eagerly loaded, plus the derived columns for *viewer_id*.
    """
    columns = [Article, favorites_count_column()]
    if viewer_id is not None:
        columns.append(favorited_column(viewer_id))
        columns.append(following_column(viewer_id, Article.author_id))
    return select(*columns).options(
        joinedload(Article.author),
        selectinload(Article.tag_links).joinedload(ArticleTag.tag),
    )


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def author_view(user: User, following: bool = False) -> dict:
    return {
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
        "following": following,
    }


def to_article_view(row, include_body: bool = False) -> dict:
    """Serialise one row produced by ``select_articles``."""
    article: Article = row[0]
    data = {
        "slug": article.slug,
        "title": article.title,
        "description": article.description,
        "tagList": article.tag_list,
        "createdAt": article.created_at,
        "updatedAt": article.updated_at,
        "favorited": bool(getattr(row, "favorited", False)),
        "favoritesCount": int(row.live_favorites_count or 0),
        "author": author_view(article.author, bool(getattr(row, "following", False))),
    }
    if include_body:
        data["body"] = article.body
    return data


# ---------------------------------------------------------------------------
# Single-article views
# ---------------------------------------------------------------------------

async def get_article_view(
    db: AsyncSession, condition: ColumnElement[bool], viewer_id: int | None
) -> dict:
    """
    Read the single article matching *condition* joined with its author and
    project it for *viewer_id*.

    ``populate_existing`` is required because the article is usually already
    in the identity map (loaded or just written by the caller) with its
    relationships left unloaded.
    """
    q = (
        select_articles(viewer_id)
        .where(condition)
        .execution_options(populate_existing=True)
    )
    row = (await db.execute(q)).one_or_none()
    if row is None:
        raise NotFoundError("Article not found")
    return to_article_view(row, include_body=True)
