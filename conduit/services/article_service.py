"""
Article service: create, read, update and delete for the Article aggregate.

Design notes
------------
- Slug uniqueness is pre-checked for a clear error message, but the
  ``uq_articles_slug`` constraint is authoritative: a concurrent insert of
  the same slug surfaces from the flush and is mapped to the same
  ``ConflictError``.
- Writes go through the ORM, then the response is re-read through the
  projector so the author summary and derived fields come from one query.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
import logging
import re
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from conduit.database import flush_or_conflict
from conduit.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from conduit.models import Article, ArticleTag, Tag, User
from conduit.schemas import ArticleCreate, ArticleUpdate
from conduit.services import projection

logger = logging.getLogger(__name__)

SLUG_TAKEN = "Article with this slug already exists"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

_DIALECT_INSERTS = {"postgresql": postgresql_insert, "sqlite": sqlite_insert}


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def _slug_for_title(title: str) -> str:
    slug = slugify(title)
    if not slug:
        raise BadRequestError("Title must contain at least one letter or digit")
    return slug


async def _slug_taken(db: AsyncSession, slug: str, exclude_id: int | None = None) -> bool:
    q = select(Article.id).where(Article.slug == slug)
    if exclude_id is not None:
        q = q.where(Article.id != exclude_id)
    return (await db.execute(q.limit(1))).first() is not None


async def _resolve_tags(db: AsyncSession, tag_names: list[str]) -> list[Tag]:
    """
    Return Tag ORM instances for each name in *tag_names*, creating any
    that do not yet exist.  Blank names are skipped and duplicates keep
    their first position.
    """
    names: list[str] = []
    for raw in tag_names:
        name = raw.strip()
        if name and name not in names:
            names.append(name)

    return [await _get_or_create_tag(db, name) for name in names]


async def _get_or_create_tag(db: AsyncSession, name: str) -> Tag:
    q = select(Tag).where(Tag.name == name)
    tag = (await db.execute(q)).scalar_one_or_none()
    if tag is not None:
        return tag

    # Another request may create the same tag first; its row is reused.
    upsert = _DIALECT_INSERTS[db.get_bind().dialect.name]
    await db.execute(
        upsert(Tag).values(name=name).on_conflict_do_nothing(index_elements=[Tag.name])
    )
    return (await db.execute(q)).scalar_one()


async def _tag_links(db: AsyncSession, tag_names: list[str]) -> list[ArticleTag]:
    tags = await _resolve_tags(db, tag_names)
    return [ArticleTag(tag_id=tag.id, tag=tag, position=i) for i, tag in enumerate(tags)]


async def get_article_by_slug(db: AsyncSession, slug: str, with_tags: bool = False) -> Article:
    q = select(Article).where(Article.slug == slug)
    if with_tags:
        q = q.options(selectinload(Article.tag_links))
    article = (await db.execute(q)).scalar_one_or_none()
    if article is None:
        raise NotFoundError("Article not found")
    return article


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_article(db: AsyncSession, slug: str, viewer_id: int | None = None) -> dict:
    return await projection.get_article_view(db, Article.slug == slug, viewer_id)


async def create_article(db: AsyncSession, author: User, data: ArticleCreate) -> dict:
    slug = _slug_for_title(data.title)
    if await _slug_taken(db, slug):
        raise ConflictError(SLUG_TAKEN)

    article = Article(
        slug=slug,
        title=data.title,
        description=data.description,
        body=data.body,
        author_id=author.id,
    )
    article.tag_links = await _tag_links(db, data.tag_list)
    db.add(article)
    await flush_or_conflict(db)
    logger.info("Article %s created by user %s", slug, author.id)

    # The insert carries no author summary: re-read it joined with the author.
    return await projection.get_article_view(db, Article.id == article.id, author.id)


async def update_article(
    db: AsyncSession, slug: str, requester: User, data: ArticleUpdate
) -> dict:
    """
    Partially update the article identified by *slug*.

    Only fields explicitly set in the request payload are modified.  A new
    title re-derives the slug, which must not collide with any *other*
    article.
    """
    article = await get_article_by_slug(db, slug, with_tags=True)
    if article.author_id != requester.id:
        raise ForbiddenError("You are not authorized to update this article")

    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    tag_names: list[str] | None = changes.pop("tag_list", None)

    if "title" in changes:
        new_slug = _slug_for_title(changes["title"])
        if new_slug != article.slug:
            if await _slug_taken(db, new_slug, exclude_id=article.id):
                raise ConflictError(SLUG_TAKEN)
            article.slug = new_slug

    for field, value in changes.items():
        setattr(article, field, value)

    if tag_names is not None:
        # Flush the removals first; re-adding a tag reuses its primary key.
        article.tag_links.clear()
        await flush_or_conflict(db)
        article.tag_links.extend(await _tag_links(db, tag_names))

    if changes or tag_names is not None:
        article.updated_at = datetime.now(timezone.utc)

    await flush_or_conflict(db)
    logger.info("Article %s updated by user %s", article.slug, requester.id)
    return await projection.get_article_view(db, Article.id == article.id, requester.id)


async def delete_article(db: AsyncSession, slug: str, requester: User) -> None:
    """
    Delete the article identified by *slug*.  Favorites, comments and tag
    links go with it through ``ON DELETE CASCADE``.
    """
    article = await get_article_by_slug(db, slug)
    if article.author_id != requester.id:
        raise ForbiddenError("You are not authorized to delete this article")

    await db.execute(delete(Article).where(Article.id == article.id))
    logger.info("Article %s deleted by user %s", slug, requester.id)
