"""
Comment service: append-only comments on an article.

Comments cannot be edited through the public API.  They are removed only
by cascade when their article is deleted.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from conduit.models import Comment, User
from conduit.schemas import CommentCreate
from conduit.services.article_service import get_article_by_slug
from conduit.services.projection import author_view, following_column


def _comment_to_dict(comment: Comment, following: bool = False) -> dict:
    return {
        "id": comment.id,
        "body": comment.body,
        "createdAt": comment.created_at,
        "updatedAt": comment.updated_at,
        "author": author_view(comment.author, following),
    }


async def add_comment(db: AsyncSession, author: User, slug: str, data: CommentCreate) -> dict:
    """Append a comment to the article identified by *slug*."""
    article = await get_article_by_slug(db, slug)

    comment = Comment(body=data.body, author_id=author.id, article_id=article.id)
    db.add(comment)
    await db.flush()
    comment.author = author
    # Nobody follows themselves, so the author's own view is never "following".
    return _comment_to_dict(comment)


async def list_comments(db: AsyncSession, slug: str, viewer_id: int | None = None) -> list[dict]:
    """
    Return the comments of *slug* oldest first, each with its author's
    profile as seen by *viewer_id*.
    """
    article = await get_article_by_slug(db, slug)

    columns = [Comment]
    if viewer_id is not None:
        columns.append(following_column(viewer_id, Comment.author_id))
    q = (
        select(*columns)
        .where(Comment.article_id == article.id)
        .options(joinedload(Comment.author))
        .order_by(Comment.created_at, Comment.id)
    )
    rows = (await db.execute(q)).all()
    return [_comment_to_dict(row[0], bool(getattr(row, "following", False))) for row in rows]
