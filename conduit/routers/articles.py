from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conduit.database import get_db, get_session_factory
from conduit.dependencies import PaginationParams, article_filter, get_current_user, get_optional_user
from conduit.models import User
from conduit.routers import build_router
from conduit.schemas import (
    ArticleCreateRequest,
    ArticleResponse,
    ArticleUpdateRequest,
    CommentCreateRequest,
    CommentResponse,
    MultipleArticlesResponse,
    MultipleCommentsResponse,
)
from conduit.services import article_service, comment_service, favorite_service, listing_service
from conduit.services.predicates import ArticleFilter


def _viewer_id(user: User | None) -> int | None:
    return user.id if user is not None else None


async def list_articles(
    filters: ArticleFilter = Depends(article_filter),
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    page = await listing_service.list_articles(
        db, session_factory, filters, _viewer_id(viewer), pagination.limit, pagination.offset
    )
    return page.to_dict()


async def get_feed(
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    page = await listing_service.get_feed(
        db, session_factory, user.id, pagination.limit, pagination.offset
    )
    return page.to_dict()


async def create_article(
    data: ArticleCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.create_article(db, user, data.article)}


async def get_article(
    slug: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.get_article(db, slug, _viewer_id(viewer))}


async def update_article(
    slug: str,
    data: ArticleUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.update_article(db, slug, user, data.article)}


async def delete_article(
    slug: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    await article_service.delete_article(db, slug, user)


async def favorite_article(
    slug: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await favorite_service.favorite_article(db, user, slug)}


async def unfavorite_article(
    slug: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await favorite_service.unfavorite_article(db, user, slug)}


async def add_comment(
    slug: str,
    data: CommentCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"comment": await comment_service.add_comment(db, user, slug, data.comment)}


async def list_comments(
    slug: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return {"comments": await comment_service.list_comments(db, slug, _viewer_id(viewer))}


ROUTES = (
    ("GET", "", list_articles, {"response_model": MultipleArticlesResponse}),
    ("POST", "", create_article, {"response_model": ArticleResponse, "status_code": 201}),
    ("GET", "/feed", get_feed, {"response_model": MultipleArticlesResponse}),
    ("GET", "/{slug}", get_article, {"response_model": ArticleResponse}),
    ("PUT", "/{slug}", update_article, {"response_model": ArticleResponse}),
    ("DELETE", "/{slug}", delete_article, {"status_code": 204}),
    ("POST", "/{slug}/favorite", favorite_article, {"response_model": ArticleResponse}),
    ("DELETE", "/{slug}/favorite", unfavorite_article, {"response_model": ArticleResponse}),
    ("POST", "/{slug}/comments", add_comment, {"response_model": CommentResponse, "status_code": 201}),
    ("GET", "/{slug}/comments", list_comments, {"response_model": MultipleCommentsResponse}),
)

router = build_router("/articles", "articles", ROUTES)
