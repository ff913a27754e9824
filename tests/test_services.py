"""
Direct service-layer tests: exercises the listing pipeline and the mutation
services without HTTP overhead.

Listing functions open their own sessions through the factory, so seeded
rows are committed before they are listed.
"""
import asyncio
import re

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.dependencies import PaginationParams
from conduit.exceptions import BadRequestError, ConflictError, InternalFaultError
from conduit.models import Article, Tag, User
from conduit.schemas import ArticleCreate, ArticleUpdate
from conduit.services import article_service, favorite_service, listing_service, profile_service
from conduit.services.article_service import slugify
from conduit.services.pagination import build_queries, paginate
from conduit.services.predicates import ArticleFilter, PredicateSet, build_predicates


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _create_user(db: AsyncSession, username: str = "svcuser") -> User:
    user = User(username=username, email=f"{username}@example.com", password_hash="not-a-hash")
    db.add(user)
    await db.flush()
    return user


async def _create_article(db: AsyncSession, author: User, title: str, tags=()) -> dict:
    data = ArticleCreate(title=title, description="d", body="b", tag_list=list(tags))
    return await article_service.create_article(db, author, data)


def _exploding_factory():
    raise AssertionError("no session should be opened")


# ---------------------------------------------------------------------------
# slugify
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("title, expected", [
    ("My First Post!", "my-first-post"),
    ("  Hello   World  ", "hello-world"),
    ("--Trim--", "trim"),
    ("C++ & Rust", "c-rust"),
    ("snake_case_title", "snake-case-title"),
    ("Already-slugged---title", "already-slugged-title"),
    ("Tabs\tand\nnewlines", "tabs-and-newlines"),
    ("!!!", ""),
])
def test_slugify(title, expected):
    assert slugify(title) == expected


@pytest.mark.parametrize("title", [
    "What's New in 2024?", "  a  -  b  ", "UPPER lower", "x__y--z", "Ünïcödé Títle", "1. Intro / Setup",
])
def test_slugify_shape(title):
    """Slugs are lower-case, dash-separated, with no whitespace or doubled dashes."""
    slug = slugify(title)
    assert slug == slug.lower()
    assert re.fullmatch(r"[^\s-]+(-[^\s-]+)*", slug)
    assert slugify(slug) == slug


# ---------------------------------------------------------------------------
# Predicate builder
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_build_predicates_no_filters(db_session: AsyncSession):
    predicates = await build_predicates(db_session, ArticleFilter())
    assert predicates.satisfiable
    assert predicates.conditions == []


@pytest.mark.asyncio
async def test_build_predicates_blank_tag_ignored(db_session: AsyncSession):
    predicates = await build_predicates(db_session, ArticleFilter(tag="   "))
    assert predicates.satisfiable
    assert predicates.conditions == []

    predicates = await build_predicates(db_session, ArticleFilter(tag="python"))
    assert len(predicates.conditions) == 1


@pytest.mark.asyncio
async def test_build_predicates_unknown_names(db_session: AsyncSession):
    """Unknown author or favoriter make the whole set unsatisfiable."""
    await _create_user(db_session, "alice")

    assert not (await build_predicates(db_session, ArticleFilter(author="nobody"))).satisfiable
    assert not (await build_predicates(db_session, ArticleFilter(favorited="nobody"))).satisfiable
    # Known user without favorites
    assert not (await build_predicates(db_session, ArticleFilter(favorited="alice"))).satisfiable

    known = await build_predicates(db_session, ArticleFilter(author="alice", tag="x"))
    assert known.satisfiable
    assert len(known.conditions) == 2


@pytest.mark.asyncio
async def test_build_predicates_favoriter_uses_subquery(db_session: AsyncSession):
    """The favoriter filter stays one subquery however many favorites there are."""
    alice = await _create_user(db_session, "alice")
    bob = await _create_user(db_session, "bob")
    for i in range(5):
        await _create_article(db_session, alice, f"Liked {i}")
        await favorite_service.favorite_article(db_session, bob, f"liked-{i}")

    predicates = await build_predicates(db_session, ArticleFilter(favorited="bob"))
    assert predicates.satisfiable
    assert len(predicates.conditions) == 1

    compiled = predicates.conditions[0].compile()
    assert "SELECT favorites.article_id" in str(compiled)
    assert list(compiled.params.values()) == [bob.id]


# ---------------------------------------------------------------------------
# Pagination executor
# ---------------------------------------------------------------------------

def test_count_and_data_queries_share_predicates():
    predicates = PredicateSet(conditions=[Article.author_id == 1, Article.slug != "x"])
    count_q, data_q = build_queries(predicates, viewer_id=7, limit=5, offset=10)

    assert str(count_q.whereclause) == str(data_q.whereclause)
    count_sql = str(count_q)
    assert "LIMIT" not in count_sql
    assert "OFFSET" not in count_sql
    assert "ORDER BY" not in count_sql
    assert "LIMIT" in str(data_q)


@pytest.mark.asyncio
async def test_paginate_unsatisfiable_opens_no_session():
    page = await paginate(
        _exploding_factory, PredicateSet.unsatisfiable(), viewer_id=None, limit=20, offset=0
    )
    assert page.to_dict() == {"articles": [], "articlesCount": 0}


def test_pagination_limit_clamped():
    params = PaginationParams(limit=1000, offset=3)
    assert params.limit == 100
    assert params.offset == 3


# ---------------------------------------------------------------------------
# Listing / feed
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_articles_via_service(db_session: AsyncSession, session_factory):
    alice = await _create_user(db_session, "alice")
    await _create_article(db_session, alice, "Tagged", tags=["py"])
    await _create_article(db_session, alice, "Plain")
    await db_session.commit()

    page = await listing_service.list_articles(
        db_session, session_factory, ArticleFilter(tag="py"), viewer_id=alice.id
    )
    assert page.articles_count == 1
    assert page.articles[0]["slug"] == "tagged"
    assert page.articles[0]["tagList"] == ["py"]
    assert page.articles[0]["author"]["following"] is False
    assert "body" not in page.articles[0]


@pytest.mark.asyncio
async def test_feed_without_follows_skips_queries(db_session: AsyncSession):
    alice = await _create_user(db_session, "alice")
    page = await listing_service.get_feed(db_session, _exploding_factory, alice.id)
    assert page.articles == []
    assert page.articles_count == 0


@pytest.mark.asyncio
async def test_feed_via_service(db_session: AsyncSession, session_factory):
    alice = await _create_user(db_session, "alice")
    bob = await _create_user(db_session, "bob")
    await _create_article(db_session, alice, "From Alice")
    await _create_article(db_session, bob, "From Bob")
    await profile_service.follow(db_session, bob, "alice")
    await db_session.commit()

    page = await listing_service.get_feed(db_session, session_factory, bob.id)
    assert page.articles_count == 1
    assert page.articles[0]["slug"] == "from-alice"
    assert page.articles[0]["author"]["following"] is True


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_article_empty_slug(db_session: AsyncSession):
    alice = await _create_user(db_session, "alice")
    with pytest.raises(BadRequestError):
        await _create_article(db_session, alice, "???")


@pytest.mark.asyncio
async def test_update_article_via_service(db_session: AsyncSession):
    alice = await _create_user(db_session, "alice")
    await _create_article(db_session, alice, "Before", tags=["a"])
    await _create_article(db_session, alice, "Other")

    updated = await article_service.update_article(
        db_session, "before", alice, ArticleUpdate(title="After", tag_list=["b", "a"])
    )
    assert updated["slug"] == "after"
    assert updated["tagList"] == ["b", "a"]

    with pytest.raises(ConflictError):
        await article_service.update_article(db_session, "after", alice, ArticleUpdate(title="Other"))


@pytest.mark.asyncio
async def test_concurrent_creates_share_new_tag(db_session: AsyncSession, session_factory):
    """
    A tag inserted by another transaction between the lookup and the insert
    is reused instead of failing on its unique name.
    """
    alice = await _create_user(db_session, "alice")
    await db_session.commit()

    async with session_factory() as first, session_factory() as second:
        first.add(Tag(name="fresh"))
        await first.flush()

        data = ArticleCreate(title="Racing", description="d", body="b", tag_list=["fresh"])
        creating = asyncio.create_task(article_service.create_article(second, alice, data))
        await asyncio.sleep(0.2)
        await first.commit()

        view = await creating
        await second.commit()

    assert view["tagList"] == ["fresh"]
    tag_count = await db_session.scalar(
        select(func.count()).select_from(Tag).where(Tag.name == "fresh")
    )
    assert tag_count == 1


@pytest.mark.asyncio
async def test_favorite_service_keeps_counter(db_session: AsyncSession):
    alice = await _create_user(db_session, "alice")
    bob = await _create_user(db_session, "bob")
    await _create_article(db_session, alice, "Counted")

    view = await favorite_service.favorite_article(db_session, bob, "counted")
    assert view["favorited"] is True
    assert view["favoritesCount"] == 1
    article = await article_service.get_article_by_slug(db_session, "counted")
    await db_session.refresh(article)
    assert article.favorites_count == 1

    view = await favorite_service.unfavorite_article(db_session, bob, "counted")
    assert view["favorited"] is False
    assert view["favoritesCount"] == 0
    await db_session.refresh(article)
    assert article.favorites_count == 0

    with pytest.raises(InternalFaultError):
        await favorite_service.unfavorite_article(db_session, bob, "counted")


@pytest.mark.asyncio
async def test_follow_service_idempotent(db_session: AsyncSession):
    alice = await _create_user(db_session, "alice")
    bob = await _create_user(db_session, "bob")

    assert (await profile_service.follow(db_session, bob, "alice"))["following"] is True
    assert (await profile_service.follow(db_session, bob, "alice"))["following"] is True
    assert await profile_service.is_following(db_session, bob.id, alice.id)

    profile = await profile_service.get_profile(db_session, "alice", viewer_id=bob.id)
    assert profile["following"] is True

    await profile_service.unfollow(db_session, bob, "alice")
    assert not await profile_service.is_following(db_session, bob.id, alice.id)
