"""Database seeder for local development of the Conduit API."""
import argparse
import asyncio
import random
import time
from datetime import datetime, timedelta, timezone

from conduit.database import Base, async_session, engine
from conduit.models import Article, ArticleTag, Comment, Favorite, Follow, Tag, User
from conduit.security import hash_password
from conduit.services.article_service import slugify

TAGS = ["python", "fastapi", "postgresql", "docker", "kubernetes",
        "react", "typescript", "aws", "devops", "testing", "performance",
        "security", "microservices", "graphql", "rest-api"]

# Every seeded account logs in with this password.
SEED_PASSWORD = "password123"


async def seed(small: bool = False):
    num_users = 10 if small else 50
    num_articles = 100 if small else 5000
    max_follows = 3 if small else 10
    max_favorites = 5 if small else 40
    max_comments = 2 if small else 5

    print(f"Seeding: {num_users} users, {num_articles} articles")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        tags = [Tag(name=name) for name in TAGS]
        session.add_all(tags)
        await session.flush()
        print(f"  Created {len(tags)} tags")

        # One hash for everyone; bcrypt is deliberately slow.
        password_hash = hash_password(SEED_PASSWORD)
        users = []
        for i in range(num_users):
            user = User(
                username=f"user_{i:04d}",
                email=f"user_{i:04d}@example.com",
                password_hash=password_hash,
                bio=f"I am test user number {i}. I write about technology.",
            )
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"  Created {len(users)} users")

        follows = 0
        for user in users:
            others = [u for u in users if u.id != user.id]
            for followee in random.sample(others, k=random.randint(0, min(max_follows, len(others)))):
                session.add(Follow(follower_id=user.id, following_id=followee.id))
                follows += 1
        await session.flush()
        print(f"  Created {follows} follows")

        # Create articles in batches
        batch_size = 500
        favorites = comments = 0
        for batch_start in range(0, num_articles, batch_size):
            batch_end = min(batch_start + batch_size, num_articles)
            batch = []
            for i in range(batch_start, batch_end):
                topic = random.choice(TAGS)
                title = f"Article {i}: How to optimize {topic} applications"
                created = datetime.now(timezone.utc) - timedelta(days=random.randint(0, 365))
                article = Article(
                    slug=slugify(title),
                    title=title,
                    description=f"A guide to optimizing {topic} applications for production.",
                    body=f"This is the full body of article {i}. " * 20,
                    created_at=created,
                    updated_at=created,
                    author_id=random.choice(users).id,
                )
                article.tag_links = [
                    ArticleTag(tag_id=tag.id, position=pos)
                    for pos, tag in enumerate(random.sample(tags, k=random.randint(1, 4)))
                ]
                session.add(article)
                batch.append(article)
            await session.flush()

            for article in batch:
                fans = random.sample(users, k=random.randint(0, min(max_favorites, len(users))))
                for fan in fans:
                    session.add(Favorite(user_id=fan.id, article_id=article.id))
                # Counter column mirrors the favorites rows
                article.favorites_count = len(fans)
                favorites += len(fans)

                for _ in range(random.randint(0, max_comments)):
                    session.add(Comment(
                        body=f"Great article! Very helpful for understanding the topic. #{comments}",
                        author_id=random.choice(users).id,
                        article_id=article.id,
                    ))
                    comments += 1
            await session.flush()

            print(f"  Batch {batch_start}-{batch_end}: articles created")

        await session.commit()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {num_users} (password: {SEED_PASSWORD})")
    print(f"  Articles: {num_articles}")
    print(f"  Favorites: {favorites}")
    print(f"  Comments: {comments}")


def main():
    parser = argparse.ArgumentParser(description="Seed the Conduit database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 articles)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
