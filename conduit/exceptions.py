"""
Domain errors and their translation to HTTP responses.

Services raise the members of this taxonomy; they never build HTTP
responses themselves.  ``register_exception_handlers`` renders every
``ConduitError`` as ``{"detail": message}`` with the member's status code,
the same body shape FastAPI uses for ``HTTPException``.

Store-level uniqueness violations surface as ``IntegrityError`` after a
write.  ``conflict_from_integrity_error`` identifies the violated
constraint and maps the known uniqueness rules to ``ConflictError``;
anything else becomes ``InternalFaultError``.  Store errors that no service
translated (pool timeouts, driver failures) are rendered by the same
handlers as an internal fault with a stable message.
"""
import logging
import re
from typing import NamedTuple

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class ConduitError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class BadRequestError(ConduitError):
    status_code = 400


class UnauthorizedError(ConduitError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ForbiddenError(ConduitError):
    status_code = 403


class NotFoundError(ConduitError):
    status_code = 404


class ConflictError(ConduitError):
    status_code = 409


class InternalFaultError(ConduitError):
    status_code = 500


# ---------------------------------------------------------------------------
# Constraint violation mapping
# ---------------------------------------------------------------------------

class UniqueRule(NamedTuple):
    constraint: str
    columns: tuple[str, ...]
    message: str


UNIQUE_RULES: tuple[UniqueRule, ...] = (
    UniqueRule("uq_articles_slug", ("articles.slug",), "Article with this slug already exists"),
    UniqueRule(
        "pk_favorites", ("favorites.user_id", "favorites.article_id"), "Article already favorited"
    ),
    UniqueRule(
        "pk_follows", ("follows.follower_id", "follows.following_id"), "Already following this profile"
    ),
    UniqueRule("uq_users_email", ("users.email",), "Email is already taken"),
    UniqueRule("uq_users_username", ("users.username",), "Username is already taken"),
)

UNEXPECTED_DB_ERROR = "Unexpected database error"

# SQLite reports the offending columns rather than the constraint name.
_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: ([\w.,\s]+)")


def _constraint_identity(exc: IntegrityError) -> tuple[str | None, tuple[str, ...]]:
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        # asyncpg exposes constraint_name directly, psycopg under .diag
        name = getattr(candidate, "constraint_name", None)
        if name is None and getattr(candidate, "diag", None) is not None:
            name = getattr(candidate.diag, "constraint_name", None)
        if name:
            return name, ()
    match = _SQLITE_UNIQUE_RE.search(str(orig))
    if match:
        return None, tuple(col.strip() for col in match.group(1).split(","))
    return None, ()


def conflict_from_integrity_error(exc: IntegrityError) -> ConduitError:
    """Map a store constraint violation to the matching domain error."""
    name, columns = _constraint_identity(exc)
    for rule in UNIQUE_RULES:
        if name == rule.constraint or (columns and columns == rule.columns):
            logger.warning("Constraint %s violated: %s", rule.constraint, rule.message)
            return ConflictError(rule.message)
    logger.error("Unmapped integrity error (constraint=%s, columns=%s): %s", name, columns, exc.orig)
    return InternalFaultError(UNEXPECTED_DB_ERROR)


# ---------------------------------------------------------------------------
# FastAPI wiring
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ConduitError)
    async def handle_conduit_error(request: Request, exc: ConduitError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(SQLAlchemyError)
    async def handle_store_error(request: Request, exc: SQLAlchemyError):
        # Covers pool checkout timeouts and violations no service translated.
        logger.error(
            "%s %s failed with a store error", request.method, request.url.path, exc_info=exc
        )
        return JSONResponse(status_code=500, content={"detail": UNEXPECTED_DB_ERROR})
