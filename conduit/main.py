import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from conduit.config import settings
from conduit.database import engine
from conduit.exceptions import register_exception_handlers
from conduit.middleware import TimingMiddleware
from conduit.routers import articles, profiles, users

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting Conduit API (env=%s)", settings.APP_ENV)
    yield
    # The engine owns the connection pool shared by every request.
    await engine.dispose()
    logger.info("Conduit API stopped")


app = FastAPI(
    title="Conduit API",
    description="Social publishing backend: articles, comments, follows and favorites",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Routers
app.include_router(users.router)
app.include_router(users.current_user_router)
app.include_router(profiles.router)
app.include_router(articles.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
