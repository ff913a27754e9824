from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import get_current_user, get_token
from conduit.models import User
from conduit.routers import build_router
from conduit.schemas import LoginRequest, RegisterRequest, UserResponse, UserUpdateRequest
from conduit.services import user_service


async def register(data: RegisterRequest, db: AsyncSession = Depends(get_db)):
    return {"user": await user_service.register(db, data.user)}


async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)):
    return {"user": await user_service.login(db, data.user)}


async def get_me(
    user: User = Depends(get_current_user),
    token: str = Depends(get_token),
):
    return {"user": user_service.current_user(user, token)}


async def update_me(
    data: UserUpdateRequest,
    user: User = Depends(get_current_user),
    token: str = Depends(get_token),
    db: AsyncSession = Depends(get_db),
):
    return {"user": await user_service.update_user(db, user, data.user, token)}


USERS_ROUTES = (
    ("POST", "", register, {"response_model": UserResponse, "status_code": 201}),
    ("POST", "/login", login, {"response_model": UserResponse}),
)

CURRENT_USER_ROUTES = (
    ("GET", "", get_me, {"response_model": UserResponse}),
    ("PUT", "", update_me, {"response_model": UserResponse}),
)

router = build_router("/users", "users", USERS_ROUTES)
current_user_router = build_router("/user", "users", CURRENT_USER_ROUTES)
