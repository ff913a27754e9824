from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import JWTError, jwt
from passlib.context import CryptContext

from conduit.config import settings
from conduit.exceptions import UnauthorizedError

# Password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.PASSWORD_HASH_ROUNDS,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(user_id: int, username: str, expires_minutes: int | None = None) -> str:
    expire = _utcnow() + timedelta(minutes=expires_minutes or settings.JWT_EXPIRES_MINUTES)
    to_encode: Dict[str, Any] = {"sub": str(user_id), "username": username, "exp": expire}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> int:
    """Return the user id carried by *token*; raise ``UnauthorizedError`` otherwise."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise UnauthorizedError("Invalid or expired token")
    sub = payload.get("sub")
    if sub is None or not str(sub).isdigit():
        raise UnauthorizedError("Invalid token subject")
    return int(sub)
