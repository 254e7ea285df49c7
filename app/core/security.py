from datetime import datetime, timedelta, timezone
from typing import Any, Union

from jose import JWTError, jwt

from app.core.config import settings

ALGORITHM = "HS256"
# Session issuance lives in the identity service; this process only verifies.
# The fallback key exists for local runs and MUST be overridden in production.
SECRET_KEY = settings.SECRET_KEY or (
    "09d25e094faa6ca2556c818166b7a9563b93f7099f6f0f4caa6cf63b88e8d3e7"
)


class InvalidTokenError(Exception):
    """Raised when a bearer token cannot be decoded or carries no subject."""


def create_access_token(
    subject: Union[str, Any], expires_delta: Union[timedelta, None] = None
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"exp": expire, "sub": str(subject)}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_subject(token: str) -> str:
    """Return the `sub` claim of a valid token."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc
    subject = payload.get("sub")
    if not subject:
        raise InvalidTokenError("token has no subject")
    return str(subject)
