from datetime import datetime, timedelta, timezone
from jose import ExpiredSignatureError, JWTError, jwt
from typing import Optional
import logging

# FastAPI imports for dependency-based auth
from fastapi import Header, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from utils.config import get_settings
from utils.errors import AuthenticationError

http_bearer = HTTPBearer(auto_error=False)
logger = logging.getLogger("auth")


def create_access_token(data: dict, expires_delta: timedelta = None):
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_user_token(user_id: str, email: str) -> str:
    return create_access_token({"sub": email, "user": {"id": user_id}})


def decode_access_token(token: str) -> dict:
    """Decode and verify a token, raising ``AuthenticationError`` on any failure."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as err:
        raise AuthenticationError("Token expired, please log in again") from err
    except JWTError as err:
        logger.warning("JWT verification failed: %s", str(err))
        raise AuthenticationError("Invalid token") from err


def verify_access_token(token: str) -> Optional[dict]:
    try:
        return decode_access_token(token)
    except AuthenticationError:
        return None


def user_id_from_payload(payload: Optional[dict]) -> Optional[str]:
    user = (payload or {}).get("user")
    if isinstance(user, dict) and user.get("id"):
        return str(user["id"])
    return None


def _strip_bearer(raw: str) -> str:
    raw = raw.strip()
    return raw.split(" ", 1)[1].strip() if raw.lower().startswith("bearer ") else raw


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    Authorization: Optional[str] = Header(None, include_in_schema=False),
    x_auth_token: Optional[str] = Header(None, include_in_schema=False),
) -> str:
    """
    FastAPI dependency to extract and validate the current user id.
    Prefer standard HTTP Bearer auth (works with Swagger Authorize button).
    Also accepts a raw Authorization header or the ``x-auth-token`` header.
    Returns 401 when the token is missing/invalid/expired.
    """
    token: Optional[str] = None

    if credentials and credentials.scheme and credentials.credentials:
        if credentials.scheme.lower() == "bearer":
            token = _strip_bearer(credentials.credentials)
    elif Authorization:
        token = _strip_bearer(Authorization)
    elif x_auth_token:
        token = x_auth_token.strip()

    if not token:
        raise AuthenticationError("No token, authorization denied")

    user_id = user_id_from_payload(decode_access_token(token))
    if not user_id:
        raise AuthenticationError("Invalid token")
    return user_id
