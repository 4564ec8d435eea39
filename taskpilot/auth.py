# PURPOSE: password hashing, JWT issuance and the current-user dependency.
# Missing bearer token -> 401, invalid/expired token -> 403.

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
import bcrypt
from sqlalchemy.orm import Session

from .config import settings
from .db_models import UserDB
from .errors import Forbidden, Unauthenticated
from .models import UserPublic
from .store_db import get_db, get_user

# Bearer token from /register or /login (JSON, not the OAuth2 form flow).
# auto_error=False so a missing header goes through our own error taxonomy.
bearer_scheme = HTTPBearer(auto_error=False)


# --- Password helpers (bcrypt, no passlib) ---

def hash_password(password: str) -> str:
    """Return a bcrypt hash for the given plain password."""
    if not isinstance(password, str):
        raise TypeError("password must be a string")
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain password against its bcrypt hash."""
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        # malformed stored hash
        return False


# --- JWT helpers ---

def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def get_access_token_ttl_minutes() -> int:
    """Access token TTL in minutes; pydantic-settings already coerced it to int."""
    return settings.JWT_EXPIRE_MIN


def create_access_token(user: UserDB | UserPublic) -> str:
    """
    Create a signed, time-bound JWT carrying the user's id (`sub`) and username.
    Expiration controlled by settings.JWT_EXPIRE_MIN.
    """
    payload: Dict[str, Any] = {"sub": str(user.id), "username": user.username}
    expire = _now_utc() + timedelta(minutes=get_access_token_ttl_minutes())
    payload["exp"] = expire
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Return the token claims or raise Forbidden."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as err:
        raise Forbidden("Invalid or expired token") from err
    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        raise Forbidden("Invalid or expired token")
    return payload


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> UserPublic:
    """Decode the bearer token, load the user by id (sub), return public user schema."""
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Authorization header missing")
    payload = decode_access_token(credentials.credentials)

    row = get_user(db, int(payload["sub"]))
    if row is None:
        raise Forbidden("Invalid or expired token")
    return UserPublic.model_validate(row)
