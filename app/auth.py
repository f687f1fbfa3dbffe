import os
import re
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.db import database

JWT_SECRET = os.environ["JWT_SECRET"]
JWT_ALGORITHM = "HS256"
JWT_EXPIRY_DAYS = 7

USERNAME_PATTERN = re.compile(r"^[a-z0-9_]{3,20}$")
_USERNAME_STRIP = re.compile(r"[^a-zA-Z0-9_]")

bearer_scheme = HTTPBearer()

PROFILE_COLUMNS = """
    id, email, username, display_name, bio, reputation,
    total_vouches_received, total_vouches_given, positive_vouches, negative_vouches,
    last_active, created_at
"""


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode(), password_hash.encode())


def create_access_token(user_id: int) -> str:
    payload = {
        "sub": str(user_id),
        "exp": datetime.now(timezone.utc) + timedelta(days=JWT_EXPIRY_DAYS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> int | None:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        return int(payload["sub"])
    except (jwt.ExpiredSignatureError, jwt.InvalidTokenError, KeyError, ValueError):
        return None


def base_username(email: str, fallback_id: str) -> str:
    """Derive a username candidate from an email address.

    Characters outside [a-zA-Z0-9_] are dropped and the result lowercased.
    Falls back to "user" plus the first 8 characters of `fallback_id`.
    """
    candidate = _USERNAME_STRIP.sub("", email.split("@")[0]).lower()[:17]
    if len(candidate) < 3:
        candidate = ("user" + _USERNAME_STRIP.sub("", fallback_id)[:8]).lower()
    return candidate


async def unique_username(base: str) -> str:
    """Append 1, 2, ... to `base` until no profile uses it."""
    candidate = base
    counter = 1
    while await database.fetch_one(
        "SELECT id FROM users WHERE username = :username",
        {"username": candidate},
    ):
        candidate = f"{base}{counter}"
        counter += 1
    return candidate


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> dict:
    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    user = await database.fetch_one(
        f"SELECT {PROFILE_COLUMNS} FROM users WHERE id = :id",
        {"id": user_id},
    )
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return dict(user)
