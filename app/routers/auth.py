import logging
import secrets
from typing import Annotated

import asyncpg
from fastapi import APIRouter, Form, HTTPException, Request, status
from pydantic import EmailStr

from app.auth import (
    USERNAME_PATTERN,
    base_username,
    create_access_token,
    hash_password,
    unique_username,
    verify_password,
)
from app.db import database
from app.ratelimit import rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72


def validate_password(password: str) -> None:
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password too long (max 72 bytes)",
        )


async def _get_user_by_email(email: str) -> dict | None:
    row = await database.fetch_one(
        "SELECT id, password_hash FROM users WHERE email = :email",
        {"email": email.lower()},
    )
    return dict(row) if row else None


async def _create_user(email: str, password_hash: str, username: str) -> int:
    return await database.execute(
        """
        INSERT INTO users (email, password_hash, username, display_name)
        VALUES (:email, :password_hash, :username, :username)
        RETURNING id
        """,
        {"email": email.lower(), "password_hash": password_hash, "username": username},
    )


@router.post("/signup", status_code=status.HTTP_201_CREATED)
@rate_limit(max_requests=5, window_seconds=60)
async def signup(
    request: Request,
    email: Annotated[EmailStr, Form()],
    password: Annotated[str, Form()],
    username: Annotated[str | None, Form()] = None,
) -> dict:
    validate_password(password)
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password must be at least 8 characters",
        )

    if await _get_user_by_email(email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    if username:
        username = username.strip().lower()
        if not USERNAME_PATTERN.match(username):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Username must be 3-20 letters, numbers, or underscores",
            )
    else:
        username = await unique_username(base_username(email, secrets.token_hex(4)))

    try:
        user_id = await _create_user(email, hash_password(password), username)
    except asyncpg.exceptions.UniqueViolationError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username is already taken",
        )

    logger.info("Created profile %s for user %s", username, user_id)
    return {"access_token": create_access_token(user_id), "token_type": "bearer", "username": username}


@router.post("/login")
@rate_limit(max_requests=10, window_seconds=60)
async def login(
    request: Request,
    email: Annotated[EmailStr, Form()],
    password: Annotated[str, Form()],
) -> dict:
    validate_password(password)

    user = await _get_user_by_email(email)
    if not user or not verify_password(password, user["password_hash"]):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    return {"access_token": create_access_token(user["id"]), "token_type": "bearer"}
