import asyncpg
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator

from app.auth import PROFILE_COLUMNS, USERNAME_PATTERN, get_current_user
from app.db import database
from app.reputation import format_tier

router = APIRouter(prefix="/api", tags=["profiles"])


class ProfileUpdate(BaseModel):
    username: str | None = None
    display_name: str | None = None
    bio: str | None = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip().lower()
        if not v:
            raise ValueError("Username is required")
        if len(v) < 3:
            raise ValueError("Username must be at least 3 characters")
        if len(v) > 20:
            raise ValueError("Username must be less than 20 characters")
        if not USERNAME_PATTERN.match(v):
            raise ValueError("Username can only contain letters, numbers, and underscores")
        return v

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if len(v) > 50:
            raise ValueError("Display name must be at most 50 characters")
        return v

    @field_validator("bio")
    @classmethod
    def validate_bio(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if len(v) > 500:
            raise ValueError("Bio must be at most 500 characters")
        return v


# --- Helper Functions ---


def format_profile(user: dict) -> dict:
    """Public view of a profile row."""
    return {
        "username": user["username"],
        "display_name": user.get("display_name") or user["username"],
        "bio": user.get("bio"),
        "reputation": user["reputation"],
        "total_vouches_received": user["total_vouches_received"],
        "total_vouches_given": user["total_vouches_given"],
        "positive_vouches": user["positive_vouches"],
        "negative_vouches": user["negative_vouches"],
        "member_since": user["created_at"].isoformat() if user.get("created_at") else None,
    }


def format_vouch(vouch: dict) -> dict:
    sign = "+" if vouch["vouch_type"] == "positive" else "-"
    return {
        "id": vouch["id"],
        "vouch_type": vouch["vouch_type"],
        "impact": f"{sign}{vouch['impact_score']}",
        "comment": vouch.get("comment"),
        "game": vouch["game_name"],
        "voucher": vouch.get("voucher_username"),
        "target": vouch.get("target_username"),
        "created_at": vouch["created_at"].isoformat(),
    }


async def _get_profile_by_username(username: str) -> dict | None:
    row = await database.fetch_one(
        f"SELECT {PROFILE_COLUMNS} FROM users WHERE username = :username",
        {"username": username.lower()},
    )
    return dict(row) if row else None


async def _get_vouches(user_id: int, direction: str) -> list[dict]:
    """Vouches received by or given by a user, newest first."""
    column = "target_id" if direction == "received" else "voucher_id"
    rows = await database.fetch_all(
        f"""
        SELECT v.id, v.vouch_type, v.impact_score, v.comment, v.created_at,
               g.name AS game_name,
               voucher.username AS voucher_username,
               target.username AS target_username
        FROM vouches v
        JOIN games g ON g.id = v.game_id
        JOIN users voucher ON voucher.id = v.voucher_id
        JOIN users target ON target.id = v.target_id
        WHERE v.{column} = :user_id
        ORDER BY v.created_at DESC
        """,
        {"user_id": user_id},
    )
    return [dict(r) for r in rows]


async def _update_profile(user_id: int, updates: dict) -> None:
    set_clause = ", ".join(f"{k} = :{k}" for k in updates)
    await database.execute(
        f"UPDATE users SET {set_clause}, updated_at = NOW() WHERE id = :id",
        {**updates, "id": user_id},
    )


# --- Endpoints ---


@router.get("/me")
async def get_my_profile(current_user: dict = Depends(get_current_user)) -> dict:
    """Own profile with the vouch tier it currently grants."""
    received = await _get_vouches(current_user["id"], "received")
    given = await _get_vouches(current_user["id"], "given")
    return {
        **format_profile(current_user),
        "email": current_user["email"],
        "tier": format_tier(current_user["reputation"]),
        "vouches_received": [format_vouch(v) for v in received],
        "vouches_given": [format_vouch(v) for v in given],
    }


@router.patch("/me")
async def update_my_profile(
    payload: ProfileUpdate,
    current_user: dict = Depends(get_current_user),
) -> dict:
    updates = {}
    if payload.username is not None and payload.username != current_user["username"]:
        updates["username"] = payload.username
    if payload.display_name is not None:
        updates["display_name"] = payload.display_name or None
    if payload.bio is not None:
        updates["bio"] = payload.bio or None

    if updates:
        try:
            await _update_profile(current_user["id"], updates)
        except asyncpg.exceptions.UniqueViolationError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Username is already taken",
            )

    return {"message": "Profile updated successfully!"}


@router.get("/users/{username}")
async def get_user_profile(username: str) -> dict:
    """Public profile with vouches received and given."""
    profile = await _get_profile_by_username(username)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    received = await _get_vouches(profile["id"], "received")
    given = await _get_vouches(profile["id"], "given")
    return {
        **format_profile(profile),
        "tier": format_tier(profile["reputation"]),
        "vouches_received": [format_vouch(v) for v in received],
        "vouches_given": [format_vouch(v) for v in given],
    }
