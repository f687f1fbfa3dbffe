import logging
from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator

from app.auth import get_current_user
from app.cooldown import check_and_advise, format_duration
from app.db import database
from app.reputation import get_vouch_impact
from app.routers.profiles import format_vouch
from app.vouch_store import (
    DailyLimitError,
    SlidingWindowError,
    VouchWriteError,
    fetch_recent_vouch_times,
    insert_vouch,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/vouches", tags=["vouches"])

RECENT_ACTIVITY_LIMIT = 10


class VouchCreate(BaseModel):
    target_username: str
    game_id: int
    vouch_type: Literal["positive", "negative"]
    comment: str | None = None

    @field_validator("target_username")
    @classmethod
    def validate_target(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("Please fill in all required fields")
        return v

    @field_validator("comment")
    @classmethod
    def validate_comment(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        if len(v) > 500:
            raise ValueError("Comment must be at most 500 characters")
        return v if v else None


# --- Helper Functions ---


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _get_target(username: str) -> dict | None:
    row = await database.fetch_one(
        "SELECT id, username FROM users WHERE username = :username",
        {"username": username},
    )
    return dict(row) if row else None


async def _game_exists(game_id: int) -> bool:
    row = await database.fetch_one("SELECT 1 FROM games WHERE id = :id", {"id": game_id})
    return row is not None


async def _advise(voucher_id: int, target_id: int, game_id: int) -> dict | None:
    """Cooldown advice for a triple, or None if the history can't be read."""
    try:
        history = await fetch_recent_vouch_times(voucher_id, target_id, game_id)
    except Exception:
        logger.warning(
            "Could not compute next allowed vouch time for %s -> %s in game %s",
            voucher_id,
            target_id,
            game_id,
            exc_info=True,
        )
        return None
    advice = check_and_advise(_now(), history)
    return {
        "allowed": advice.allowed,
        "wait_ms": advice.wait_ms,
        "wait": format_duration(advice.wait_ms),
    }


def _check_can_vouch(current_user: dict, target: dict | None) -> int:
    """Validate a vouch attempt and return the voucher's impact."""
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if target["id"] == current_user["id"]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot vouch for yourself",
        )

    reputation = current_user.get("reputation") or 0
    if reputation < 0:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Users with negative reputation cannot vouch",
        )

    impact = get_vouch_impact(reputation)
    if not impact:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your current reputation does not allow vouching",
        )
    return impact


# --- Endpoints ---


@router.get("/recent")
async def recent_activity() -> list[dict]:
    """Latest vouches across all users."""
    rows = await database.fetch_all(
        """
        SELECT v.id, v.vouch_type, v.impact_score, v.comment, v.created_at,
               g.name AS game_name,
               voucher.username AS voucher_username,
               target.username AS target_username
        FROM vouches v
        JOIN games g ON g.id = v.game_id
        JOIN users voucher ON voucher.id = v.voucher_id
        JOIN users target ON target.id = v.target_id
        ORDER BY v.created_at DESC
        LIMIT :limit
        """,
        {"limit": RECENT_ACTIVITY_LIMIT},
    )
    return [format_vouch(dict(r)) for r in rows]


@router.get("/impact")
async def impact_preview(
    vouch_type: Literal["positive", "negative"] = "positive",
    current_user: dict = Depends(get_current_user),
) -> dict:
    """What a vouch from the current user would add or subtract."""
    impact = get_vouch_impact(current_user.get("reputation") or 0)
    if not impact:
        return {"allowed": False, "impact": 0, "display": "Not allowed"}
    sign = "+" if vouch_type == "positive" else "-"
    return {"allowed": True, "impact": impact, "display": f"{sign}{impact}"}


@router.get("/cooldown")
async def get_cooldown(
    target: str,
    game_id: int,
    current_user: dict = Depends(get_current_user),
) -> dict:
    """How long until the current user may vouch for `target` in `game_id` again."""
    target_user = await _get_target(target.strip().lower())
    if target_user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    advice = await _advise(current_user["id"], target_user["id"], game_id)
    if advice is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not determine next allowed vouch time",
        )
    return advice


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_vouch(
    payload: VouchCreate,
    current_user: dict = Depends(get_current_user),
) -> dict:
    """Create a vouch and report when the next one will be allowed."""
    target = await _get_target(payload.target_username)
    _check_can_vouch(current_user, target)

    if not await _game_exists(payload.game_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")

    try:
        vouch = await insert_vouch(
            current_user["id"],
            target["id"],
            payload.game_id,
            payload.vouch_type,
            payload.comment,
        )
    except VouchWriteError as e:
        advice = await _advise(current_user["id"], target["id"], payload.game_id)
        detail = {"message": e.message}
        if advice is not None:
            detail["retry_after_ms"] = advice["wait_ms"]
            detail["retry_after"] = advice["wait"]
        if isinstance(e, (DailyLimitError, SlidingWindowError)):
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    sign = "+" if payload.vouch_type == "positive" else "-"
    advice = await _advise(current_user["id"], target["id"], payload.game_id)
    return {
        "message": "Vouch created successfully!",
        "id": vouch["id"],
        "target": target["username"],
        "impact": f"{sign}{vouch['impact_score']}",
        "next_allowed_ms": advice["wait_ms"] if advice else None,
        "next_allowed_in": advice["wait"] if advice else None,
    }
