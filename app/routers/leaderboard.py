from typing import Annotated

from fastapi import APIRouter, Query

from app.db import database
from app.listing import ListView, SearchView

router = APIRouter(prefix="/api", tags=["leaderboard"])

SUGGESTION_LIMIT = 5
MIN_SUGGESTION_QUERY = 2

LIST_COLUMNS = """
    username, display_name, reputation, total_vouches_received,
    positive_vouches, negative_vouches, last_active, created_at
"""


def _reputation_color(reputation: int) -> str:
    if reputation >= 100:
        return "green"
    if reputation >= 0:
        return "yellow"
    return "red"


def _format_row(row: dict) -> dict:
    return {
        "username": row["username"],
        "display_name": row.get("display_name") or row["username"],
        "reputation": row["reputation"],
        "reputation_color": _reputation_color(row["reputation"]),
        "total_vouches_received": row["total_vouches_received"],
        "positive_vouches": row["positive_vouches"],
        "negative_vouches": row["negative_vouches"],
        "member_since": row["created_at"].isoformat() if row.get("created_at") else None,
    }


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


async def _fetch_leaderboard(view: ListView) -> list[dict]:
    # order_column comes from a fixed whitelist
    rows = await database.fetch_all(
        f"""
        SELECT {LIST_COLUMNS} FROM leaderboard
        ORDER BY {view.order_column} DESC NULLS LAST, username
        LIMIT :limit OFFSET :offset
        """,
        {"limit": view.limit, "offset": view.offset},
    )
    return [dict(r) for r in rows]


async def _search_profiles(term: str, view: ListView) -> list[dict]:
    rows = await database.fetch_all(
        f"""
        SELECT {LIST_COLUMNS} FROM users
        WHERE username ILIKE :pattern OR display_name ILIKE :pattern
        ORDER BY {view.order_column} DESC NULLS LAST, username
        LIMIT :limit OFFSET :offset
        """,
        {"pattern": f"%{_escape_like(term)}%", "limit": view.limit, "offset": view.offset},
    )
    return [dict(r) for r in rows]


async def _suggest_usernames(term: str) -> list[dict]:
    rows = await database.fetch_all(
        """
        SELECT username, display_name FROM users
        WHERE username ILIKE :pattern OR display_name ILIKE :pattern
        ORDER BY username
        LIMIT :limit
        """,
        {"pattern": f"%{_escape_like(term)}%", "limit": SUGGESTION_LIMIT},
    )
    return [dict(r) for r in rows]


async def _leaderboard_stats() -> dict:
    row = await database.fetch_one(
        """
        SELECT COUNT(*) AS total_users,
               COALESCE(ROUND(AVG(reputation)), 0) AS avg_reputation,
               COALESCE(MAX(reputation), 0) AS top_reputation
        FROM users
        """
    )
    return dict(row)


@router.get("/leaderboard")
async def get_leaderboard(view: Annotated[ListView, Query()]) -> dict:
    return view.page_of([_format_row(r) for r in await _fetch_leaderboard(view)])


@router.get("/leaderboard/stats")
async def get_leaderboard_stats() -> dict:
    stats = await _leaderboard_stats()
    return {
        "total_users": int(stats["total_users"]),
        "avg_reputation": int(stats["avg_reputation"]),
        "top_reputation": int(stats["top_reputation"]),
    }


@router.get("/search")
async def search_users(view: Annotated[SearchView, Query()]) -> dict:
    """Profiles whose username or display name contains `q`."""
    term = view.q.strip()
    if not term:
        return {**view.page_of([]), "has_more": False}
    return view.page_of([_format_row(r) for r in await _search_profiles(term, view)])


@router.get("/search/suggestions")
async def search_suggestions(q: str) -> list[dict]:
    term = q.strip()
    if len(term) < MIN_SUGGESTION_QUERY:
        return []
    return [
        {"username": r["username"], "display_name": r.get("display_name") or r["username"]}
        for r in await _suggest_usernames(term)
    ]
